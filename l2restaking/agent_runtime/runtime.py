from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from .strategy import ExecutionContext, Strategy
from ..config import settings

MAX_BACKOFF_MULTIPLIER = 5


@dataclass(slots=True)
class StrategyState:
    status: str = "idle"
    run_count: int = 0
    consecutive_errors: int = 0
    last_started: Optional[datetime] = None
    last_completed: Optional[datetime] = None
    last_error: Optional[str] = None
    next_run: Optional[datetime] = None


class AgentRuntime:
    """Always-on scheduler for the relay's background strategies.

    Each strategy ticks on its own interval. A strategy never has two ticks
    in flight, a tick is bounded by ``tick_timeout_seconds``, and failing
    strategies back off up to ``MAX_BACKOFF_MULTIPLIER`` intervals.
    """

    def __init__(
        self,
        *,
        logger: Optional[logging.Logger] = None,
        max_concurrency: Optional[int] = None,
        tick_timeout_seconds: Optional[float] = None,
        poll_interval_seconds: float = 1.0,
    ) -> None:
        self.logger = logger or logging.getLogger("agent_runtime")
        self._strategies: Dict[str, Strategy] = {}
        self._state: Dict[str, StrategyState] = {}
        self._loop_task: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()
        self._lock = asyncio.Lock()
        self._running = False
        self._started_at: Optional[datetime] = None
        self._max_concurrency = max_concurrency or settings.runtime_max_concurrency
        self._tick_timeout = tick_timeout_seconds or settings.runtime_tick_timeout_seconds
        self._poll_interval = poll_interval_seconds

    # ---------------------------
    # Registration
    # ---------------------------
    def register_strategy(self, strategy: Strategy) -> None:
        if strategy.id in self._strategies:
            raise ValueError(f"Strategy '{strategy.id}' already registered")
        self._strategies[strategy.id] = strategy
        self._state[strategy.id] = StrategyState(next_run=datetime.now(timezone.utc))
        self.logger.info("Registered strategy %s (every %ss)", strategy.id, strategy.interval_seconds)

    def get_strategy(self, strategy_id: str) -> Optional[Strategy]:
        return self._strategies.get(strategy_id)

    # ---------------------------
    # Lifecycle
    # ---------------------------
    async def ensure_started(self) -> None:
        async with self._lock:
            if self._running:
                return
            await self._start_locked()

    async def start(self) -> None:
        async with self._lock:
            await self._start_locked()

    async def _start_locked(self) -> None:
        if self._running:
            return
        self._running = True
        self._started_at = datetime.now(timezone.utc)
        self.logger.info("Agent runtime starting with %d strategies", len(self._strategies))
        for strategy_id, strategy in self._strategies.items():
            try:
                await strategy.on_start(self._make_context(strategy_id))
            except Exception as exc:  # noqa: BLE001
                self.logger.warning("Strategy %s on_start failed: %s", strategy_id, exc, exc_info=True)
            # First tick runs right after startup
            self._state[strategy_id].next_run = datetime.now(timezone.utc)
        self._loop_task = asyncio.create_task(self._run_loop(), name="agent-runtime-loop")

    async def stop(self) -> None:
        async with self._lock:
            if not self._running:
                return
            self._running = False
            self.logger.info("Agent runtime stopping")

            if self._loop_task:
                self._loop_task.cancel()
                try:
                    await self._loop_task
                except asyncio.CancelledError:
                    pass
                self._loop_task = None

            for task in list(self._inflight):
                task.cancel()
            if self._inflight:
                await asyncio.gather(*self._inflight, return_exceptions=True)
            self._inflight.clear()

            for strategy_id, strategy in self._strategies.items():
                try:
                    await strategy.on_stop(self._make_context(strategy_id))
                except Exception as exc:  # noqa: BLE001
                    self.logger.warning("Strategy %s on_stop failed: %s", strategy_id, exc, exc_info=True)

    @property
    def is_running(self) -> bool:
        return self._running

    # ---------------------------
    # Scheduling and execution
    # ---------------------------
    async def _run_loop(self) -> None:
        try:
            while self._running:
                self._schedule_due_ticks()
                await asyncio.sleep(self._poll_interval)
        except asyncio.CancelledError:
            return
        except Exception as exc:  # noqa: BLE001
            self.logger.error("Runtime loop crashed: %s", exc, exc_info=True)
            self._running = False

    def _schedule_due_ticks(self) -> None:
        now = datetime.now(timezone.utc)
        for strategy_id, strategy in self._strategies.items():
            state = self._state[strategy_id]
            if state.status == "running":
                continue
            if state.next_run and state.next_run > now:
                continue
            if len(self._inflight) >= self._max_concurrency:
                break
            self._spawn_tick(strategy_id, strategy)

    def _spawn_tick(self, strategy_id: str, strategy: Strategy) -> None:
        # Mark before the task is scheduled so the next loop pass cannot double-book
        self._state[strategy_id].status = "running"
        task = asyncio.create_task(self._run_strategy_tick(strategy_id, strategy), name=f"tick-{strategy_id}")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _run_strategy_tick(self, strategy_id: str, strategy: Strategy) -> None:
        state = self._state[strategy_id]
        state.status = "running"
        state.last_started = datetime.now(timezone.utc)
        ctx = self._make_context(strategy_id)
        try:
            await asyncio.wait_for(strategy.on_tick(ctx), timeout=self._tick_timeout)
            state.last_error = None
            state.consecutive_errors = 0
        except asyncio.TimeoutError:
            state.last_error = f"tick timed out after {self._tick_timeout}s"
            state.consecutive_errors += 1
            self.logger.warning("Strategy %s timed out", strategy_id)
        except Exception as exc:  # noqa: BLE001
            state.last_error = str(exc)
            state.consecutive_errors += 1
            self.logger.warning("Strategy %s tick failed: %s", strategy_id, exc, exc_info=True)
        finally:
            state.run_count += 1
            state.last_completed = datetime.now(timezone.utc)
            multiplier = min(max(1, state.consecutive_errors), MAX_BACKOFF_MULTIPLIER)
            state.next_run = state.last_completed + timedelta(seconds=strategy.interval_seconds * multiplier)
            state.status = "idle"

    async def run_strategy_now(self, strategy_id: str) -> bool:
        """Start a tick immediately unless one is already in flight."""
        strategy = self._strategies.get(strategy_id)
        if strategy is None:
            return False
        if self._state[strategy_id].status == "running":
            return False
        self._spawn_tick(strategy_id, strategy)
        return True

    async def wait_idle(self) -> None:
        """Wait for every in-flight tick to finish."""
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)

    # ---------------------------
    # Introspection
    # ---------------------------
    def list_strategies(self) -> list[dict[str, Any]]:
        items: list[dict[str, Any]] = []
        for strategy_id, strategy in self._strategies.items():
            state = self._state[strategy_id]
            items.append(
                {
                    "id": strategy_id,
                    "description": strategy.description,
                    "interval_seconds": strategy.interval_seconds,
                    "status": state.status,
                    "last_started": _iso(state.last_started),
                    "last_completed": _iso(state.last_completed),
                    "last_error": state.last_error,
                    "last_result": strategy.last_result,
                    "run_count": state.run_count,
                    "next_run": _iso(state.next_run),
                    "consecutive_errors": state.consecutive_errors,
                }
            )
        return items

    def status(self) -> dict[str, Any]:
        return {
            "running": self._running,
            "started_at": _iso(self._started_at),
            "strategy_count": len(self._strategies),
            "inflight": len(self._inflight),
            "strategies": self.list_strategies(),
        }

    def _make_context(self, strategy_id: str) -> ExecutionContext:
        return ExecutionContext(logger=self.logger.getChild(strategy_id), runtime=self)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.astimezone(timezone.utc).isoformat() if value else None
