"""
Pending transaction poller.

Drives :class:`StatusReconciler` from the runtime: one pass right after
startup, then every ``status_poll_interval_seconds``. The runtime never
starts a tick while the previous one is still running, so passes do not
overlap.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from pydantic import Field

from ..strategy import ExecutionContext, Strategy, StrategyConfig
from ...config import settings
from ...core.bridge.status_reconciler import get_status_reconciler


class PendingTransactionsConfig(StrategyConfig):
    interval_seconds: float = Field(
        default_factory=lambda: settings.status_poll_interval_seconds,
        description="Seconds between reconciliation passes.",
    )


class PendingTransactionPoller(Strategy):
    """Moves pending ledger records to confirmed or failed using CCIP status."""

    id = "pending-transactions"
    description = "Reconciles pending cross-chain transactions against the CCIP explorer"
    default_interval_seconds = 20.0
    ConfigModel = PendingTransactionsConfig

    def __init__(
        self,
        config: Optional[PendingTransactionsConfig] = None,
        logger: Optional[logging.Logger] = None,
        reconciler_factory: Optional[Callable[[], Any]] = None,
    ) -> None:
        super().__init__(config=config, logger=logger)
        self._reconciler_factory = reconciler_factory
        self._reconciler = None

    @property
    def reconciler(self):
        """Lazy-load the status reconciler."""
        if self._reconciler is None:
            factory = self._reconciler_factory or get_status_reconciler
            self._reconciler = factory()
        return self._reconciler

    async def on_start(self, ctx: ExecutionContext) -> None:
        ctx.logger.info("Pending transaction poller online; interval=%ss", self.interval_seconds)

    async def on_tick(self, ctx: ExecutionContext) -> None:
        summary = await self.reconciler.run_once()
        self.last_result = summary.as_dict()
        if summary.errors:
            ctx.logger.warning("Reconciliation pass left %d records for the next pass", len(summary.errors))
