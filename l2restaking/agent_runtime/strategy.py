from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import BaseModel, Field

from ..config import settings


class StrategyConfig(BaseModel):
    """Base configuration for runtime strategies."""

    interval_seconds: Optional[float] = Field(
        default=None,
        description="How often to run on_tick; falls back to the strategy default when unset.",
    )


class ExecutionContext:
    """Handed to every strategy hook."""

    def __init__(
        self,
        *,
        logger: logging.Logger,
        runtime: Any = None,
    ) -> None:
        self.logger = logger
        self.runtime = runtime
        self.settings = settings


class Strategy:
    """Base class for periodic background work."""

    id: str = "strategy"
    description: str = "runtime strategy"
    default_interval_seconds: float = 60.0
    ConfigModel = StrategyConfig

    def __init__(self, config: StrategyConfig | None = None, logger: Optional[logging.Logger] = None) -> None:
        self.config = config or self.ConfigModel()
        self.logger = logger or logging.getLogger(self.__class__.__name__)
        self.last_result: Optional[dict[str, Any]] = None

    @property
    def interval_seconds(self) -> float:
        if self.config.interval_seconds and self.config.interval_seconds > 0:
            return float(self.config.interval_seconds)
        return float(self.default_interval_seconds)

    async def on_start(self, ctx: ExecutionContext) -> None:
        """Called once when the runtime boots."""
        return None

    async def on_tick(self, ctx: ExecutionContext) -> None:
        """Called on every scheduled interval."""
        return None

    async def on_stop(self, ctx: ExecutionContext) -> None:
        """Called during graceful shutdown."""
        return None
