from __future__ import annotations

import logging

from .runtime import AgentRuntime
from .strategies import PendingTransactionPoller, PendingTransactionsConfig
from ..config import settings


_runtime = AgentRuntime(logger=logging.getLogger("agent_runtime"))
_registered_defaults = False


def get_runtime() -> AgentRuntime:
    return _runtime


def register_builtin_strategies() -> None:
    global _registered_defaults
    if _registered_defaults:
        return
    if settings.status_reconciler_enabled:
        poller_cfg = PendingTransactionsConfig(interval_seconds=settings.status_poll_interval_seconds)
        _runtime.register_strategy(PendingTransactionPoller(config=poller_cfg))
    _registered_defaults = True


__all__ = ["get_runtime", "register_builtin_strategies", "AgentRuntime"]
