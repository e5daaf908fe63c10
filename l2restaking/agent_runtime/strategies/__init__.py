from .pending_transactions import PendingTransactionPoller, PendingTransactionsConfig

__all__ = [
    "PendingTransactionPoller",
    "PendingTransactionsConfig",
]
