"""
Error Recovery Module

Typed error variants and the retry policy shared by RPC and CCIP clients.
"""

from .errors import (
    AuthorizationError,
    ContractRevertError,
    ErrorCategory,
    ErrorContext,
    IntegrityError,
    LedgerConflictError,
    MessageNotFoundError,
    NetworkError,
    ProviderError,
    RateLimitError,
    ReceiptNotFoundError,
    RecoverableError,
    RpcTimeoutError,
    SigningRejectedError,
    UnrecoverableError,
    ValidationError,
    classify_error,
)
from .strategies import RetryConfig, RetryStrategy

__all__ = [
    # Errors
    "AuthorizationError",
    "ContractRevertError",
    "ErrorCategory",
    "ErrorContext",
    "IntegrityError",
    "LedgerConflictError",
    "MessageNotFoundError",
    "NetworkError",
    "ProviderError",
    "RateLimitError",
    "ReceiptNotFoundError",
    "RecoverableError",
    "RpcTimeoutError",
    "SigningRejectedError",
    "UnrecoverableError",
    "ValidationError",
    "classify_error",
    # Strategies
    "RetryConfig",
    "RetryStrategy",
]
