"""
Error Classification

Defines the closed set of error variants raised by the relay.
Errors are classified as recoverable (retry on the next attempt or pass)
or unrecoverable (surface to the caller, never retried).
"""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import httpx


class ErrorCategory(str, Enum):
    """Categories of errors for recovery decisions."""

    NETWORK = "network"           # Network/connectivity issues
    RATE_LIMIT = "rate_limit"     # RPC or explorer rate limits
    TIMEOUT = "timeout"           # Operation timed out
    PROVIDER = "provider"         # External provider error (5xx, bad payload)
    NOT_FOUND = "not_found"       # Receipt or message not known yet
    CONTRACT = "contract"         # On-chain call reverted
    VALIDATION = "validation"     # Input validation error
    AUTHORIZATION = "authorization"  # Operator not allowed to sign
    INTEGRITY = "integrity"       # Ledger or digest consistency violation
    CONFLICT = "conflict"         # Unique key collision in the ledger
    USER_REJECTED = "user_rejected"  # Key-holder declined to sign
    UNKNOWN = "unknown"           # Unclassified error


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory = ErrorCategory.UNKNOWN
    recoverable: bool = True
    retry_after_seconds: Optional[float] = None
    suggested_action: Optional[str] = None
    provider: Optional[str] = None
    chain_id: Optional[int] = None
    tx_hash: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)


class RecoverableError(Exception):
    """
    Base class for errors that can be retried.

    These errors are transient:
    - RPC connectivity problems and timeouts
    - Rate limits
    - CCIP explorer outages
    - Receipts that have not been mined yet
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        retry_after: Optional[float] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.retry_after = retry_after
        self.context = context or ErrorContext(category=category, recoverable=True)


class UnrecoverableError(Exception):
    """
    Base class for errors that cannot be retried.

    These errors go straight back to the caller:
    - Malformed input
    - Unauthorized operators
    - Ledger or digest integrity violations
    - Contract reverts
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.context = context or ErrorContext(category=category, recoverable=False)


# Specific recoverable errors
class RateLimitError(RecoverableError):
    """Upstream rate limit exceeded."""

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: float = 5.0,
        provider: Optional[str] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.RATE_LIMIT,
            retry_after=retry_after,
            context=ErrorContext(
                category=ErrorCategory.RATE_LIMIT,
                recoverable=True,
                retry_after_seconds=retry_after,
                provider=provider,
                suggested_action=f"Wait {retry_after}s before retrying",
            ),
        )


class NetworkError(RecoverableError):
    """Network connectivity error."""

    def __init__(
        self,
        message: str = "Network error",
        provider: Optional[str] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.NETWORK,
            context=ErrorContext(
                category=ErrorCategory.NETWORK,
                recoverable=True,
                provider=provider,
                suggested_action="Retry with exponential backoff",
            ),
        )


class RpcTimeoutError(RecoverableError):
    """Operation timed out."""

    def __init__(
        self,
        message: str = "Operation timed out",
        operation: Optional[str] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.TIMEOUT,
            context=ErrorContext(
                category=ErrorCategory.TIMEOUT,
                recoverable=True,
                suggested_action="Retry with longer timeout",
                details={"operation": operation} if operation else {},
            ),
        )


class ProviderError(RecoverableError):
    """Upstream service answered with a server error or an unusable payload."""

    def __init__(
        self,
        message: str = "Provider error",
        provider: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.PROVIDER,
            context=ErrorContext(
                category=ErrorCategory.PROVIDER,
                recoverable=True,
                provider=provider,
                suggested_action="Retry on the next pass",
                details={"status_code": status_code} if status_code else {},
            ),
        )


class ReceiptNotFoundError(RecoverableError):
    """Transaction receipt not available yet (transaction not mined)."""

    def __init__(self, tx_hash: str, chain_id: Optional[int] = None):
        super().__init__(
            f"Receipt for {tx_hash} not found",
            category=ErrorCategory.NOT_FOUND,
            context=ErrorContext(
                category=ErrorCategory.NOT_FOUND,
                recoverable=True,
                tx_hash=tx_hash,
                chain_id=chain_id,
                suggested_action="Wait for the transaction to be mined",
            ),
        )
        self.tx_hash = tx_hash


# Specific unrecoverable errors
class ValidationError(UnrecoverableError):
    """Malformed or disallowed input."""

    def __init__(self, message: str, field_name: Optional[str] = None):
        super().__init__(
            message,
            category=ErrorCategory.VALIDATION,
            context=ErrorContext(
                category=ErrorCategory.VALIDATION,
                recoverable=False,
                suggested_action="Fix the request",
                details={"field": field_name} if field_name else {},
            ),
        )
        self.field_name = field_name


class AuthorizationError(UnrecoverableError):
    """Operator is not registered to sign delegation approvals."""

    def __init__(self, message: str = "Unauthorized operator address", operator: Optional[str] = None):
        super().__init__(
            message,
            category=ErrorCategory.AUTHORIZATION,
            context=ErrorContext(
                category=ErrorCategory.AUTHORIZATION,
                recoverable=False,
                details={"operator": operator} if operator else {},
            ),
        )
        self.operator = operator


class IntegrityError(UnrecoverableError):
    """Stored data or computed digests contradict each other."""

    def __init__(self, message: str, tx_hash: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            category=ErrorCategory.INTEGRITY,
            context=ErrorContext(
                category=ErrorCategory.INTEGRITY,
                recoverable=False,
                tx_hash=tx_hash,
                suggested_action="Investigate the record; do not retry",
                details=details or {},
            ),
        )
        self.tx_hash = tx_hash


class LedgerConflictError(UnrecoverableError):
    """A write would merge two transactions under one unique key."""

    def __init__(self, message: str, tx_hash: Optional[str] = None):
        super().__init__(
            message,
            category=ErrorCategory.CONFLICT,
            context=ErrorContext(
                category=ErrorCategory.CONFLICT,
                recoverable=False,
                tx_hash=tx_hash,
            ),
        )
        self.tx_hash = tx_hash


class ContractRevertError(UnrecoverableError):
    """A read-only contract call reverted."""

    def __init__(
        self,
        message: str = "Contract call reverted",
        contract_address: Optional[str] = None,
        error_data: Optional[str] = None,
    ):
        super().__init__(
            message,
            category=ErrorCategory.CONTRACT,
            context=ErrorContext(
                category=ErrorCategory.CONTRACT,
                recoverable=False,
                suggested_action="Review contract call parameters",
                details={
                    "contract": contract_address,
                    "error_data": error_data,
                },
            ),
        )


class MessageNotFoundError(UnrecoverableError):
    """The CCIP explorer does not know this message id."""

    def __init__(self, message_id: str):
        super().__init__(
            f"CCIP message {message_id} not found",
            category=ErrorCategory.NOT_FOUND,
            context=ErrorContext(
                category=ErrorCategory.NOT_FOUND,
                recoverable=False,
                provider="ccip",
                details={"message_id": message_id},
            ),
        )
        self.message_id = message_id


class SigningRejectedError(UnrecoverableError):
    """The key-holder declined to sign. Treated as a cancellation."""

    def __init__(self, message: str = "Signature request rejected"):
        super().__init__(
            message,
            category=ErrorCategory.USER_REJECTED,
            context=ErrorContext(category=ErrorCategory.USER_REJECTED, recoverable=False),
        )


def classify_error(error: Exception) -> ErrorContext:
    """
    Classify an exception and return its error context.

    Typed errors carry their own context. Raw transport exceptions are mapped
    by type; anything else is unknown and not retried.
    """
    if isinstance(error, (RecoverableError, UnrecoverableError)):
        return error.context

    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError)):
        return ErrorContext(
            category=ErrorCategory.TIMEOUT,
            recoverable=True,
            suggested_action="Retry with longer timeout",
        )

    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status == 429:
            return ErrorContext(
                category=ErrorCategory.RATE_LIMIT,
                recoverable=True,
                retry_after_seconds=5.0,
                suggested_action="Wait before retrying",
            )
        return ErrorContext(
            category=ErrorCategory.PROVIDER,
            recoverable=status >= 500,
            details={"status_code": status},
        )

    if isinstance(error, httpx.RequestError):
        return ErrorContext(
            category=ErrorCategory.NETWORK,
            recoverable=True,
            suggested_action="Check network connectivity",
        )

    return ErrorContext(category=ErrorCategory.UNKNOWN, recoverable=False)
