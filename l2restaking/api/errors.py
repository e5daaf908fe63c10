"""Translate typed relay errors into HTTP responses."""

from fastapi import HTTPException

from ..core.recovery.errors import (
    AuthorizationError,
    LedgerConflictError,
    MessageNotFoundError,
    RecoverableError,
    UnrecoverableError,
    ValidationError,
)


def to_http_exception(exc: Exception) -> HTTPException:
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=exc.message)
    if isinstance(exc, AuthorizationError):
        return HTTPException(status_code=401, detail=exc.message)
    if isinstance(exc, MessageNotFoundError):
        return HTTPException(status_code=404, detail=exc.message)
    if isinstance(exc, LedgerConflictError):
        return HTTPException(status_code=409, detail=exc.message)
    if isinstance(exc, RecoverableError):
        return HTTPException(status_code=503, detail=exc.message)
    if isinstance(exc, UnrecoverableError):
        return HTTPException(status_code=502, detail=exc.message)
    return HTTPException(status_code=500, detail=str(exc))
