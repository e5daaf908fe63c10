from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError

from ..agent_runtime import AgentRuntime, get_runtime
from ..core.bridge.constants import EventSignatureMismatch, verify_event_signatures
from ..db.ledger import TransactionLedger, get_ledger

router = APIRouter()


@router.get("/healthz")
async def health_check(
    ledger: TransactionLedger = Depends(get_ledger),
    runtime: AgentRuntime = Depends(get_runtime),
) -> Dict[str, Any]:
    """Report the ledger, the background runtime and the event-signature check."""
    checks: Dict[str, Any] = {}

    try:
        ledger.ping()
        checks["database"] = {"status": "healthy"}
    except SQLAlchemyError as exc:
        checks["database"] = {"status": "unhealthy", "error": str(exc)}

    try:
        verify_event_signatures()
        checks["event_signatures"] = {"status": "healthy"}
    except EventSignatureMismatch as exc:
        checks["event_signatures"] = {"status": "unhealthy", "error": str(exc)}

    runtime_status = runtime.status()
    checks["runtime"] = {
        "status": "healthy" if runtime_status["running"] else "stopped",
        "strategies": runtime_status["strategies"],
    }

    all_healthy = checks["database"]["status"] == "healthy" and checks["event_signatures"]["status"] == "healthy"
    return {
        "status": "healthy" if all_healthy else "degraded",
        "checks": checks,
    }
