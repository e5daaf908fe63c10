from typing import Any, Dict

from eth_utils import is_hex_address
from fastapi import APIRouter, Depends, HTTPException

from ..core.execution.nonce_reconciler import NonceReconciler, get_nonce_reconciler
from ..core.recovery.errors import RecoverableError, UnrecoverableError
from ..db.ledger import TransactionLedger, get_ledger
from .errors import to_http_exception

router = APIRouter()


@router.get("/execnonce/{agent_address}")
async def get_exec_nonce(agent_address: str, ledger: TransactionLedger = Depends(get_ledger)) -> Dict[str, Any]:
    """Latest execNonce the ledger has seen for an address, and the one to use next."""
    if not is_hex_address(agent_address):
        raise HTTPException(status_code=400, detail="Invalid address format")
    latest = ledger.latest_exec_nonce(agent_address)
    return {
        "agentAddress": agent_address.lower(),
        "latestNonce": latest,
        "nextNonce": 0 if latest is None else latest + 1,
    }


@router.get("/agents/{user_address}/nonce")
async def get_reconciled_nonce(
    user_address: str,
    reconciler: NonceReconciler = Depends(get_nonce_reconciler),
) -> Dict[str, Any]:
    """Next execNonce from the ledger and the user's EigenAgent, whichever is higher."""
    try:
        state = await reconciler.reconcile(user_address)
    except (RecoverableError, UnrecoverableError) as exc:
        raise to_http_exception(exc) from exc
    return state.as_dict()
