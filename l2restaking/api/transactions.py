import logging
from typing import Any, Dict, List

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException

from ..core.bridge.models import TransactionInput, TransactionRecord, TransactionUpdate
from ..core.bridge.receipts import ReceiptReader, get_receipt_reader
from ..core.bridge.status_reconciler import StatusReconciler, get_status_reconciler
from ..core.recovery.errors import RecoverableError, UnrecoverableError
from ..db.ledger import TransactionLedger, get_ledger
from .errors import to_http_exception

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transactions")


def _serialize(record: TransactionRecord) -> Dict[str, Any]:
    return record.model_dump(by_alias=True, mode="json")


async def _check_status(reconciler: StatusReconciler, message_id: str) -> None:
    try:
        await reconciler.reconcile_message(message_id)
    except (RecoverableError, UnrecoverableError) as exc:
        # The poller picks the record up on its next pass
        logger.warning("Immediate status check for %s failed: %s", message_id, exc.message)


@router.post("")
async def create_transaction(
    payload: TransactionInput,
    background_tasks: BackgroundTasks,
    ledger: TransactionLedger = Depends(get_ledger),
    receipts: ReceiptReader = Depends(get_receipt_reader),
    reconciler: StatusReconciler = Depends(get_status_reconciler),
) -> Dict[str, Any]:
    """Record a dispatched transaction, resolving its CCIP message id from the receipt when missing."""
    if not payload.message_id:
        try:
            details = await receipts.fetch_dispatch_details(
                payload.tx_hash,
                tx_type=payload.tx_type,
                source_chain_id=payload.source_chain_id,
            )
        except (RecoverableError, UnrecoverableError) as exc:
            logger.warning("Could not read dispatch receipt for %s: %s", payload.tx_hash, exc.message)
        else:
            updates: Dict[str, Any] = {}
            if details.message_id:
                updates["message_id"] = details.message_id
            if details.agent_owner:
                updates["user"] = details.agent_owner
            payload = payload.model_copy(update=updates)

    try:
        record = ledger.upsert(payload)
    except (RecoverableError, UnrecoverableError) as exc:
        raise to_http_exception(exc) from exc

    if record.message_id and record.message_id != record.tx_hash and not record.is_complete:
        background_tasks.add_task(_check_status, reconciler, record.message_id)

    return _serialize(record)


@router.get("")
async def list_transactions(ledger: TransactionLedger = Depends(get_ledger)) -> List[Dict[str, Any]]:
    return [_serialize(record) for record in ledger.list_all()]


@router.get("/user/{address}")
async def list_user_transactions(address: str, ledger: TransactionLedger = Depends(get_ledger)) -> List[Dict[str, Any]]:
    return [_serialize(record) for record in ledger.get_by_user(address)]


@router.get("/hash/{tx_hash}")
async def get_transaction(tx_hash: str, ledger: TransactionLedger = Depends(get_ledger)) -> Dict[str, Any]:
    record = ledger.get_by_hash(tx_hash)
    if record is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return _serialize(record)


@router.get("/messageId/{message_id}")
async def get_transaction_by_message_id(
    message_id: str,
    ledger: TransactionLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    record = ledger.get_by_message_id(message_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return _serialize(record)


@router.put("/messageId/{message_id}")
async def update_transaction_by_message_id(
    message_id: str,
    changes: TransactionUpdate,
    ledger: TransactionLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    try:
        record = ledger.update_by_message_id(message_id, changes)
    except (RecoverableError, UnrecoverableError) as exc:
        raise to_http_exception(exc) from exc
    if record is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return _serialize(record)


@router.put("/{tx_hash}")
async def update_transaction(
    tx_hash: str,
    changes: TransactionUpdate,
    ledger: TransactionLedger = Depends(get_ledger),
) -> Dict[str, Any]:
    try:
        record = ledger.update_by_hash(tx_hash, changes)
    except (RecoverableError, UnrecoverableError) as exc:
        raise to_http_exception(exc) from exc
    if record is None:
        raise HTTPException(status_code=404, detail="Transaction not found")
    return _serialize(record)
