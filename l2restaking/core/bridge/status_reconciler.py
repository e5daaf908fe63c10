"""
Pending transaction reconciliation.

Walks every ledger record the bridge has not finished with, asks the CCIP
explorer for its message state, and moves it to a terminal status:

    SUCCESS -> confirmed, isComplete, receipt hash adopted
    FAILED  -> failed, isComplete
    other   -> left pending, no write

One bad record never aborts the batch: integrity violations are logged at
critical level, transient errors are logged and retried on the next pass.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ...db.ledger import get_ledger
from ...providers.ccip import get_ccip_client
from ..recovery.errors import (
    IntegrityError,
    MessageNotFoundError,
    RecoverableError,
    UnrecoverableError,
)
from .models import CCIPStatus, TransactionRecord, TransactionStatus


@dataclass
class ReconcileSummary:
    checked: int = 0
    confirmed: int = 0
    failed: int = 0
    unchanged: int = 0
    skipped: int = 0
    errors: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "checked": self.checked,
            "confirmed": self.confirmed,
            "failed": self.failed,
            "unchanged": self.unchanged,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


class StatusReconciler:
    """Advance pending ledger records using the CCIP explorer.

    ``ledger`` is a :class:`TransactionLedger`; ``ccip_client`` exposes
    ``async get_message(message_id) -> CCIPMessage``.
    """

    def __init__(self, ledger: Any, ccip_client: Any, logger: Optional[logging.Logger] = None) -> None:
        self.ledger = ledger
        self.ccip = ccip_client
        self.logger = logger or logging.getLogger(__name__)

    async def reconcile_record(self, record: TransactionRecord) -> Optional[TransactionRecord]:
        """Reconcile one record; returns the updated record or None when nothing changed."""
        if record.is_complete:
            return None
        if not record.message_id:
            self.logger.debug("Transaction %s has no bridge message id yet", record.tx_hash)
            return None
        if record.message_id == record.tx_hash:
            raise IntegrityError(
                f"Transaction {record.tx_hash} has messageId equal to its txHash",
                tx_hash=record.tx_hash,
            )

        message = await self.ccip.get_message(record.message_id)

        if message.status == CCIPStatus.SUCCESS:
            changes: Dict[str, Any] = {
                "status": TransactionStatus.CONFIRMED.value,
                "is_complete": True,
                "receipt_transaction_hash": message.receipt_transaction_hash or record.receipt_transaction_hash,
            }
            self.logger.info("Transaction %s confirmed by CCIP", record.tx_hash)
        elif message.status == CCIPStatus.FAILED:
            changes = {
                "status": TransactionStatus.FAILED.value,
                "is_complete": True,
            }
            self.logger.info("Transaction %s failed on CCIP", record.tx_hash)
        else:
            self.logger.debug("Transaction %s still in progress (%s)", record.tx_hash, message.status.value)
            return None

        return self.ledger.update_by_hash(record.tx_hash, changes)

    async def reconcile_message(self, message_id: str) -> Optional[TransactionRecord]:
        """On-demand check for a single message id."""
        record = self.ledger.get_by_message_id(message_id)
        if record is None:
            self.logger.info("No transaction found with messageId %s", message_id)
            return None
        try:
            return await self.reconcile_record(record)
        except IntegrityError as exc:
            self.logger.critical("Ledger integrity violation: %s", exc.message)
            raise

    async def run_once(self) -> ReconcileSummary:
        summary = ReconcileSummary()
        pending = self.ledger.list_pending()

        for record in pending:
            summary.checked += 1
            try:
                updated = await self.reconcile_record(record)
            except IntegrityError as exc:
                self.logger.critical("Ledger integrity violation: %s", exc.message)
                summary.errors.append(record.tx_hash)
                continue
            except MessageNotFoundError:
                self.logger.info("CCIP does not know message %s yet", record.message_id)
                summary.skipped += 1
                continue
            except RecoverableError as exc:
                self.logger.warning("Status check for %s skipped this pass: %s", record.tx_hash, exc.message)
                summary.errors.append(record.tx_hash)
                continue
            except UnrecoverableError as exc:
                self.logger.error("Status check for %s failed: %s", record.tx_hash, exc.message)
                summary.errors.append(record.tx_hash)
                continue

            if updated is None:
                summary.unchanged += 1
            elif updated.status == TransactionStatus.CONFIRMED:
                summary.confirmed += 1
            elif updated.status == TransactionStatus.FAILED:
                summary.failed += 1

        if pending:
            self.logger.info(
                "Reconciled %d pending transactions: %d confirmed, %d failed, %d errors",
                summary.checked,
                summary.confirmed,
                summary.failed,
                len(summary.errors),
            )
        return summary


_status_reconciler: Optional[StatusReconciler] = None


def get_status_reconciler() -> StatusReconciler:
    """Get the singleton reconciler wired to the ledger and the CCIP client."""
    global _status_reconciler
    if _status_reconciler is None:
        _status_reconciler = StatusReconciler(get_ledger(), get_ccip_client())
    return _status_reconciler
