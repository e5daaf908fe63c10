"""
Transaction ledger.

Durable store for cross-chain transaction records. Upserts are a single
``INSERT ... ON CONFLICT DO UPDATE``; merge updates resolve the primary key
and issue one ``UPDATE`` inside the same transaction, so concurrent API
requests and reconciliation passes never interleave partial writes.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from eth_utils import is_hex_address
from pydantic import ValidationError as ModelValidationError
from sqlalchemy import create_engine, delete, func, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError as SQLAlchemyIntegrityError
from sqlalchemy.orm import Session, sessionmaker

from ..config import settings
from ..core.bridge.models import (
    BRIDGING_TO_L2_TYPES,
    TransactionInput,
    TransactionRecord,
    TransactionStatus,
    TransactionType,
    TransactionUpdate,
)
from ..core.recovery.errors import LedgerConflictError, ValidationError
from ..core.signing.abi import ZERO_ADDRESS
from .models import Base, Transaction

logger = logging.getLogger(__name__)

RecordLike = Union[TransactionInput, Mapping[str, Any]]

_ADDRESS_FIELDS = ("from_address", "to_address", "user")
# Columns an update may change but never clear
_REQUIRED_FIELDS = (
    "timestamp",
    "tx_type",
    "status",
    "from_address",
    "to_address",
    "is_complete",
    "source_chain_id",
    "destination_chain_id",
    "user",
)


def _validate_model(model, data: Mapping[str, Any]):
    try:
        return model.model_validate(dict(data))
    except ModelValidationError as exc:
        first = exc.errors()[0]
        field_name = ".".join(str(part) for part in first.get("loc", ())) or None
        raise ValidationError(f"Invalid transaction payload: {first.get('msg')}", field_name=field_name) from exc


def _parse_type(value: Any) -> str:
    try:
        return TransactionType(value).value
    except ValueError:
        valid = ", ".join(t.value for t in TransactionType)
        raise ValidationError(
            f"Invalid transaction type: {value}. Valid types are: {valid}",
            field_name="txType",
        ) from None


def _parse_status(value: Any) -> str:
    try:
        return TransactionStatus(value).value
    except ValueError:
        valid = ", ".join(s.value for s in TransactionStatus)
        raise ValidationError(
            f"Invalid transaction status: {value}. Valid statuses are: {valid}",
            field_name="status",
        ) from None


def _check_address(value: str, field_name: str) -> str:
    if not is_hex_address(value):
        raise ValidationError(f"Invalid address for {field_name}: {value!r}", field_name=field_name)
    return value


def _to_record(row: Transaction) -> TransactionRecord:
    return TransactionRecord(
        tx_hash=row.tx_hash,
        message_id=row.message_id,
        timestamp=row.timestamp,
        tx_type=row.tx_type,
        status=row.status,
        from_address=row.from_address,
        to_address=row.to_address,
        receipt_transaction_hash=row.receipt_transaction_hash,
        is_complete=bool(row.is_complete),
        source_chain_id=row.source_chain_id,
        destination_chain_id=row.destination_chain_id,
        user=row.user,
        exec_nonce=row.exec_nonce,
    )


class TransactionLedger:
    """Keyed, indexed store of :class:`TransactionRecord`.

    Lookups return records newest first. ``message_id`` is unique when set;
    an empty message id is stored as NULL so any number of records can wait
    for their bridge id at once.
    """

    def __init__(
        self,
        database_url: Optional[str] = None,
        *,
        engine: Optional[Engine] = None,
        l1_chain_id: Optional[str] = None,
        l2_chain_id: Optional[str] = None,
    ) -> None:
        if engine is None:
            url = database_url or settings.database_url
            connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
            engine = create_engine(url, connect_args=connect_args)
        self.engine = engine
        self._sessions = sessionmaker(bind=engine, expire_on_commit=False)
        self.l1_chain_id = l1_chain_id or settings.l1_chain_id
        self.l2_chain_id = l2_chain_id or settings.l2_chain_id

    # ---------------------------
    # Schema
    # ---------------------------
    def create_schema(self) -> None:
        Base.metadata.create_all(self.engine)

    def ping(self) -> bool:
        with self._sessions() as session:
            session.execute(select(func.count()).select_from(Transaction))
        return True

    # ---------------------------
    # Normalization
    # ---------------------------
    def default_chain_ids(self, tx_type: str) -> tuple[str, str]:
        kind = TransactionType(tx_type)
        if kind in BRIDGING_TO_L2_TYPES:
            return self.l1_chain_id, self.l2_chain_id
        if kind == TransactionType.DEPOSIT:
            return self.l2_chain_id, self.l1_chain_id
        return self.l1_chain_id, self.l1_chain_id

    def normalize(self, record: RecordLike) -> Dict[str, Any]:
        """Fill documented defaults and validate; returns column values by attribute name."""
        if not isinstance(record, TransactionInput):
            record = _validate_model(TransactionInput, record)

        tx_hash = record.tx_hash.strip()
        if not tx_hash:
            raise ValidationError("txHash is required", field_name="txHash")

        tx_type = _parse_type(record.tx_type) if record.tx_type else TransactionType.OTHER.value
        status = _parse_status(record.status) if record.status else TransactionStatus.PENDING.value
        is_complete = bool(record.is_complete) if record.is_complete is not None else False
        if is_complete and status == TransactionStatus.PENDING.value:
            raise ValidationError("A complete transaction cannot be pending", field_name="isComplete")

        if record.message_id is None:
            message_id: Optional[str] = tx_hash
        else:
            message_id = record.message_id.strip() or None

        default_source, default_dest = self.default_chain_ids(tx_type)
        from_address = record.from_address or ZERO_ADDRESS
        to_address = record.to_address or ZERO_ADDRESS
        user = record.user or record.from_address or ZERO_ADDRESS

        values = {
            "tx_hash": tx_hash,
            "message_id": message_id,
            "timestamp": record.timestamp if record.timestamp is not None else int(time.time()),
            "tx_type": tx_type,
            "status": status,
            "from_address": from_address,
            "to_address": to_address,
            "receipt_transaction_hash": record.receipt_transaction_hash or None,
            "is_complete": is_complete,
            "source_chain_id": str(record.source_chain_id or default_source),
            "destination_chain_id": str(record.destination_chain_id or default_dest),
            "user": user.lower(),
            "exec_nonce": record.exec_nonce,
        }
        for name in _ADDRESS_FIELDS:
            _check_address(values[name], name)
        return values

    def _normalize_changes(self, changes: Union[TransactionUpdate, Mapping[str, Any]]) -> Dict[str, Any]:
        if not isinstance(changes, TransactionUpdate):
            changes = _validate_model(TransactionUpdate, changes)
        values = changes.changes()
        for name in _REQUIRED_FIELDS:
            if name in values and values[name] is None:
                raise ValidationError(f"{name} cannot be cleared", field_name=name)
        if "tx_type" in values:
            values["tx_type"] = _parse_type(values["tx_type"])
        if "status" in values:
            values["status"] = _parse_status(values["status"])
        if "message_id" in values and values["message_id"] is not None:
            values["message_id"] = values["message_id"].strip() or None
        for name in _ADDRESS_FIELDS:
            if values.get(name) is not None:
                _check_address(values[name], name)
        if values.get("user"):
            values["user"] = values["user"].lower()
        return values

    # ---------------------------
    # Writes
    # ---------------------------
    def _upsert_statement(self, values: Dict[str, Any]):
        dialect = postgresql if self.engine.dialect.name == "postgresql" else sqlite
        stmt = dialect.insert(Transaction).values(**values)
        columns = Transaction.__table__.columns
        return stmt.on_conflict_do_update(
            index_elements=[columns["txHash"]],
            set_={column: stmt.excluded[column.key] for column in columns if not column.primary_key},
        )

    def upsert(self, record: RecordLike) -> TransactionRecord:
        """Insert or replace the record keyed by txHash."""
        values = self.normalize(record)
        try:
            with self._sessions.begin() as session:
                session.execute(self._upsert_statement(values))
                row = session.get(Transaction, values["tx_hash"], populate_existing=True)
                result = _to_record(row)
        except SQLAlchemyIntegrityError as exc:
            raise LedgerConflictError(
                f"Transaction {values['tx_hash']} collides with an existing record: {exc.orig}",
                tx_hash=values["tx_hash"],
            ) from exc
        logger.info("Upserted transaction %s (%s, %s)", result.tx_hash, result.tx_type.value, result.status.value)
        return result

    def upsert_many(self, records: Iterable[RecordLike]) -> int:
        """Upsert a batch atomically: either every record is written or none."""
        batch = [self.normalize(record) for record in records]
        if not batch:
            return 0
        try:
            with self._sessions.begin() as session:
                for values in batch:
                    session.execute(self._upsert_statement(values))
        except SQLAlchemyIntegrityError as exc:
            raise LedgerConflictError(f"Batch upsert rejected: {exc.orig}") from exc
        logger.info("Upserted %d transactions in one batch", len(batch))
        return len(batch)

    def _update_where(self, criterion, changes) -> Optional[TransactionRecord]:
        values = self._normalize_changes(changes)
        try:
            with self._sessions.begin() as session:
                current = session.execute(
                    select(Transaction.tx_hash, Transaction.status, Transaction.is_complete).where(criterion)
                ).one_or_none()
                if current is None:
                    return None

                status = values.get("status", current.status)
                is_complete = values.get("is_complete", current.is_complete)
                if is_complete and status == TransactionStatus.PENDING.value:
                    raise ValidationError("A complete transaction cannot be pending", field_name="isComplete")

                # Re-read by primary key: the update may rewrite the column matched on
                if values:
                    session.execute(update(Transaction).where(Transaction.tx_hash == current.tx_hash).values(**values))
                row = session.get(Transaction, current.tx_hash, populate_existing=True)
                return _to_record(row)
        except SQLAlchemyIntegrityError as exc:
            raise LedgerConflictError(f"Update rejected by ledger constraints: {exc.orig}") from exc

    def update_by_hash(
        self, tx_hash: str, changes: Union[TransactionUpdate, Mapping[str, Any]]
    ) -> Optional[TransactionRecord]:
        """Merge ``changes`` into the record; unspecified fields keep their value."""
        return self._update_where(Transaction.tx_hash == tx_hash, changes)

    def update_by_message_id(
        self, message_id: str, changes: Union[TransactionUpdate, Mapping[str, Any]]
    ) -> Optional[TransactionRecord]:
        return self._update_where(Transaction.message_id == message_id, changes)

    def clear_all(self) -> int:
        with self._sessions.begin() as session:
            result = session.execute(delete(Transaction))
        logger.warning("Cleared %d transactions from the ledger", result.rowcount)
        return result.rowcount

    # ---------------------------
    # Reads
    # ---------------------------
    def _select(self, session: Session, *criteria) -> List[TransactionRecord]:
        stmt = select(Transaction).where(*criteria).order_by(Transaction.timestamp.desc())
        return [_to_record(row) for row in session.execute(stmt).scalars()]

    def list_all(self) -> List[TransactionRecord]:
        with self._sessions() as session:
            return self._select(session)

    def get_by_hash(self, tx_hash: str) -> Optional[TransactionRecord]:
        with self._sessions() as session:
            row = session.get(Transaction, tx_hash)
            return _to_record(row) if row is not None else None

    def get_by_message_id(self, message_id: str) -> Optional[TransactionRecord]:
        if not message_id:
            return None
        with self._sessions() as session:
            rows = self._select(session, Transaction.message_id == message_id)
            return rows[0] if rows else None

    def get_by_user(self, user: str) -> List[TransactionRecord]:
        with self._sessions() as session:
            return self._select(session, Transaction.user == user.lower())

    def list_pending(self) -> List[TransactionRecord]:
        """Records the bridge has not finished with, oldest first."""
        with self._sessions() as session:
            stmt = (
                select(Transaction)
                .where(Transaction.is_complete.is_(False))
                .order_by(Transaction.timestamp.asc())
            )
            return [_to_record(row) for row in session.execute(stmt).scalars()]

    def latest_exec_nonce(self, user: str) -> Optional[int]:
        """Highest execNonce among the user's pending records, else among all of them."""
        owner = user.lower()
        with self._sessions() as session:
            pending = session.execute(
                select(func.max(Transaction.exec_nonce)).where(
                    Transaction.user == owner,
                    Transaction.is_complete.is_(False),
                    Transaction.exec_nonce.is_not(None),
                )
            ).scalar_one_or_none()
            if pending is not None:
                return int(pending)

            overall = session.execute(
                select(func.max(Transaction.exec_nonce)).where(
                    Transaction.user == owner,
                    Transaction.exec_nonce.is_not(None),
                )
            ).scalar_one_or_none()
            return int(overall) if overall is not None else None

    def next_exec_nonce(self, user: str) -> int:
        latest = self.latest_exec_nonce(user)
        return 0 if latest is None else latest + 1


_ledger: Optional[TransactionLedger] = None


def get_ledger() -> TransactionLedger:
    """Get the singleton ledger bound to settings.database_url."""
    global _ledger
    if _ledger is None:
        _ledger = TransactionLedger()
        _ledger.create_schema()
    return _ledger
