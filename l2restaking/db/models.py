"""SQLAlchemy ORM model for the cross-chain transaction ledger.

Column names follow the legacy ``transactions`` table so existing SQLite
files can be opened in place. Closed enumerations and the
isComplete/pending invariant are enforced with CHECK constraints.
"""

from typing import Optional

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from ..core.bridge.models import TransactionStatus, TransactionType


def _in_clause(column: str, values) -> str:
    quoted = ", ".join(f"'{v.value}'" for v in values)
    return f"{column} IN ({quoted})"


class Base(DeclarativeBase):
    """Base class for ledger models."""


class Transaction(Base):
    """One cross-chain transaction dispatched from L2 or L1.

    Lifecycle: pending -> confirmed | failed. ``is_complete`` flips once the
    bridge reports a terminal state; a record can be confirmed but not yet
    complete while the destination receipt is unknown.
    """

    __tablename__ = "transactions"

    tx_hash: Mapped[str] = mapped_column("txHash", String(66), primary_key=True)
    # NULL while the bridge id is unknown; unique otherwise
    message_id: Mapped[Optional[str]] = mapped_column("messageId", String(66), nullable=True, unique=True)
    timestamp: Mapped[int] = mapped_column(Integer, nullable=False)
    tx_type: Mapped[str] = mapped_column("txType", String(32), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False)
    from_address: Mapped[str] = mapped_column("from_address", String(42), nullable=False)
    to_address: Mapped[str] = mapped_column("to_address", String(42), nullable=False)
    receipt_transaction_hash: Mapped[Optional[str]] = mapped_column(
        "receiptTransactionHash", String(66), nullable=True
    )
    is_complete: Mapped[bool] = mapped_column("isComplete", Boolean, nullable=False, default=False)
    source_chain_id: Mapped[str] = mapped_column("sourceChainId", String(32), nullable=False)
    destination_chain_id: Mapped[str] = mapped_column("destinationChainId", String(32), nullable=False)
    user: Mapped[str] = mapped_column(String(42), nullable=False)
    exec_nonce: Mapped[Optional[int]] = mapped_column("execNonce", BigInteger, nullable=True)

    __table_args__ = (
        CheckConstraint(_in_clause('"txType"', TransactionType), name="ck_transactions_tx_type"),
        CheckConstraint(_in_clause("status", TransactionStatus), name="ck_transactions_status"),
        CheckConstraint("""NOT "isComplete" OR status != 'pending'""", name="ck_transactions_complete_not_pending"),
        Index("idx_message_id", "messageId"),
        Index("idx_user", "user"),
        Index("idx_receipt_tx_hash", "receiptTransactionHash"),
        Index("idx_eigen_agent_exec_nonce", "user", "execNonce"),
    )

    def __repr__(self) -> str:
        return f"<Transaction {self.tx_hash} {self.tx_type} {self.status}>"
