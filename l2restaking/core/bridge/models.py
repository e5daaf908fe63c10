"""
Cross-chain transaction records and CCIP message status.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class TransactionType(str, Enum):
    DEPOSIT = "deposit"
    DEPOSIT_AND_MINT_EIGEN_AGENT = "depositAndMintEigenAgent"
    MINT_EIGEN_AGENT = "mintEigenAgent"
    QUEUE_WITHDRAWAL = "queueWithdrawal"
    COMPLETE_WITHDRAWAL = "completeWithdrawal"
    PROCESS_CLAIM = "processClaim"
    BRIDGING_WITHDRAWAL_TO_L2 = "bridgingWithdrawalToL2"
    BRIDGING_REWARDS_TO_L2 = "bridgingRewardsToL2"
    DELEGATE_TO = "delegateTo"
    UNDELEGATE = "undelegate"
    REDELEGATE = "redelegate"
    OTHER = "other"


BRIDGING_TO_L2_TYPES = frozenset(
    {TransactionType.BRIDGING_WITHDRAWAL_TO_L2, TransactionType.BRIDGING_REWARDS_TO_L2}
)


class TransactionStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class CCIPStatus(str, Enum):
    INFLIGHT = "INFLIGHT"
    PENDING = "PENDING"
    BLESSED = "BLESSED"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


_STATE_TO_STATUS = {
    0: CCIPStatus.INFLIGHT,
    1: CCIPStatus.PENDING,
    2: CCIPStatus.SUCCESS,
    3: CCIPStatus.FAILED,
}


def status_from_state(state: Any, data: Dict[str, Any]) -> CCIPStatus:
    """Map the explorer's numeric ``state`` to a status, falling back on receipt fields."""
    if isinstance(state, int) and not isinstance(state, bool) and state in _STATE_TO_STATUS:
        return _STATE_TO_STATUS[state]
    if data.get("receiptTransactionHash"):
        return CCIPStatus.SUCCESS
    if data.get("blessBlockNumber"):
        return CCIPStatus.BLESSED
    return CCIPStatus.PENDING


class CCIPMessage(BaseModel):
    """Subset of the CCIP explorer message payload the relay relies on."""

    model_config = ConfigDict(populate_by_name=True)

    message_id: str = Field(alias="messageId")
    state: Optional[int] = None
    status: CCIPStatus
    source_chain_id: Optional[str] = Field(default=None, alias="sourceChainId")
    dest_chain_id: Optional[str] = Field(default=None, alias="destChainId")
    receipt_transaction_hash: Optional[str] = Field(default=None, alias="receiptTransactionHash")
    dest_tx_hash: Optional[str] = Field(default=None, alias="destTxHash")
    data: Optional[str] = None
    sender: Optional[str] = None
    receiver: Optional[str] = None

    @classmethod
    def from_api(cls, payload: Dict[str, Any], message_id: str) -> "CCIPMessage":
        receipt = payload.get("receiptTransactionHash") or None
        state = payload.get("state")
        return cls(
            messageId=payload.get("messageId") or message_id,
            state=state if isinstance(state, int) else None,
            status=status_from_state(state, payload),
            sourceChainId=_as_str(payload.get("sourceChainId")),
            destChainId=_as_str(payload.get("destChainId")),
            receiptTransactionHash=receipt,
            destTxHash=receipt,
            data=payload.get("data"),
            sender=payload.get("sender"),
            receiver=payload.get("receiver"),
        )


def _as_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


class TransactionRecord(BaseModel):
    """A stored cross-chain transaction, serialized with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True, from_attributes=True)

    tx_hash: str = Field(alias="txHash")
    message_id: Optional[str] = Field(default=None, alias="messageId")
    timestamp: int
    tx_type: TransactionType = Field(alias="txType")
    status: TransactionStatus
    from_address: str = Field(alias="from")
    to_address: str = Field(alias="to")
    receipt_transaction_hash: Optional[str] = Field(default=None, alias="receiptTransactionHash")
    is_complete: bool = Field(alias="isComplete")
    source_chain_id: str = Field(alias="sourceChainId")
    destination_chain_id: str = Field(alias="destinationChainId")
    user: str
    exec_nonce: Optional[int] = Field(default=None, alias="execNonce")


class TransactionInput(BaseModel):
    """Inbound record; every field except txHash is optional and defaulted by the ledger.

    Enum fields are plain strings here so the ledger can reject unknown
    values with its own validation error.
    """

    model_config = ConfigDict(populate_by_name=True)

    tx_hash: str = Field(alias="txHash", min_length=1)
    message_id: Optional[str] = Field(default=None, alias="messageId")
    timestamp: Optional[int] = None
    tx_type: Optional[str] = Field(default=None, alias="txType")
    status: Optional[str] = None
    from_address: Optional[str] = Field(default=None, alias="from")
    to_address: Optional[str] = Field(default=None, alias="to")
    receipt_transaction_hash: Optional[str] = Field(default=None, alias="receiptTransactionHash")
    is_complete: Optional[bool] = Field(default=None, alias="isComplete")
    source_chain_id: Optional[str] = Field(default=None, alias="sourceChainId")
    destination_chain_id: Optional[str] = Field(default=None, alias="destinationChainId")
    user: Optional[str] = None
    exec_nonce: Optional[int] = Field(default=None, alias="execNonce", ge=0, lt=2**63)


class TransactionUpdate(BaseModel):
    """Partial update; only fields present in the payload are written."""

    model_config = ConfigDict(populate_by_name=True)

    message_id: Optional[str] = Field(default=None, alias="messageId")
    timestamp: Optional[int] = None
    tx_type: Optional[str] = Field(default=None, alias="txType")
    status: Optional[str] = None
    from_address: Optional[str] = Field(default=None, alias="from")
    to_address: Optional[str] = Field(default=None, alias="to")
    receipt_transaction_hash: Optional[str] = Field(default=None, alias="receiptTransactionHash")
    is_complete: Optional[bool] = Field(default=None, alias="isComplete")
    source_chain_id: Optional[str] = Field(default=None, alias="sourceChainId")
    destination_chain_id: Optional[str] = Field(default=None, alias="destinationChainId")
    user: Optional[str] = None
    exec_nonce: Optional[int] = Field(default=None, alias="execNonce", ge=0, lt=2**63)

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)
