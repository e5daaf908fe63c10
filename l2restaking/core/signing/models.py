"""
Signing request and result types.
"""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, Field

from .abi import HexOrBytes, require_address, to_bytes, to_hex
from ..recovery.errors import ValidationError


@dataclass(frozen=True, slots=True)
class AgentExecutionRequest:
    """A call the EigenAgent on the destination chain executes for its owner."""

    target_contract: str
    value: int
    data: bytes
    exec_nonce: int
    chain_id: int
    expiry: int

    @classmethod
    def build(
        cls,
        *,
        target_contract: str,
        data: HexOrBytes,
        exec_nonce: int,
        chain_id: int,
        expiry: int,
        value: int = 0,
    ) -> "AgentExecutionRequest":
        return cls(
            target_contract=require_address(target_contract, "target_contract"),
            value=int(value),
            data=to_bytes(data),
            exec_nonce=int(exec_nonce),
            chain_id=int(chain_id),
            expiry=int(expiry),
        )


@dataclass(frozen=True, slots=True)
class DelegationApprovalRequest:
    """Operator-side approval allowing ``staker`` to delegate to ``operator``."""

    staker: str
    operator: str
    approver: str
    salt: bytes
    expiry: int

    def __post_init__(self) -> None:
        if len(self.salt) != 32:
            raise ValidationError("salt must be 32 bytes", field_name="salt")
        if self.staker.lower() == self.approver.lower():
            raise ValidationError("Staker and approver cannot be the same", field_name="staker")


class DelegationApprovalResult(BaseModel):
    """Serialized approval returned to the delegating staker."""

    signature: str
    digest_hash: str = Field(alias="digestHash")
    salt: str
    expiry: str
    delegation_manager_address: str = Field(alias="delegationManagerAddress")
    chain_id: str = Field(alias="chainId")

    model_config = {"populate_by_name": True}

    @classmethod
    def from_parts(
        cls,
        *,
        signature: bytes,
        digest: bytes,
        request: DelegationApprovalRequest,
        delegation_manager: str,
        chain_id: int,
    ) -> "DelegationApprovalResult":
        return cls(
            signature=to_hex(signature),
            digestHash=to_hex(digest),
            salt=to_hex(request.salt),
            expiry=str(request.expiry),
            delegationManagerAddress=delegation_manager,
            chainId=str(chain_id),
        )
