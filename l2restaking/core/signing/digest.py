"""
EIP-712 digests for the two signing domains.

Agent execution:
    domain  EigenAgent / major version / chainId / agent address
    struct  ExecuteWithSignature(target, value, keccak(data), execNonce, chainId, expiry)

Delegation approval:
    domain  EigenLayer / v1 / chainId / DelegationManager
    struct  DelegationApproval(delegationApprover, staker, operator, salt, expiry)

Everything here is pure: identical inputs give byte-identical output.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from eth_utils import keccak

from ...config import settings
from .abi import encode_address, encode_bytes32, encode_uint, require_address
from .models import AgentExecutionRequest, DelegationApprovalRequest

EIP712_DOMAIN_TYPE = "EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
EXECUTE_WITH_SIGNATURE_TYPE = (
    "ExecuteWithSignature(address target,uint256 value,bytes data,uint256 execNonce,uint256 chainId,uint256 expiry)"
)
DELEGATION_APPROVAL_TYPE = (
    "DelegationApproval(address delegationApprover,address staker,address operator,bytes32 salt,uint256 expiry)"
)

EIP712_DOMAIN_TYPEHASH = keccak(text=EIP712_DOMAIN_TYPE)
EXECUTE_WITH_SIGNATURE_TYPEHASH = keccak(text=EXECUTE_WITH_SIGNATURE_TYPE)
DELEGATION_APPROVAL_TYPEHASH = keccak(text=DELEGATION_APPROVAL_TYPE)

AGENT_DOMAIN_NAME = "EigenAgent"
DELEGATION_DOMAIN_NAME = "EigenLayer"
DELEGATION_DOMAIN_VERSION = "v1"

_DOMAIN_FIELDS = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]


def major_version(version: str) -> str:
    """``v1.0.0`` -> ``v1``; the agent's domain only commits to the major part."""
    core = version[1:] if version.lower().startswith("v") else version
    return f"v{core.split('.')[0]}"


def domain_separator(name: str, version: str, chain_id: int, verifying_contract: str) -> bytes:
    encoded = (
        EIP712_DOMAIN_TYPEHASH.hex()
        + keccak(text=name).hex()
        + keccak(text=version).hex()
        + encode_uint(int(chain_id))
        + encode_address(verifying_contract)
    )
    return keccak(hexstr=encoded)


def eip712_digest(domain_sep: bytes, struct_hash: bytes) -> bytes:
    return keccak(b"\x19\x01" + domain_sep + struct_hash)


# ---------------------------
# Agent execution
# ---------------------------
def agent_domain_separator(agent_address: str, chain_id: int, version: Optional[str] = None) -> bytes:
    return domain_separator(
        AGENT_DOMAIN_NAME,
        major_version(version or settings.eigen_agent_version),
        chain_id,
        agent_address,
    )


def execution_struct_hash(request: AgentExecutionRequest) -> bytes:
    encoded = (
        EXECUTE_WITH_SIGNATURE_TYPEHASH.hex()
        + encode_address(request.target_contract)
        + encode_uint(request.value)
        + keccak(request.data).hex()
        + encode_uint(request.exec_nonce)
        + encode_uint(request.chain_id)
        + encode_uint(request.expiry)
    )
    return keccak(hexstr=encoded)


def execution_digest(
    request: AgentExecutionRequest,
    agent_address: str,
    version: Optional[str] = None,
) -> bytes:
    return eip712_digest(
        agent_domain_separator(agent_address, request.chain_id, version),
        execution_struct_hash(request),
    )


def execution_typed_data(
    request: AgentExecutionRequest,
    agent_address: str,
    version: Optional[str] = None,
) -> Dict[str, Any]:
    """Typed-data payload a wallet signs; hashes to :func:`execution_digest`."""
    return {
        "types": {
            "EIP712Domain": _DOMAIN_FIELDS,
            "ExecuteWithSignature": [
                {"name": "target", "type": "address"},
                {"name": "value", "type": "uint256"},
                {"name": "data", "type": "bytes"},
                {"name": "execNonce", "type": "uint256"},
                {"name": "chainId", "type": "uint256"},
                {"name": "expiry", "type": "uint256"},
            ],
        },
        "primaryType": "ExecuteWithSignature",
        "domain": {
            "name": AGENT_DOMAIN_NAME,
            "version": major_version(version or settings.eigen_agent_version),
            "chainId": request.chain_id,
            "verifyingContract": require_address(agent_address, "agent_address"),
        },
        "message": {
            "target": request.target_contract,
            "value": request.value,
            "data": request.data,
            "execNonce": request.exec_nonce,
            "chainId": request.chain_id,
            "expiry": request.expiry,
        },
    }


# ---------------------------
# Delegation approval
# ---------------------------
def delegation_domain_separator(chain_id: int, delegation_manager: Optional[str] = None) -> bytes:
    return domain_separator(
        DELEGATION_DOMAIN_NAME,
        DELEGATION_DOMAIN_VERSION,
        chain_id,
        delegation_manager or settings.delegation_manager_address,
    )


def delegation_struct_hash(request: DelegationApprovalRequest) -> bytes:
    encoded = (
        DELEGATION_APPROVAL_TYPEHASH.hex()
        + encode_address(request.approver)
        + encode_address(request.staker)
        + encode_address(request.operator)
        + encode_bytes32(request.salt)
        + encode_uint(request.expiry)
    )
    return keccak(hexstr=encoded)


def delegation_digest(
    request: DelegationApprovalRequest,
    chain_id: int,
    delegation_manager: Optional[str] = None,
) -> bytes:
    return eip712_digest(
        delegation_domain_separator(chain_id, delegation_manager),
        delegation_struct_hash(request),
    )


def delegation_typed_data(
    request: DelegationApprovalRequest,
    chain_id: int,
    delegation_manager: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "types": {
            "EIP712Domain": _DOMAIN_FIELDS,
            "DelegationApproval": [
                {"name": "delegationApprover", "type": "address"},
                {"name": "staker", "type": "address"},
                {"name": "operator", "type": "address"},
                {"name": "salt", "type": "bytes32"},
                {"name": "expiry", "type": "uint256"},
            ],
        },
        "primaryType": "DelegationApproval",
        "domain": {
            "name": DELEGATION_DOMAIN_NAME,
            "version": DELEGATION_DOMAIN_VERSION,
            "chainId": int(chain_id),
            "verifyingContract": require_address(
                delegation_manager or settings.delegation_manager_address,
                "delegation_manager",
            ),
        },
        "message": {
            "delegationApprover": request.approver,
            "staker": request.staker,
            "operator": request.operator,
            "salt": request.salt,
            "expiry": request.expiry,
        },
    }
