"""
Signing service.

Two flows share the digest builder:

* Agent execution: a user's key-holder signs ``ExecuteWithSignature`` for
  their EigenAgent and the result is packed into the envelope the L1
  receiver verifies.
* Delegation approval: the relay signs ``DelegationApproval`` with a
  registered operator key so a staker can delegate to that operator.

Nothing here writes to the ledger; a record exists only once a dispatch
transaction is on chain.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Callable, Optional

from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import keccak

from ...config import settings
from ...providers.rpc import get_l1_client
from ..bridge.constants import CALCULATE_DELEGATION_APPROVAL_DIGEST_SIGNATURE
from ..operators import OperatorRegistry, get_operator_registry
from ..recovery.errors import (
    AuthorizationError,
    IntegrityError,
    RecoverableError,
    SigningRejectedError,
    UnrecoverableError,
    ValidationError,
)
from .abi import (
    HexOrBytes,
    encode_address,
    encode_bytes32,
    encode_uint,
    is_zero_address,
    require_address,
    selector_from_signature,
    to_hex,
)
from .digest import delegation_digest, execution_digest, execution_typed_data
from .envelope import SignedEnvelope, normalize_signature
from .key_holder import KeyHolder, LocalAccountKeyHolder
from .models import AgentExecutionRequest, DelegationApprovalRequest, DelegationApprovalResult

logger = logging.getLogger(__name__)

CALCULATE_DIGEST_SELECTOR = selector_from_signature(CALCULATE_DELEGATION_APPROVAL_DIGEST_SIGNATURE)


class SigningService:
    """Digest -> external signature -> envelope.

    ``l1_client`` is only needed for the delegation digest cross-check and
    may be None, in which case the locally computed digest is signed.
    """

    def __init__(
        self,
        *,
        operators: Optional[OperatorRegistry] = None,
        l1_client: Any = None,
        delegation_manager: Optional[str] = None,
        l1_chain_id: Optional[int] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.operators = operators if operators is not None else get_operator_registry()
        self.l1_client = l1_client
        self.delegation_manager = require_address(
            delegation_manager or settings.delegation_manager_address,
            "delegation_manager",
        )
        self.l1_chain_id = int(l1_chain_id or settings.l1_chain_id)
        self._clock = clock

    # ---------------------------
    # Agent execution
    # ---------------------------
    async def sign_agent_execution(
        self,
        key_holder: KeyHolder,
        *,
        signer_address: str,
        agent_address: str,
        chain_id: int,
        target_contract: str,
        call_data: HexOrBytes,
        exec_nonce: int,
        expiry: int,
        value: int = 0,
    ) -> SignedEnvelope:
        signer = require_address(signer_address, "signer_address")
        agent = require_address(agent_address, "agent_address")
        target = require_address(target_contract, "target_contract")
        if is_zero_address(target):
            raise ValidationError("Target contract cannot be the zero address", field_name="target_contract")
        if is_zero_address(agent):
            raise ValidationError("Agent address cannot be the zero address", field_name="agent_address")
        if int(chain_id) == 0:
            raise ValidationError("chainId must be non-zero", field_name="chain_id")
        if int(expiry) <= int(self._clock()):
            raise ValidationError("Expiry must be in the future", field_name="expiry")
        if signer.lower() != key_holder.address.lower():
            raise ValidationError("Key-holder does not control the signer address", field_name="signer_address")

        request = AgentExecutionRequest.build(
            target_contract=target,
            data=call_data,
            exec_nonce=exec_nonce,
            chain_id=chain_id,
            expiry=expiry,
            value=value,
        )
        digest = execution_digest(request, agent)
        typed_data = execution_typed_data(request, agent)
        signable = encode_typed_data(full_message=typed_data)
        if keccak(b"\x19" + signable.version + signable.header + signable.body) != digest:
            raise IntegrityError(
                "Typed-data encoding disagrees with the local execution digest",
                details={"digest": to_hex(digest)},
            )

        try:
            raw_signature = await key_holder.sign_typed_data(typed_data)
        except SigningRejectedError:
            logger.info("Signer %s declined execution nonce %d", signer, request.exec_nonce)
            raise

        signature = normalize_signature(raw_signature)
        recovered = Account.recover_message(signable, signature=_with_legacy_v(signature))
        if recovered.lower() != signer.lower():
            raise IntegrityError(
                "Execution signature does not recover to the signer",
                details={"digest": to_hex(digest), "recovered": recovered},
            )

        logger.info(
            "Signed execution for agent %s target %s nonce %d",
            agent,
            target,
            request.exec_nonce,
        )
        return SignedEnvelope(data=request.data, signer=signer, expiry=request.expiry, signature=signature)

    # ---------------------------
    # Delegation approval
    # ---------------------------
    async def fetch_contract_delegation_digest(self, request: DelegationApprovalRequest) -> bytes:
        """Ask DelegationManager for the digest it will verify against."""
        data = (
            CALCULATE_DIGEST_SELECTOR
            + encode_address(request.staker)
            + encode_address(request.operator)
            + encode_address(request.approver)
            + encode_bytes32(request.salt)
            + encode_uint(request.expiry)
        )
        result = await self.l1_client.eth_call(self.delegation_manager, data)
        if len(result) < 32:
            raise UnrecoverableError("calculateDelegationApprovalDigestHash returned no data")
        return result[:32]

    async def sign_delegation_approval(
        self,
        staker: str,
        operator: str,
        *,
        expiry: Optional[int] = None,
        salt: Optional[bytes] = None,
    ) -> DelegationApprovalResult:
        staker = require_address(staker, "staker")
        operator = require_address(operator, "operator")
        if staker.lower() == operator.lower():
            raise ValidationError("Staker and operator cannot be the same", field_name="staker")

        operator_key = self.operators.key_for(operator)
        if operator_key is None:
            raise AuthorizationError(operator=operator)
        key_holder = LocalAccountKeyHolder.from_key(operator_key)

        if expiry is None:
            expiry = int(self._clock()) + settings.delegation_expiry_seconds

        # The operator approves its own delegations
        request = DelegationApprovalRequest(
            staker=staker,
            operator=operator,
            approver=operator,
            salt=salt if salt is not None else os.urandom(32),
            expiry=int(expiry),
        )

        local_digest = delegation_digest(request, self.l1_chain_id, self.delegation_manager)
        digest = local_digest

        if self.l1_client is not None:
            try:
                contract_digest = await self.fetch_contract_delegation_digest(request)
            except (RecoverableError, UnrecoverableError) as exc:
                logger.warning("Delegation digest cross-check unavailable, signing local digest: %s", exc.message)
            else:
                if contract_digest != local_digest:
                    logger.critical(
                        "Delegation digest mismatch: contract=%s local=%s staker=%s operator=%s salt=%s expiry=%d",
                        to_hex(contract_digest),
                        to_hex(local_digest),
                        staker,
                        operator,
                        to_hex(request.salt),
                        request.expiry,
                    )
                digest = contract_digest

        signature = await key_holder.sign_digest(digest)
        logger.info("Signed delegation approval for staker %s to operator %s", staker, operator)
        return DelegationApprovalResult.from_parts(
            signature=signature,
            digest=digest,
            request=request,
            delegation_manager=self.delegation_manager,
            chain_id=self.l1_chain_id,
        )


def _with_legacy_v(signature: bytes) -> bytes:
    """eth-account recovers from v in {27, 28}."""
    v = signature[-1]
    return signature if v >= 27 else signature[:-1] + bytes([v + 27])


_signing_service: Optional[SigningService] = None


def get_signing_service() -> SigningService:
    """Get the singleton signing service wired to the L1 client."""
    global _signing_service
    if _signing_service is None:
        _signing_service = SigningService(l1_client=get_l1_client())
    return _signing_service
