"""
Execution nonce reconciliation.

The next execNonce for an EigenAgent comes from two sources that can each
lag: the ledger (a dispatch from another client may not be recorded yet)
and the chain (an in-flight message has not executed yet). Taking the max
avoids reusing a nonce; skipping one is harmless because nonces only need
to increase.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Optional

from ..bridge.constants import EXEC_NONCE_SIGNATURE, GET_EIGEN_AGENT_SIGNATURE
from ..recovery.errors import RecoverableError, UnrecoverableError
from ..signing.abi import (
    decode_address_word,
    decode_uint_word,
    encode_address,
    is_zero_address,
    require_address,
    selector_from_signature,
)
from ...config import settings
from ...db.ledger import get_ledger
from ...providers.rpc import get_l1_client

logger = logging.getLogger(__name__)

GET_EIGEN_AGENT_SELECTOR = selector_from_signature(GET_EIGEN_AGENT_SIGNATURE)
EXEC_NONCE_SELECTOR = selector_from_signature(EXEC_NONCE_SIGNATURE)


@dataclass(frozen=True, slots=True)
class AgentNonceState:
    user_address: str
    agent_address: Optional[str]
    local_next_nonce: int
    on_chain_nonce: int
    next_nonce: int

    def as_dict(self) -> dict:
        return {
            "userAddress": self.user_address,
            "agentAddress": self.agent_address,
            "localNextNonce": self.local_next_nonce,
            "onChainNonce": self.on_chain_nonce,
            "nextNonce": self.next_nonce,
        }


class NonceReconciler:
    """Resolve the next execNonce for a user's EigenAgent.

    ``ledger`` provides ``next_exec_nonce(user)``; ``l1_client`` provides
    ``eth_call(to, data)``. ``agent_factory`` is the AgentFactory used to
    look up a user's agent when the caller does not pass one.
    """

    def __init__(self, ledger: Any, l1_client: Any, agent_factory: str = "") -> None:
        self.ledger = ledger
        self.l1_client = l1_client
        self.agent_factory = agent_factory

    async def resolve_agent(self, user_address: str) -> Optional[str]:
        """Return the user's EigenAgent, or None for a first-time user."""
        if not self.agent_factory:
            raise UnrecoverableError("agent_factory_address is not configured")
        data = GET_EIGEN_AGENT_SELECTOR + encode_address(user_address)
        result = await self.l1_client.eth_call(self.agent_factory, data)
        agent = decode_address_word(result[:32])
        return None if is_zero_address(agent) else agent

    async def _local_next(self, user_address: str) -> int:
        try:
            # Blocking database read; keep it off the event loop
            return int(await asyncio.to_thread(self.ledger.next_exec_nonce, user_address))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Ledger nonce unavailable for %s, using 0: %s", user_address, exc)
            return 0

    async def _on_chain(self, agent_address: str) -> int:
        try:
            result = await self.l1_client.eth_call(agent_address, EXEC_NONCE_SELECTOR)
            return decode_uint_word(result[:32])
        except (RecoverableError, UnrecoverableError) as exc:
            logger.warning("On-chain execNonce unavailable for %s, using 0: %s", agent_address, exc.message)
            return 0

    async def reconcile(self, user_address: str, agent_address: Optional[str] = None) -> AgentNonceState:
        user = require_address(user_address, "user_address")

        if agent_address is None:
            try:
                agent = await self.resolve_agent(user)
            except (RecoverableError, UnrecoverableError) as exc:
                logger.warning("AgentFactory lookup failed for %s, using ledger only: %s", user, exc.message)
                local_next = await self._local_next(user)
                return AgentNonceState(user, None, local_next, 0, local_next)

            if agent is None:
                # Agent not minted yet: its first execution uses nonce 0
                return AgentNonceState(user, None, 0, 0, 0)
        else:
            agent = require_address(agent_address, "agent_address")

        local_next, on_chain = await asyncio.gather(self._local_next(user), self._on_chain(agent))
        next_nonce = max(local_next, on_chain)
        if local_next != on_chain:
            logger.info(
                "Nonce sources disagree for %s: ledger=%d chain=%d, using %d",
                agent,
                local_next,
                on_chain,
                next_nonce,
            )
        return AgentNonceState(user, agent, local_next, on_chain, next_nonce)


_nonce_reconciler: Optional[NonceReconciler] = None


def get_nonce_reconciler() -> NonceReconciler:
    """Get the singleton reconciler wired to the ledger and the L1 client."""
    global _nonce_reconciler
    if _nonce_reconciler is None:
        _nonce_reconciler = NonceReconciler(get_ledger(), get_l1_client(), settings.agent_factory_address)
    return _nonce_reconciler
