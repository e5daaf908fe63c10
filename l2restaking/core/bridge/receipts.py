"""
Receipt log parsing for dispatch transactions.

A CCIP dispatch emits ``MessageSent`` with the message id as its first
indexed topic. L1 -> L2 bridging transactions additionally emit
``BridgingWithdrawalToL2`` or ``BridgingRewardsToL2`` with the agent owner
as the first indexed topic.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from ...config import settings
from ...providers.rpc import get_l1_client, get_l2_client
from ..recovery.errors import ReceiptNotFoundError, ValidationError
from ..recovery.strategies import RetryConfig, RetryStrategy
from .constants import (
    BRIDGING_REWARDS_TO_L2_SIGNATURE,
    BRIDGING_WITHDRAWAL_TO_L2_SIGNATURE,
    MESSAGE_SENT_SIGNATURE,
)
from .models import BRIDGING_TO_L2_TYPES

logger = logging.getLogger(__name__)

_BRIDGING_TYPE_VALUES = frozenset(t.value for t in BRIDGING_TO_L2_TYPES)
_OWNER_EVENTS = frozenset({BRIDGING_WITHDRAWAL_TO_L2_SIGNATURE, BRIDGING_REWARDS_TO_L2_SIGNATURE})

# 1s, 2s, 4s while the receipt is not mined yet
RECEIPT_RETRY = RetryConfig(
    max_attempts=4,
    initial_delay_seconds=1.0,
    exponential_base=2.0,
    jitter=False,
)


@dataclass(frozen=True, slots=True)
class DispatchDetails:
    message_id: Optional[str] = None
    agent_owner: Optional[str] = None


def _topic_to_address(topic: str) -> Optional[str]:
    body = topic[2:] if topic.startswith("0x") else topic
    if len(body) != 64:
        return None
    return "0x" + body[24:].lower()


def extract_dispatch_details(logs: Iterable[Dict[str, Any]]) -> DispatchDetails:
    message_id: Optional[str] = None
    agent_owner: Optional[str] = None

    for log in logs:
        topics = [str(t).lower() for t in (log.get("topics") or [])]
        if len(topics) < 2:
            continue
        if topics[0] == MESSAGE_SENT_SIGNATURE:
            message_id = topics[1]
            logger.debug("Found MessageSent with id %s", message_id)
        elif topics[0] in _OWNER_EVENTS:
            owner = _topic_to_address(topics[1])
            if owner:
                agent_owner = owner
                logger.debug("Found bridging event for agent owner %s", owner)

    return DispatchDetails(message_id=message_id, agent_owner=agent_owner)


class ReceiptReader:
    """Fetch a dispatch receipt and pull the CCIP message id out of its logs.

    ``l1_client`` and ``l2_client`` are :class:`JsonRpcClient`-like objects
    exposing ``get_transaction_receipt``.
    """

    def __init__(
        self,
        l1_client: Any,
        l2_client: Any,
        *,
        l1_chain_id: str,
        l2_chain_id: str,
        retry: Optional[RetryStrategy] = None,
    ) -> None:
        self.l1_client = l1_client
        self.l2_client = l2_client
        self.l1_chain_id = str(l1_chain_id)
        self.l2_chain_id = str(l2_chain_id)
        self._retry = retry or RetryStrategy(RECEIPT_RETRY, logger=logger, retry_on=(ReceiptNotFoundError,))

    def client_for(self, tx_type: Optional[str], source_chain_id: Optional[str]) -> Any:
        if source_chain_id == self.l2_chain_id:
            return self.l2_client
        if source_chain_id == self.l1_chain_id:
            return self.l1_client
        if tx_type in _BRIDGING_TYPE_VALUES:
            return self.l1_client
        return self.l2_client

    async def fetch_dispatch_details(
        self,
        tx_hash: str,
        *,
        tx_type: Optional[str] = None,
        source_chain_id: Optional[str] = None,
    ) -> DispatchDetails:
        if not tx_hash or not tx_hash.startswith("0x"):
            raise ValidationError(f"Invalid tx hash: {tx_hash!r}", field_name="txHash")

        client = self.client_for(tx_type, source_chain_id)

        async def _load() -> Dict[str, Any]:
            receipt = await client.get_transaction_receipt(tx_hash)
            if receipt is None:
                raise ReceiptNotFoundError(tx_hash, chain_id=getattr(client, "chain_id", None))
            return receipt

        receipt = await self._retry.execute(_load, context={"operation": f"receipt {tx_hash}"})
        details = extract_dispatch_details(receipt.get("logs") or [])
        logger.info(
            "Receipt %s: %d logs, messageId=%s agentOwner=%s",
            tx_hash,
            len(receipt.get("logs") or []),
            details.message_id,
            details.agent_owner,
        )
        return details


_receipt_reader: Optional[ReceiptReader] = None


def get_receipt_reader() -> ReceiptReader:
    """Get the singleton reader wired to the L1 and L2 clients."""
    global _receipt_reader
    if _receipt_reader is None:
        _receipt_reader = ReceiptReader(
            get_l1_client(),
            get_l2_client(),
            l1_chain_id=settings.l1_chain_id,
            l2_chain_id=settings.l2_chain_id,
        )
    return _receipt_reader
