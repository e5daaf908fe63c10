"""
Tests for dispatch receipt parsing.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from l2restaking.core.bridge.constants import (
    BRIDGING_REWARDS_TO_L2_SIGNATURE,
    BRIDGING_WITHDRAWAL_TO_L2_SIGNATURE,
    MESSAGE_SENT_SIGNATURE,
)
from l2restaking.core.bridge.receipts import RECEIPT_RETRY, ReceiptReader, extract_dispatch_details
from l2restaking.core.recovery.errors import ReceiptNotFoundError, ValidationError
from l2restaking.core.recovery.strategies import RetryStrategy

MESSAGE_ID = "0x" + "ab" * 32
OWNER = "0x70997970c51812dc3a010c7d01b50e0d17dc79c8"
TX = "0x" + "12" * 32


def _owner_topic(address: str) -> str:
    return "0x" + "0" * 24 + address[2:]


def _reader(l1=None, l2=None, sleep=None) -> ReceiptReader:
    return ReceiptReader(
        l1 or MagicMock(),
        l2 or MagicMock(),
        l1_chain_id="11155111",
        l2_chain_id="84532",
        retry=RetryStrategy(RECEIPT_RETRY, retry_on=(ReceiptNotFoundError,), sleep=sleep or AsyncMock()),
    )


class TestExtractDispatchDetails:
    def test_message_sent(self):
        logs = [
            {"topics": ["0x" + "11" * 32]},
            {"topics": [MESSAGE_SENT_SIGNATURE, MESSAGE_ID, "0x" + "00" * 32]},
        ]
        details = extract_dispatch_details(logs)
        assert details.message_id == MESSAGE_ID
        assert details.agent_owner is None

    @pytest.mark.parametrize("topic", [BRIDGING_WITHDRAWAL_TO_L2_SIGNATURE, BRIDGING_REWARDS_TO_L2_SIGNATURE])
    def test_bridging_event_owner(self, topic):
        logs = [
            {"topics": [topic, _owner_topic(OWNER)]},
            {"topics": [MESSAGE_SENT_SIGNATURE, MESSAGE_ID]},
        ]
        details = extract_dispatch_details(logs)
        assert details.agent_owner == OWNER
        assert details.message_id == MESSAGE_ID

    def test_no_matching_logs(self):
        details = extract_dispatch_details([{"topics": []}, {}])
        assert details.message_id is None
        assert details.agent_owner is None


class TestReceiptReader:
    def test_client_choice(self):
        l1, l2 = MagicMock(), MagicMock()
        reader = _reader(l1, l2)

        assert reader.client_for("deposit", "84532") is l2
        assert reader.client_for("deposit", "11155111") is l1
        assert reader.client_for("bridgingWithdrawalToL2", None) is l1
        assert reader.client_for("bridgingRewardsToL2", None) is l1
        assert reader.client_for("queueWithdrawal", None) is l2
        assert reader.client_for("unknown", None) is l2

    @pytest.mark.asyncio
    async def test_retries_until_mined(self):
        l2 = MagicMock()
        l2.chain_id = 84532
        l2.get_transaction_receipt = AsyncMock(
            side_effect=[None, None, {"logs": [{"topics": [MESSAGE_SENT_SIGNATURE, MESSAGE_ID]}]}]
        )
        sleep = AsyncMock()

        details = await _reader(l2=l2, sleep=sleep).fetch_dispatch_details(TX, tx_type="deposit")

        assert details.message_id == MESSAGE_ID
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_gives_up_after_three_retries(self):
        l2 = MagicMock()
        l2.chain_id = 84532
        l2.get_transaction_receipt = AsyncMock(return_value=None)
        sleep = AsyncMock()

        with pytest.raises(ReceiptNotFoundError):
            await _reader(l2=l2, sleep=sleep).fetch_dispatch_details(TX)

        assert l2.get_transaction_receipt.await_count == 4
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_rejects_malformed_hash(self):
        with pytest.raises(ValidationError):
            await _reader().fetch_dispatch_details("abc")
