"""
Tests for the CCIP explorer client.
"""

import httpx
import pytest

from l2restaking.core.bridge.models import CCIPStatus
from l2restaking.core.recovery.errors import MessageNotFoundError, NetworkError, ProviderError, RateLimitError
from l2restaking.core.recovery.strategies import RetryConfig, RetryStrategy
from l2restaking.providers.ccip import CCIPClient

MESSAGE_ID = "0x" + "ab" * 32
BASE_URL = "https://ccip.example/api/h/atlas"


def _client(handler) -> CCIPClient:
    return CCIPClient(
        base_url=BASE_URL,
        timeout_s=1,
        retry=RetryStrategy(RetryConfig(max_attempts=1)),
        transport=httpx.MockTransport(handler),
    )


class TestCCIPClient:
    @pytest.mark.asyncio
    async def test_success_message(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url.path)
            return httpx.Response(
                200,
                json={
                    "messageId": MESSAGE_ID,
                    "state": 2,
                    "receiptTransactionHash": "0x" + "de" * 32,
                    "sourceChainId": 84532,
                    "destChainId": "11155111",
                },
            )

        message = await _client(handler).get_message(MESSAGE_ID)

        assert seen == [f"/api/h/atlas/message/{MESSAGE_ID}"]
        assert message.status == CCIPStatus.SUCCESS
        assert message.receipt_transaction_hash == "0x" + "de" * 32
        assert message.dest_tx_hash == message.receipt_transaction_hash
        assert message.source_chain_id == "84532"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "payload,expected",
        [
            ({"state": 0}, CCIPStatus.INFLIGHT),
            ({"state": 1}, CCIPStatus.PENDING),
            ({"state": 3}, CCIPStatus.FAILED),
            ({"receiptTransactionHash": "0x01"}, CCIPStatus.SUCCESS),
            ({"blessBlockNumber": 123}, CCIPStatus.BLESSED),
            ({}, CCIPStatus.PENDING),
        ],
    )
    async def test_state_mapping(self, payload, expected):
        message = await _client(lambda request: httpx.Response(200, json=payload)).get_message(MESSAGE_ID)
        assert message.status == expected
        assert message.message_id == MESSAGE_ID

    @pytest.mark.asyncio
    async def test_not_found(self):
        with pytest.raises(MessageNotFoundError):
            await _client(lambda request: httpx.Response(404)).get_message(MESSAGE_ID)

    @pytest.mark.asyncio
    async def test_rate_limited(self):
        with pytest.raises(RateLimitError):
            await _client(lambda request: httpx.Response(429)).get_message(MESSAGE_ID)

    @pytest.mark.asyncio
    async def test_server_error(self):
        with pytest.raises(ProviderError):
            await _client(lambda request: httpx.Response(502)).get_message(MESSAGE_ID)

    @pytest.mark.asyncio
    async def test_non_json_body(self):
        with pytest.raises(ProviderError):
            await _client(lambda request: httpx.Response(200, text="<html>")).get_message(MESSAGE_ID)

    @pytest.mark.asyncio
    async def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(NetworkError):
            await _client(handler).get_message(MESSAGE_ID)

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self):
        responses = iter([httpx.Response(503), httpx.Response(200, json={"state": 2})])

        async def no_sleep(_):
            return None

        client = CCIPClient(
            base_url=BASE_URL,
            retry=RetryStrategy(RetryConfig(max_attempts=2), sleep=no_sleep),
            transport=httpx.MockTransport(lambda request: next(responses)),
        )

        message = await client.get_message(MESSAGE_ID)
        assert message.status == CCIPStatus.SUCCESS
