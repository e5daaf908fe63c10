"""
Tests for execNonce reconciliation between the ledger and the chain.
"""

import threading
from unittest.mock import AsyncMock, MagicMock

import pytest

from l2restaking.core.execution.nonce_reconciler import (
    EXEC_NONCE_SELECTOR,
    GET_EIGEN_AGENT_SELECTOR,
    NonceReconciler,
)
from l2restaking.core.recovery.errors import RpcTimeoutError
from l2restaking.core.signing.abi import encode_address, encode_uint

USER = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
AGENT = "0x7dcCBA5387Cc75efb6e93844A12D1A8e984eBdC4"
FACTORY = "0x9E545E3C0baAB3E08CdfD552C960A1050f373042"


def _ledger(next_nonce: int) -> MagicMock:
    ledger = MagicMock()
    ledger.next_exec_nonce.return_value = next_nonce
    return ledger


def _chain(agent: str = AGENT, exec_nonce: int = 0) -> MagicMock:
    async def eth_call(to, data):
        if data.startswith(GET_EIGEN_AGENT_SELECTOR):
            return bytes.fromhex(encode_address(agent))
        if data == EXEC_NONCE_SELECTOR:
            return bytes.fromhex(encode_uint(exec_nonce))
        raise AssertionError(f"unexpected call {data}")

    client = MagicMock()
    client.eth_call = AsyncMock(side_effect=eth_call)
    return client


class TestNonceReconciler:
    @pytest.mark.asyncio
    async def test_ledger_ahead_of_chain(self):
        reconciler = NonceReconciler(_ledger(5), _chain(exec_nonce=3), FACTORY)
        state = await reconciler.reconcile(USER)

        assert state.agent_address.lower() == AGENT.lower()
        assert state.local_next_nonce == 5
        assert state.on_chain_nonce == 3
        assert state.next_nonce == 5

    @pytest.mark.asyncio
    async def test_chain_ahead_of_ledger(self):
        reconciler = NonceReconciler(_ledger(2), _chain(exec_nonce=7), FACTORY)
        state = await reconciler.reconcile(USER)

        assert state.next_nonce == 7

    @pytest.mark.asyncio
    async def test_sources_agree(self):
        reconciler = NonceReconciler(_ledger(4), _chain(exec_nonce=4), FACTORY)
        state = await reconciler.reconcile(USER)

        assert state.next_nonce == 4

    @pytest.mark.asyncio
    async def test_unreachable_chain_uses_ledger(self):
        client = MagicMock()
        client.eth_call = AsyncMock(side_effect=RpcTimeoutError("timeout"))
        reconciler = NonceReconciler(_ledger(6), client, FACTORY)

        state = await reconciler.reconcile(USER, AGENT)

        assert state.on_chain_nonce == 0
        assert state.next_nonce == 6

    @pytest.mark.asyncio
    async def test_first_time_user_gets_zero(self):
        ledger = _ledger(9)
        reconciler = NonceReconciler(ledger, _chain(agent="0x0000000000000000000000000000000000000000"), FACTORY)

        state = await reconciler.reconcile(USER)

        assert state.agent_address is None
        assert state.next_nonce == 0
        ledger.next_exec_nonce.assert_not_called()

    @pytest.mark.asyncio
    async def test_unconfigured_factory_falls_back_to_ledger(self):
        reconciler = NonceReconciler(_ledger(3), _chain(), agent_factory="")
        state = await reconciler.reconcile(USER)

        assert state.agent_address is None
        assert state.next_nonce == 3

    @pytest.mark.asyncio
    async def test_ledger_failure_counts_as_zero(self):
        ledger = MagicMock()
        ledger.next_exec_nonce.side_effect = RuntimeError("database locked")
        reconciler = NonceReconciler(ledger, _chain(exec_nonce=2), FACTORY)

        state = await reconciler.reconcile(USER, AGENT)

        assert state.local_next_nonce == 0
        assert state.next_nonce == 2

    @pytest.mark.asyncio
    async def test_ledger_read_runs_off_event_loop(self):
        loop_thread = threading.get_ident()
        read_threads = []

        def next_exec_nonce(user):
            read_threads.append(threading.get_ident())
            return 4

        ledger = MagicMock()
        ledger.next_exec_nonce.side_effect = next_exec_nonce
        reconciler = NonceReconciler(ledger, _chain(exec_nonce=1), FACTORY)

        state = await reconciler.reconcile(USER, AGENT)

        assert state.next_nonce == 4
        assert read_threads and read_threads[0] != loop_thread

    def test_as_dict_keys(self):
        from l2restaking.core.execution.nonce_reconciler import AgentNonceState

        state = AgentNonceState(USER, AGENT, 1, 2, 2)
        assert state.as_dict() == {
            "userAddress": USER,
            "agentAddress": AGENT,
            "localNextNonce": 1,
            "onChainNonce": 2,
            "nextNonce": 2,
        }
