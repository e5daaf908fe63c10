"""
HTTP surface tests.

The app is exercised without its lifespan so no runtime, RPC client or
legacy import is started; every dependency is overridden per test.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from conftest import AGENT, ANVIL_ADDRESS, ANVIL_KEY, L1_CHAIN_ID, USER, message_id, tx_hash
from l2restaking.agent_runtime import get_runtime
from l2restaking.agent_runtime.runtime import AgentRuntime
from l2restaking.agent_runtime.strategies import PendingTransactionPoller
from l2restaking.core.bridge.models import CCIPMessage, CCIPStatus
from l2restaking.core.bridge.receipts import DispatchDetails, get_receipt_reader
from l2restaking.core.bridge.status_reconciler import ReconcileSummary, get_status_reconciler
from l2restaking.core.execution.nonce_reconciler import AgentNonceState, get_nonce_reconciler
from l2restaking.core.operators import KNOWN_OPERATORS, OperatorRegistry, get_operator_registry
from l2restaking.core.recovery.errors import MessageNotFoundError, NetworkError, ReceiptNotFoundError
from l2restaking.core.signing.service import SigningService, get_signing_service
from l2restaking.db.ledger import get_ledger
from l2restaking.main import app
from l2restaking.providers.ccip import get_ccip_client

DELEGATION_MANAGER = "0x2604e5a6b77b5Ab95e38b6fA6fc1F5db5585F562"
INACTIVE_OPERATOR = next(op for op in KNOWN_OPERATORS if not op.is_active)


@pytest.fixture
def receipts():
    reader = MagicMock()
    reader.fetch_dispatch_details = AsyncMock(return_value=DispatchDetails())
    return reader


@pytest.fixture
def reconciler():
    fake = MagicMock()
    fake.reconcile_message = AsyncMock(return_value=None)
    return fake


@pytest.fixture
def nonces():
    fake = MagicMock()
    fake.reconcile = AsyncMock(return_value=AgentNonceState(USER, AGENT, 3, 5, 5))
    return fake


@pytest.fixture
def ccip():
    fake = MagicMock()
    fake.get_message = AsyncMock()
    return fake


@pytest.fixture
def runtime():
    return AgentRuntime(max_concurrency=1, tick_timeout_seconds=5)


@pytest.fixture
def client(ledger, receipts, reconciler, nonces, ccip, runtime):
    registry = OperatorRegistry.build([ANVIL_KEY])
    signer = SigningService(
        operators=registry,
        l1_client=None,
        delegation_manager=DELEGATION_MANAGER,
        l1_chain_id=int(L1_CHAIN_ID),
    )
    app.dependency_overrides[get_ledger] = lambda: ledger
    app.dependency_overrides[get_receipt_reader] = lambda: receipts
    app.dependency_overrides[get_status_reconciler] = lambda: reconciler
    app.dependency_overrides[get_nonce_reconciler] = lambda: nonces
    app.dependency_overrides[get_signing_service] = lambda: signer
    app.dependency_overrides[get_ccip_client] = lambda: ccip
    app.dependency_overrides[get_operator_registry] = lambda: registry
    app.dependency_overrides[get_runtime] = lambda: runtime

    yield TestClient(app)

    app.dependency_overrides.clear()


def _payload(n: int, **overrides):
    body = {
        "txHash": tx_hash(n),
        "messageId": message_id(n),
        "timestamp": 1_700_000_000 + n,
        "txType": "deposit",
        "status": "pending",
        "from": USER,
        "to": AGENT,
        "user": USER,
        "execNonce": n,
    }
    body.update(overrides)
    return body


class TestTransactionRoutes:
    def test_create_and_fetch(self, client, receipts, reconciler):
        response = client.post("/transactions", json=_payload(1))

        assert response.status_code == 200
        body = response.json()
        assert body["txHash"] == tx_hash(1)
        assert body["messageId"] == message_id(1)
        assert body["from"] == USER
        assert body["user"] == USER.lower()
        assert body["isComplete"] is False
        receipts.fetch_dispatch_details.assert_not_awaited()
        reconciler.reconcile_message.assert_awaited_once_with(message_id(1))

        assert client.get(f"/transactions/hash/{tx_hash(1)}").json()["txHash"] == tx_hash(1)
        assert client.get(f"/transactions/messageId/{message_id(1)}").json()["txHash"] == tx_hash(1)

    def test_message_id_resolved_from_receipt(self, client, receipts, reconciler):
        receipts.fetch_dispatch_details.return_value = DispatchDetails(
            message_id=message_id(7),
            agent_owner=AGENT.lower(),
        )

        response = client.post("/transactions", json=_payload(2, messageId="", txType="bridgingWithdrawalToL2"))

        body = response.json()
        assert body["messageId"] == message_id(7)
        assert body["user"] == AGENT.lower()
        assert body["sourceChainId"] == L1_CHAIN_ID
        reconciler.reconcile_message.assert_awaited_once_with(message_id(7))

    def test_unreadable_receipt_keeps_default_message_id(self, client, receipts, reconciler):
        receipts.fetch_dispatch_details.side_effect = ReceiptNotFoundError(tx_hash(3))
        payload = _payload(3)
        del payload["messageId"]

        response = client.post("/transactions", json=payload)

        assert response.status_code == 200
        assert response.json()["messageId"] == tx_hash(3)
        reconciler.reconcile_message.assert_not_awaited()

    def test_invalid_type_rejected(self, client):
        response = client.post("/transactions", json=_payload(4, txType="teleport"))
        assert response.status_code == 400

    def test_missing_tx_hash_rejected(self, client):
        payload = _payload(4)
        del payload["txHash"]
        assert client.post("/transactions", json=payload).status_code == 422

    def test_message_id_collision_conflicts(self, client):
        assert client.post("/transactions", json=_payload(5)).status_code == 200

        response = client.post("/transactions", json=_payload(6, messageId=message_id(5)))

        assert response.status_code == 409

    def test_list_and_user_filter(self, client):
        client.post("/transactions", json=_payload(1))
        client.post("/transactions", json=_payload(2, user=AGENT))

        everything = client.get("/transactions").json()
        assert [r["txHash"] for r in everything] == [tx_hash(2), tx_hash(1)]

        mine = client.get(f"/transactions/user/{USER.upper().replace('0X', '0x')}").json()
        assert [r["txHash"] for r in mine] == [tx_hash(1)]

    def test_lookups_missing(self, client):
        assert client.get(f"/transactions/hash/{tx_hash(99)}").status_code == 404
        assert client.get(f"/transactions/messageId/{message_id(99)}").status_code == 404

    def test_update_by_hash(self, client):
        client.post("/transactions", json=_payload(1))

        response = client.put(
            f"/transactions/{tx_hash(1)}",
            json={"status": "confirmed", "isComplete": True, "receiptTransactionHash": tx_hash(50)},
        )

        body = response.json()
        assert response.status_code == 200
        assert body["status"] == "confirmed"
        assert body["isComplete"] is True
        assert body["receiptTransactionHash"] == tx_hash(50)
        assert body["execNonce"] == 1

    def test_update_by_message_id(self, client):
        client.post("/transactions", json=_payload(1))

        response = client.put(f"/transactions/messageId/{message_id(1)}", json={"status": "failed"})

        assert response.status_code == 200
        assert response.json()["status"] == "failed"
        assert response.json()["txHash"] == tx_hash(1)

    def test_rename_message_id(self, client):
        client.post("/transactions", json=_payload(1))

        response = client.put(f"/transactions/messageId/{message_id(1)}", json={"messageId": message_id(2)})

        assert response.status_code == 200
        assert response.json()["txHash"] == tx_hash(1)
        assert response.json()["messageId"] == message_id(2)
        assert client.get(f"/transactions/messageId/{message_id(1)}").status_code == 404

    def test_completing_pending_record_rejected(self, client):
        client.post("/transactions", json=_payload(1))

        assert client.put(f"/transactions/{tx_hash(1)}", json={"isComplete": True}).status_code == 400
        assert client.put(f"/transactions/{tx_hash(1)}", json={"timestamp": None}).status_code == 400

    def test_update_missing_or_invalid(self, client):
        assert client.put(f"/transactions/{tx_hash(42)}", json={"status": "failed"}).status_code == 404
        assert client.put(f"/transactions/messageId/{message_id(42)}", json={"status": "failed"}).status_code == 404

        client.post("/transactions", json=_payload(1))
        response = client.put(f"/transactions/{tx_hash(1)}", json={"status": "pending", "isComplete": True})
        assert response.status_code == 400


class TestNonceRoutes:
    def test_exec_nonce_from_ledger(self, client):
        client.post("/transactions", json=_payload(4))
        client.post("/transactions", json=_payload(9))

        body = client.get(f"/execnonce/{USER}").json()

        assert body == {"agentAddress": USER.lower(), "latestNonce": 9, "nextNonce": 10}

    def test_exec_nonce_unknown_address(self, client):
        body = client.get(f"/execnonce/{AGENT}").json()
        assert body["latestNonce"] is None
        assert body["nextNonce"] == 0

    def test_exec_nonce_invalid_address(self, client):
        assert client.get("/execnonce/0x1234").status_code == 400

    def test_reconciled_nonce(self, client, nonces):
        body = client.get(f"/agents/{USER}/nonce").json()

        assert body["nextNonce"] == 5
        assert body["agentAddress"] == AGENT
        nonces.reconcile.assert_awaited_once_with(USER)


class TestDelegationRoutes:
    def test_sign_for_registered_operator(self, client):
        response = client.post(
            "/delegation/sign",
            json={"staker": USER, "operator": ANVIL_ADDRESS, "expiry": 4_000_000_000},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["expiry"] == "4000000000"
        assert body["chainId"] == L1_CHAIN_ID
        assert body["delegationManagerAddress"] == DELEGATION_MANAGER
        assert len(body["signature"]) == 132
        assert len(body["digestHash"]) == 66

    def test_unregistered_operator(self, client):
        response = client.post("/delegation/sign", json={"staker": USER, "operator": AGENT})
        assert response.status_code == 401

    def test_staker_is_operator(self, client):
        response = client.post("/delegation/sign", json={"staker": ANVIL_ADDRESS, "operator": ANVIL_ADDRESS})
        assert response.status_code == 400

    def test_malformed_address(self, client):
        response = client.post("/delegation/sign", json={"staker": "0xnope", "operator": ANVIL_ADDRESS})
        assert response.status_code == 400


class TestCCIPRoutes:
    def test_message(self, client, ccip):
        ccip.get_message.return_value = CCIPMessage(
            messageId=message_id(1),
            state=2,
            status=CCIPStatus.SUCCESS,
            receiptTransactionHash=tx_hash(8),
        )

        body = client.get(f"/ccip/message/{message_id(1)}").json()

        assert body["messageId"] == message_id(1)
        assert body["status"] == "SUCCESS"
        assert body["receiptTransactionHash"] == tx_hash(8)

    def test_unknown_message(self, client, ccip):
        ccip.get_message.side_effect = MessageNotFoundError(message_id(2))
        assert client.get(f"/ccip/message/{message_id(2)}").status_code == 404

    def test_explorer_unreachable(self, client, ccip):
        ccip.get_message.side_effect = NetworkError("connection refused")
        assert client.get(f"/ccip/message/{message_id(3)}").status_code == 503


class TestOperatorRoutes:
    def test_active_only_by_default(self, client):
        active = client.get("/operators").json()
        everything = client.get("/operators", params={"showInactive": "true"}).json()

        assert all(op["isActive"] for op in active)
        assert len(everything) == len(KNOWN_OPERATORS)
        assert len(active) == len(KNOWN_OPERATORS) - 1

    def test_lookup(self, client):
        body = client.get(f"/operators/{INACTIVE_OPERATOR.address.lower()}").json()
        assert body["name"] == INACTIVE_OPERATOR.name
        assert body["isActive"] is False

    def test_unknown_operator(self, client):
        assert client.get(f"/operators/{AGENT}").status_code == 404


class TestHealth:
    def test_healthz(self, client):
        body = client.get("/healthz").json()

        assert body["status"] == "healthy"
        assert body["checks"]["database"]["status"] == "healthy"
        assert body["checks"]["event_signatures"]["status"] == "healthy"
        assert body["checks"]["runtime"]["status"] == "stopped"

    def test_root(self, client):
        assert client.get("/").json()["health"] == "/healthz"


class TestRuntimeRoutes:
    def test_tick_runs_registered_strategy(self, client, runtime):
        reconciler = MagicMock()
        reconciler.run_once = AsyncMock(return_value=ReconcileSummary(checked=1))
        poller = PendingTransactionPoller(reconciler_factory=lambda: reconciler)
        runtime.register_strategy(poller)

        response = client.post(f"/runtime/strategies/{poller.id}/tick")

        assert response.status_code == 200
        assert response.json() == {"queued": True}
        items = client.get("/runtime/strategies").json()["items"]
        assert items[0]["id"] == poller.id

    def test_tick_unknown_strategy(self, client):
        assert client.post("/runtime/strategies/missing/tick").status_code == 404

    def test_status(self, client):
        body = client.get("/runtime/status").json()
        assert body["running"] is False
        assert body["strategy_count"] == 0
