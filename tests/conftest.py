import pytest

from l2restaking.db.ledger import TransactionLedger

L1_CHAIN_ID = "11155111"
L2_CHAIN_ID = "84532"

# Well-known anvil development key #0
ANVIL_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
ANVIL_ADDRESS = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"

USER = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
AGENT = "0x7dcCBA5387Cc75efb6e93844A12D1A8e984eBdC4"


@pytest.fixture
def ledger(tmp_path) -> TransactionLedger:
    ledger = TransactionLedger(
        f"sqlite:///{tmp_path / 'transactions.db'}",
        l1_chain_id=L1_CHAIN_ID,
        l2_chain_id=L2_CHAIN_ID,
    )
    ledger.create_schema()
    return ledger


def tx_hash(n: int) -> str:
    return "0x" + f"{n:064x}"


def message_id(n: int) -> str:
    return "0x" + f"{n + 0xABC000:064x}"
