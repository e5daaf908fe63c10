import json
from unittest.mock import AsyncMock, MagicMock

import pytest

import cli
from conftest import AGENT, ANVIL_KEY
from l2restaking.agent_runtime.strategies import PendingTransactionPoller
from l2restaking.core.bridge.status_reconciler import ReconcileSummary


def test_sign_execution_arguments():
    args = cli.build_parser().parse_args(
        ["sign-execution", "--private-key", ANVIL_KEY, "--agent", AGENT, "--target", AGENT, "--data", "0x"]
    )

    assert args.command == "sign-execution"
    assert args.nonce is None
    assert args.expiry_seconds == 3600
    assert args.amount == 0


def test_serve_arguments():
    args = cli.build_parser().parse_args(["serve", "--port", "4100"])
    assert args.port == 4100
    assert args.host is None


def test_check_signatures(capsys):
    cli.cli_check_signatures()
    assert "Event signatures match" in capsys.readouterr().out


def test_clear_requires_confirmation(capsys, monkeypatch):
    def fail():
        raise AssertionError("ledger must not be opened")

    monkeypatch.setattr(cli, "get_ledger", fail)

    cli.cli_clear_transactions(False)

    assert "--yes" in capsys.readouterr().out


def test_clear_with_confirmation(capsys, monkeypatch, ledger):
    ledger.upsert({"txHash": "0x" + "ab" * 32})
    monkeypatch.setattr(cli, "get_ledger", lambda: ledger)

    cli.cli_clear_transactions(True)

    assert "Removed 1 transactions" in capsys.readouterr().out
    assert ledger.list_all() == []


@pytest.mark.asyncio
async def test_reconcile_once_prints_summary(capsys):
    reconciler = MagicMock()
    reconciler.run_once = AsyncMock(return_value=ReconcileSummary(checked=3, confirmed=2, failed=1))

    await cli.cli_reconcile_once(PendingTransactionPoller(reconciler_factory=lambda: reconciler))

    summary = json.loads(capsys.readouterr().out)
    assert summary["checked"] == 3
    assert summary["confirmed"] == 2
    reconciler.run_once.assert_awaited_once()


@pytest.mark.asyncio
async def test_reconcile_once_reports_failure(capsys):
    reconciler = MagicMock()
    reconciler.run_once = AsyncMock(side_effect=RuntimeError("database locked"))

    await cli.cli_reconcile_once(PendingTransactionPoller(reconciler_factory=lambda: reconciler))

    assert "database locked" in capsys.readouterr().out
