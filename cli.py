#!/usr/bin/env python3
"""Operator CLI for the L2 restaking relay"""

import argparse
import asyncio
import json
import time
from typing import Optional

from l2restaking.agent_runtime.runtime import AgentRuntime
from l2restaking.agent_runtime.strategies import PendingTransactionPoller
from l2restaking.config import settings
from l2restaking.core.bridge.constants import EventSignatureMismatch, verify_event_signatures
from l2restaking.core.execution.nonce_reconciler import get_nonce_reconciler
from l2restaking.core.recovery.errors import RecoverableError, UnrecoverableError
from l2restaking.core.signing.envelope import build_dispatch_call, detect_transaction_type
from l2restaking.core.signing.key_holder import LocalAccountKeyHolder
from l2restaking.core.signing.service import SigningService
from l2restaking.db.legacy import import_legacy_transactions
from l2restaking.db.ledger import get_ledger
from l2restaking.logging_config import setup_logging
from l2restaking.providers.rpc import close_clients


def cli_serve(host: Optional[str], port: Optional[int]) -> None:
    import uvicorn

    uvicorn.run(
        "l2restaking.main:app",
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


def cli_import_legacy(path: str) -> None:
    """Backfill the ledger from a legacy transactions.json file"""
    count = import_legacy_transactions(get_ledger(), path)
    print(f"✅ Imported {count} transactions from {path}")


def cli_clear_transactions(confirmed: bool) -> None:
    if not confirmed:
        print("❌ Refusing to clear the ledger without --yes")
        return
    removed = get_ledger().clear_all()
    print(f"🗑  Removed {removed} transactions")


async def cli_reconcile_once(poller: Optional[PendingTransactionPoller] = None) -> None:
    """Run a single status reconciliation pass, bounded by the runtime tick timeout"""
    runtime = AgentRuntime()
    poller = poller or PendingTransactionPoller()
    runtime.register_strategy(poller)
    try:
        await runtime.run_strategy_now(poller.id)
        await runtime.wait_idle()
    finally:
        await close_clients()

    state = runtime.list_strategies()[0]
    if state["last_error"]:
        print(f"❌ Error: {state['last_error']}")
        return
    print(json.dumps(poller.last_result, indent=2))


async def cli_sign_execution(
    private_key: str,
    agent: str,
    target: str,
    data: str,
    nonce: Optional[int],
    expiry_seconds: int,
    amount: int,
) -> None:
    """Sign an agent execution with a local key and print the dispatch payload"""
    key_holder = LocalAccountKeyHolder.from_key(private_key)

    try:
        if nonce is None:
            state = await get_nonce_reconciler().reconcile(key_holder.address, agent)
            nonce = state.next_nonce
            print(f"🔢 Using reconciled execNonce {nonce} (ledger={state.local_next_nonce}, chain={state.on_chain_nonce})")

        service = SigningService()
        envelope = await service.sign_agent_execution(
            key_holder,
            signer_address=key_holder.address,
            agent_address=agent,
            chain_id=int(settings.l1_chain_id),
            target_contract=target,
            call_data=data,
            exec_nonce=nonce,
            expiry=int(time.time()) + expiry_seconds,
        )
    except (RecoverableError, UnrecoverableError) as e:
        print(f"❌ Error: {e.message}")
        return
    finally:
        await close_clients()

    print(f"Signer:   {envelope.signer}")
    print(f"Expiry:   {envelope.expiry}")
    print(f"Type:     {detect_transaction_type(data).value}")
    print(f"Envelope: {envelope.to_hex()}")

    if settings.receiver_ccip_address:
        print(f"Dispatch: {build_dispatch_call(envelope.to_bytes(), data, amount=amount)}")
    else:
        print("⚠️  RECEIVER_CCIP_ADDRESS not set; skipping dispatch calldata")


def cli_check_signatures() -> None:
    try:
        verify_event_signatures()
    except EventSignatureMismatch as e:
        print(f"❌ {e}")
        raise SystemExit(1)
    print("✅ Event signatures match")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="L2 restaking relay CLI")
    subparsers = parser.add_subparsers(dest="command")

    serve_parser = subparsers.add_parser("serve", help="Run the API server")
    serve_parser.add_argument("--host", help="Bind host (default from settings)")
    serve_parser.add_argument("--port", type=int, help="Bind port (default from settings)")

    import_parser = subparsers.add_parser("import-legacy", help="Import a legacy transactions.json file")
    import_parser.add_argument("path", help="Path to the JSON file")

    clear_parser = subparsers.add_parser("clear-transactions", help="Delete every ledger record")
    clear_parser.add_argument("--yes", action="store_true", help="Confirm the deletion")

    subparsers.add_parser("reconcile-once", help="Run one pending transaction reconciliation pass")

    sign_parser = subparsers.add_parser("sign-execution", help="Sign an EigenAgent execution with a local key")
    sign_parser.add_argument("--private-key", required=True, help="Hex private key of the agent owner")
    sign_parser.add_argument("--agent", required=True, help="EigenAgent address")
    sign_parser.add_argument("--target", required=True, help="Target contract on L1")
    sign_parser.add_argument("--data", required=True, help="Inner calldata (hex)")
    sign_parser.add_argument("--nonce", type=int, help="execNonce; reconciled from ledger and chain when omitted")
    sign_parser.add_argument("--expiry-seconds", type=int, default=3600, help="Seconds until the signature expires")
    sign_parser.add_argument("--amount", type=int, default=0, help="Bridge token amount to send with the message")

    subparsers.add_parser("check-signatures", help="Verify hard-coded event topics")

    return parser


def main():
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    command = args.command.lower()

    if command == "serve":
        # uvicorn owns the event loop and the logging setup
        cli_serve(args.host, args.port)
        return

    setup_logging(settings.log_level)

    if command == "import-legacy":
        cli_import_legacy(args.path)

    elif command == "clear-transactions":
        cli_clear_transactions(args.yes)

    elif command == "reconcile-once":
        asyncio.run(cli_reconcile_once())

    elif command == "sign-execution":
        asyncio.run(
            cli_sign_execution(
                args.private_key,
                args.agent,
                args.target,
                args.data,
                args.nonce,
                args.expiry_seconds,
                args.amount,
            )
        )

    elif command == "check-signatures":
        cli_check_signatures()

    else:
        print(f"❌ Unknown command: {command}")
        parser.print_help()


if __name__ == "__main__":
    main()
