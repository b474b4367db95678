"""
Command-line interface for the transaction signer.

Provides commands for signing a submission request and inspecting the
activity ledger.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict

import structlog

from txsigner import __version__
from txsigner.config import SignerConfig, set_config
from txsigner.core.apps import ApplicationRegistry
from txsigner.core.types import ActivityRecord, PanelState, SubmissionRequest
from txsigner.engine.session import SigningSession
from txsigner.provider.dryrun import DryRunSigningProvider
from txsigner.provider.interface import ProviderConnectionError
from txsigner.provider.rpc import JsonRpcAccountQuery
from txsigner.provider.wallet import Web3SigningProvider
from txsigner.state.database import DatabaseActivityLedger, init_ledger
from txsigner.state.ledger import InMemoryActivityLedger


def setup_logging(level: str = "INFO", json_format: bool = False) -> None:
    """Configure structured logging."""
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer() if json_format
            else structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, level.upper()),
        stream=sys.stderr,
    )


def _add_logging_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level (default: WARNING)",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Output logs in JSON format",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="txsigner",
        description="Sign and track on-chain transactions for applications",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Sign command
    sign_parser = subparsers.add_parser("sign", help="Sign a submission request")
    sign_parser.add_argument(
        "request",
        help="Path to a JSON submission request ({\"path\": [...], \"transaction\": {...}})",
    )
    sign_parser.add_argument(
        "--apps",
        help="Path to a JSON list of known applications",
    )
    sign_parser.add_argument(
        "--yes",
        action="store_true",
        help="Sign without asking for confirmation",
    )
    sign_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Simulate signing without a wallet",
    )
    sign_parser.add_argument(
        "--wait",
        action="store_true",
        help="Wait until the transactions are mined",
    )
    _add_logging_arguments(sign_parser)

    # Activity command
    activity_parser = subparsers.add_parser("activity", help="List recorded activity")
    activity_parser.add_argument(
        "--database-url",
        help="Activity database URL (default: from configuration)",
    )
    _add_logging_arguments(activity_parser)

    return parser


def _load_json(path: str) -> Any:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def print_intent(state: PanelState) -> None:
    """Print what the request shown in the panel will do."""
    intent = state.intent
    print(f"Application: {intent.name or 'unknown'} ({intent.to})")
    print(f"Action: {intent.description or '(no description)'}")
    print(f"From: {intent.transaction.from_address}")
    if not state.direct_path:
        print(f"Via: {intent.transaction.to}")
    if state.pretransaction is not None:
        print(f"Requires approval first: {state.pretransaction.to}")
    print()


def print_activity(record: ActivityRecord) -> None:
    nonce = record.nonce if record.nonce is not None else "?"
    print(f"  {record.transaction_hash}  [{record.status.value}]  nonce={nonce}")
    print(f"    {record.target_app_name or record.target_app_address}: {record.description}")
    if record.forwarder_address:
        print(f"    via {record.forwarder_address}")


async def _ask(prompt: str) -> bool:
    loop = asyncio.get_running_loop()
    answer = await loop.run_in_executor(None, input, prompt)
    return answer.strip().lower() in ("y", "yes")


async def sign_request(args: argparse.Namespace) -> int:
    """Sign a submission request read from a file."""
    config = SignerConfig(log_level=args.log_level, log_json=args.log_json)
    set_config(config)

    request_data: Dict[str, Any] = _load_json(args.request)
    registry = ApplicationRegistry.from_file(args.apps) if args.apps else ApplicationRegistry()

    if args.dry_run:
        provider = DryRunSigningProvider()
        account_query = provider
        ledger = InMemoryActivityLedger()
    else:
        provider = Web3SigningProvider(config)
        account_query = JsonRpcAccountQuery(config)
        ledger = await init_ledger(config)

    session = SigningSession(provider, ledger, registry, account_query, config)
    loop = asyncio.get_running_loop()
    session.state_machine.on_close(lambda: loop.call_soon(session.transition_ended, False))

    try:
        try:
            await provider.connect()
            if account_query is not provider:
                await account_query.connect()
        except ProviderConnectionError as e:
            print(f"Could not connect: {e}", file=sys.stderr)
            return 1

        request = SubmissionRequest.from_dict(request_data)
        try:
            session.receive(request)
        except ValueError as e:
            print(f"Invalid request: {e}", file=sys.stderr)
            return 1

        print_intent(session.state)

        if not args.yes and not await _ask("Sign this transaction? [y/N] "):
            session.close()
            print("Cancelled.")
            return 1

        result = await session.confirm()
        if not result.ok:
            print(f"Signing failed: {result.error}", file=sys.stderr)
            return 1

        print(f"Transaction hash: {result.transaction_hash}")

        if args.wait:
            await session.wait_idle()
            print()
            print("Activity:")
            for record in await ledger.list_activities():
                print_activity(record)

        return 0

    finally:
        await session.aclose()
        if account_query is not provider:
            await account_query.disconnect()
        await provider.disconnect()
        if isinstance(ledger, DatabaseActivityLedger):
            await ledger.disconnect()


async def list_activity(args: argparse.Namespace) -> int:
    """List activity records from the database."""
    config = SignerConfig(log_level=args.log_level, log_json=args.log_json)
    ledger = await init_ledger(config, database_url=args.database_url)

    try:
        records = await ledger.list_activities()
    finally:
        await ledger.disconnect()

    if not records:
        print("No activity recorded.")
    else:
        print(f"{len(records)} transaction(s):")
        print()
        for record in records:
            print_activity(record)

    return 0


def main() -> None:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    setup_logging(args.log_level, args.log_json)

    if args.command == "sign":
        sys.exit(asyncio.run(sign_request(args)))
    elif args.command == "activity":
        sys.exit(asyncio.run(list_activity(args)))


if __name__ == "__main__":
    main()
