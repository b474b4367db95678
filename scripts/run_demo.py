#!/usr/bin/env python3
"""
Run a dry-run signing demo.

Demonstrates:
1. Signing a direct transaction
2. Signing a forwarded transaction that needs a pretransaction
3. A declined pretransaction stopping the run
4. A transaction reverted after it was hashed
"""

import asyncio
import argparse
import json
import sys
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from txsigner.config import SignerConfig, set_config
from txsigner.core.apps import Application, ApplicationRegistry
from txsigner.core.types import PathNode, SigningStatus, Transaction
from txsigner.engine.session import SigningSession
from txsigner.provider.dryrun import DryRunSigningProvider
from txsigner.state.ledger import InMemoryActivityLedger

USER = "0x90F8bf6A479f320ead074411a4B0e7944Ea8c9C1"
VOTING = "0x1111111111111111111111111111111111111111"
TOKENS = "0x2222222222222222222222222222222222222222"
TOKEN = "0x3333333333333333333333333333333333333333"
FINANCE = "0x4444444444444444444444444444444444444444"


class DemoRunner:
    """Runs the dry-run demonstration."""

    def __init__(self, output: str):
        self.output = Path(output)
        self.results = {
            "timestamp": datetime.now().isoformat(),
            "tests": [],
            "transactions": [],
        }

        self.config = SignerConfig(close_delay_seconds=0.1)
        set_config(self.config)

        self.registry = ApplicationRegistry([
            Application("Voting", VOTING),
            Application("Tokens", TOKENS),
            Application("Finance", FINANCE),
        ])
        self.provider = DryRunSigningProvider(reject=[TOKEN], revert=[FINANCE])
        self.ledger = InMemoryActivityLedger()
        self.session = SigningSession(
            self.provider,
            self.ledger,
            self.registry,
            account_query=self.provider,
            config=self.config,
        )

        transition_ended = self.session.transition_ended
        self.session.state_machine.on_close(
            lambda: asyncio.get_running_loop().call_soon(transition_ended, False)
        )

    async def run(self):
        """Run all demo steps."""
        print("\n" + "=" * 70)
        print("TRANSACTION SIGNER - DRY-RUN DEMO")
        print("=" * 70)
        print(f"   Timestamp: {self.results['timestamp']}")

        try:
            await self.step(
                "Direct Transaction",
                [PathNode(to=VOTING)],
                Transaction(from_address=USER, to=VOTING, description="Create a new vote"),
                expected=SigningStatus.SIGNED,
            )
            await self.step(
                "Forwarded With Pretransaction",
                [
                    PathNode(to=TOKENS, name="Tokens", description="Forward as a token holder"),
                    PathNode(to=VOTING, name="Voting", description="Vote yes on proposal #1"),
                ],
                Transaction(
                    from_address=USER,
                    to=TOKENS,
                    pretransaction=Transaction(from_address=USER, to=VOTING, data="0x095ea7b3"),
                ),
                expected=SigningStatus.SIGNED,
            )
            await self.step(
                "Declined Pretransaction",
                [PathNode(to=VOTING)],
                Transaction(
                    from_address=USER,
                    to=VOTING,
                    description="Deposit tokens",
                    pretransaction=Transaction(from_address=USER, to=TOKEN),
                ),
                expected=SigningStatus.ERROR,
            )
            await self.step(
                "Reverted After Hash",
                [PathNode(to=FINANCE)],
                Transaction(from_address=USER, to=FINANCE, description="Make a payment"),
                expected=SigningStatus.SIGNED,
            )

            await self.session.wait_idle()
            await self.save_results()

        finally:
            await self.session.aclose()

    async def step(self, name, path, transaction, expected):
        """Sign one request and record the outcome."""
        print("\n" + "-" * 70)
        print(f"STEP: {name}")
        print("-" * 70)

        request = self.session.request(path, transaction)
        intent = self.session.state.intent
        print(f"   App: {intent.name} ({intent.to})")
        print(f"   Action: {intent.description}")

        result = await self.session.confirm()
        status = self.session.state.status

        if result.ok:
            print(f"   Hash: {result.transaction_hash}")
            self.results["transactions"].append({
                "step": name,
                "tx_hash": await request.result.wait(),
            })
        else:
            print(f"   Error: {result.error}")
            self.session.close()

        self.results["tests"].append({
            "name": name,
            "status": "PASSED" if status == expected else "FAILED",
            "details": f"Ended in {status.value}",
        })

        # Let the signed panel close before the next request
        await asyncio.sleep(self.config.close_delay_seconds * 2)

    async def save_results(self):
        """Save demo results."""
        print("\n" + "=" * 70)
        print("DEMO RESULTS SUMMARY")
        print("=" * 70)

        passed = sum(1 for t in self.results["tests"] if t["status"] == "PASSED")
        print(f"\n   Tests: {passed}/{len(self.results['tests'])} PASSED")
        for test in self.results["tests"]:
            print(f"   - {test['name']}: {test['status']} ({test['details']})")

        activities = await self.ledger.list_activities()
        self.results["activities"] = [record.to_dict() for record in activities]

        print("\n   Activity:")
        for record in activities:
            print(f"   {record.status.value:<10} nonce={record.nonce}  {record.description}")

        with open(self.output, "w") as f:
            json.dump(self.results, f, indent=2)

        print(f"\n   Results saved to: {self.output}")


def main():
    parser = argparse.ArgumentParser(description="Run the dry-run signing demo")
    parser.add_argument(
        "--output", "-o",
        default="demo_results.json",
        help="Where to write the results"
    )

    args = parser.parse_args()

    runner = DemoRunner(args.output)
    asyncio.run(runner.run())


if __name__ == "__main__":
    main()
