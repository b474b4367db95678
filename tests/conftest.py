"""
Pytest configuration and shared fixtures for the test suite.
"""

import asyncio
from typing import Dict, List, Optional, Set

import pytest

from txsigner.config import SignerConfig
from txsigner.core.apps import Application, ApplicationRegistry
from txsigner.core.intent import IntentResolver
from txsigner.core.types import PathNode, Receipt, SubmissionRequest, Transaction
from txsigner.engine.orchestrator import SigningOrchestrator
from txsigner.engine.submitter import TransactionSubmitter
from txsigner.provider.interface import (
    AccountQuery,
    AdvisoryLookupFailure,
    ReceiptTimeoutError,
    SigningProvider,
)
from txsigner.state.ledger import InMemoryActivityLedger
from txsigner.state.machine import SigningStateMachine


USER_ADDRESS = "0x4a0bC4E2A52dF3B4F1c8b5e0B6aFcD3E5b1f9A01"
VOTING_APP = "0x1111111111111111111111111111111111111111"
TOKEN_MANAGER = "0x2222222222222222222222222222222222222222"
TOKEN_CONTRACT = "0x3333333333333333333333333333333333333333"


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def test_config() -> SignerConfig:
    """Create a test configuration."""
    return SignerConfig(
        wallet_rpc_url="http://wallet.test",
        rpc_url="http://node.test",
        close_delay_seconds=0.05,
        receipt_poll_interval_seconds=0.01,
        database_url="sqlite+aiosqlite:///:memory:",
        log_level="DEBUG",
    )


# ============================================================================
# Test Data Generators
# ============================================================================

def generate_test_tx_hash(index: int = 0) -> str:
    """Generate a deterministic test transaction hash."""
    return f"0x{index:064x}"


@pytest.fixture
def registry() -> ApplicationRegistry:
    """Create a registry with the voting app installed."""
    return ApplicationRegistry([
        Application(name="Voting", proxy_address=VOTING_APP),
        Application(name="Tokens", proxy_address=TOKEN_MANAGER),
    ])


@pytest.fixture
def resolver(registry) -> IntentResolver:
    return IntentResolver(registry)


@pytest.fixture
def direct_transaction() -> Transaction:
    """A vote cast straight on the voting app."""
    return Transaction(
        from_address=USER_ADDRESS,
        to=VOTING_APP,
        data="0xdf133bca",
        description="Vote yes on proposal #1",
    )


@pytest.fixture
def direct_path() -> List[PathNode]:
    return [PathNode(to=VOTING_APP)]


@pytest.fixture
def forwarded_transaction() -> Transaction:
    """A vote cast through the token manager."""
    return Transaction(
        from_address=USER_ADDRESS,
        to=TOKEN_MANAGER,
        data="0xd948d468",
    )


@pytest.fixture
def forwarded_path() -> List[PathNode]:
    return [
        PathNode(to=TOKEN_MANAGER, name="Tokens", description="Forward as a token holder"),
        PathNode(to=VOTING_APP, name="Voting", description="Vote yes on proposal #1"),
    ]


@pytest.fixture
def pretransaction() -> Transaction:
    """An allowance the voting app needs before the vote."""
    return Transaction(
        from_address=USER_ADDRESS,
        to=TOKEN_CONTRACT,
        data="0x095ea7b3",
    )


@pytest.fixture
def transaction_with_pretransaction(pretransaction) -> Transaction:
    return Transaction(
        from_address=USER_ADDRESS,
        to=VOTING_APP,
        data="0xdf133bca",
        pretransaction=pretransaction,
        description="Vote yes on proposal #1",
    )


@pytest.fixture
def direct_request(direct_path, direct_transaction) -> SubmissionRequest:
    return SubmissionRequest(path=direct_path, transaction=direct_transaction)


# ============================================================================
# Mock Signing Provider
# ============================================================================

class MockSigningProvider(SigningProvider):
    """
    Mock signing provider for testing.

    Sends and receipts can be held back with ``send_gate`` and
    ``receipt_gate``; transactions to addresses in ``rejections`` raise the
    given exception, those to addresses in ``reverted`` mine with status 0x0.
    """

    def __init__(self):
        self.send_calls: List[Transaction] = []
        self.sent: List[Transaction] = []
        self.rejections: Dict[str, Exception] = {}
        self.reverted: Set[str] = set()
        self.receipt_error: Optional[Exception] = None
        self.send_gate: Optional[asyncio.Event] = None
        self.receipt_gate: Optional[asyncio.Event] = None
        self._connected = False

    async def connect(self) -> None:
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    async def send_transaction(self, transaction: Transaction) -> str:
        self.send_calls.append(transaction)
        if self.send_gate is not None:
            await self.send_gate.wait()

        rejection = self.rejections.get(transaction.to.lower())
        if rejection is not None:
            raise rejection

        self.sent.append(transaction)
        return generate_test_tx_hash(len(self.sent))

    async def wait_for_receipt(
        self,
        transaction_hash: str,
        timeout_seconds: Optional[float] = None,
    ) -> Receipt:
        if self.receipt_gate is not None:
            try:
                await asyncio.wait_for(self.receipt_gate.wait(), timeout=timeout_seconds)
            except asyncio.TimeoutError:
                raise ReceiptTimeoutError(transaction_hash, timeout_seconds)

        if self.receipt_error is not None:
            raise self.receipt_error

        transaction = self.transaction_for(transaction_hash)
        status = "0x0" if transaction.to.lower() in self.reverted else "0x1"
        return Receipt(transaction_hash=transaction_hash, status=status, block_number=1, gas_used=21000)

    def transaction_for(self, transaction_hash: str) -> Transaction:
        """Get the sent transaction a hash belongs to."""
        return self.sent[int(transaction_hash, 16) - 1]


class MockAccountQuery(AccountQuery):
    """Mock account query answering every lookup with a fixed nonce."""

    def __init__(self, nonce: int = 7):
        self.nonce = nonce
        self.fail = False
        self.lookups: List[str] = []

    async def get_transaction_nonce(self, transaction_hash: str) -> int:
        self.lookups.append(transaction_hash)
        if self.fail:
            raise AdvisoryLookupFailure("node unavailable")
        return self.nonce

    async def get_transaction_count(self, address: str) -> int:
        return self.nonce + 1


@pytest.fixture
def mock_provider() -> MockSigningProvider:
    """Create a mock signing provider."""
    return MockSigningProvider()


@pytest.fixture
def mock_account_query() -> MockAccountQuery:
    return MockAccountQuery()


# ============================================================================
# Component Fixtures
# ============================================================================

@pytest.fixture
def ledger() -> InMemoryActivityLedger:
    return InMemoryActivityLedger()


@pytest.fixture
def submitter(mock_provider, ledger, mock_account_query, test_config) -> TransactionSubmitter:
    return TransactionSubmitter(mock_provider, ledger, mock_account_query, test_config)


@pytest.fixture
def state_machine(resolver, test_config) -> SigningStateMachine:
    return SigningStateMachine(resolver, test_config)


@pytest.fixture
def orchestrator(submitter, state_machine) -> SigningOrchestrator:
    return SigningOrchestrator(submitter, state_machine)
