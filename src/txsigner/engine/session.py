"""
Signing Session - one caller's signing panel.

Wires the intent resolver, state machine, submitter and orchestrator
together around a provider and an activity ledger.
"""

from typing import Optional, Sequence

from txsigner.config import SignerConfig, get_config
from txsigner.core.apps import ApplicationRegistry
from txsigner.core.intent import IntentResolver
from txsigner.core.types import PanelState, PathNode, SubmissionRequest, Transaction
from txsigner.engine.orchestrator import SigningOrchestrator, SigningResult
from txsigner.engine.submitter import TransactionSubmitter
from txsigner.provider.interface import AccountQuery, SigningProvider
from txsigner.state.ledger import ActivityLedger
from txsigner.state.machine import SigningStateMachine


class SigningSession:
    """
    Signing session for a single caller.

    Each session owns its own state machine; sessions never share state.

    Usage:
        ```python
        session = SigningSession(provider, ledger, registry)
        request = session.request(path, transaction)
        await session.confirm()
        transaction_hash = await request.result.wait()
        ```
    """

    def __init__(
        self,
        provider: SigningProvider,
        ledger: ActivityLedger,
        registry: Optional[ApplicationRegistry] = None,
        account_query: Optional[AccountQuery] = None,
        config: Optional[SignerConfig] = None,
    ):
        """
        Initialize the session.

        Args:
            provider: Signing provider that sends transactions
            ledger: Activity ledger to report to
            registry: Known applications, used to name direct transactions
            account_query: Source of nonce annotations
            config: Signer configuration
        """
        self.config = config or get_config()
        self.provider = provider
        self.ledger = ledger

        self.resolver = IntentResolver(registry)
        self.state_machine = SigningStateMachine(self.resolver, self.config)
        self.submitter = TransactionSubmitter(provider, ledger, account_query, self.config)
        self.orchestrator = SigningOrchestrator(self.submitter, self.state_machine)

    @property
    def state(self) -> PanelState:
        return self.state_machine.state

    def request(self, path: Sequence[PathNode], transaction: Transaction) -> SubmissionRequest:
        """Create a submission request and show it for confirmation."""
        request = SubmissionRequest(path=list(path), transaction=transaction)
        self.state_machine.receive(request)
        return request

    def receive(self, request: SubmissionRequest) -> bool:
        """Show an existing submission request for confirmation."""
        return self.state_machine.receive(request)

    async def confirm(self) -> SigningResult:
        """Sign the request currently shown."""
        return await self.orchestrator.confirm()

    def close(self) -> bool:
        return self.state_machine.close()

    def transition_ended(self, opened: bool) -> bool:
        return self.state_machine.transition_ended(opened)

    async def wait_idle(self) -> None:
        """Wait until every submitted transaction has been mined or failed."""
        await self.submitter.wait_idle()

    async def aclose(self) -> None:
        """Stop tracking outstanding transactions."""
        await self.submitter.aclose()
