"""
Transaction Signer

Orchestrates the signing of related on-chain transactions: an optional
pretransaction followed by the main transaction, submitted in order through
a wallet, tracked until mined and reported to an activity ledger.
"""

__version__ = "0.1.0"

from txsigner.core.types import SigningStatus, SubmissionRequest
from txsigner.engine.orchestrator import SigningOrchestrator, SigningResult
from txsigner.engine.session import SigningSession
from txsigner.state.machine import SigningStateMachine

__all__ = [
    "SigningOrchestrator",
    "SigningResult",
    "SigningSession",
    "SigningStateMachine",
    "SigningStatus",
    "SubmissionRequest",
]
