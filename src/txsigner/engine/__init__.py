"""
Signing engine.

Submission of single transactions, orchestration of signing runs and
the session facade tying them to a state machine.
"""

from txsigner.engine.orchestrator import SigningOrchestrator, SigningResult
from txsigner.engine.session import SigningSession
from txsigner.engine.submitter import (
    Submission,
    SubmissionEvent,
    SubmissionEventKind,
    TransactionSubmitter,
)

__all__ = [
    "SigningOrchestrator",
    "SigningResult",
    "SigningSession",
    "Submission",
    "SubmissionEvent",
    "SubmissionEventKind",
    "TransactionSubmitter",
]
