"""
State Management module.

Handles the signing panel state and the activity ledger, in memory or
persisted.
"""

from txsigner.state.database import DatabaseActivityLedger, init_ledger
from txsigner.state.ledger import ActivityLedger, InMemoryActivityLedger
from txsigner.state.machine import InvalidTransitionError, SigningStateMachine

__all__ = [
    "ActivityLedger",
    "DatabaseActivityLedger",
    "InMemoryActivityLedger",
    "InvalidTransitionError",
    "SigningStateMachine",
    "init_ledger",
]
