"""
Core signing data model.

This module contains the request, transaction, intent and activity types
shared by the engine, the state machine and the providers.
"""

from txsigner.core.apps import Application, ApplicationRegistry
from txsigner.core.intent import IntentResolver, pretransaction_description
from txsigner.core.types import (
    RECEIPT_ERROR_STATUS,
    ActivityRecord,
    ActivityStatus,
    Intent,
    PanelState,
    PathNode,
    Receipt,
    ResultHandle,
    SigningStatus,
    SubmissionRequest,
    Transaction,
)

__all__ = [
    "RECEIPT_ERROR_STATUS",
    "ActivityRecord",
    "ActivityStatus",
    "Application",
    "ApplicationRegistry",
    "Intent",
    "IntentResolver",
    "PanelState",
    "PathNode",
    "Receipt",
    "ResultHandle",
    "SigningStatus",
    "SubmissionRequest",
    "Transaction",
    "pretransaction_description",
]
