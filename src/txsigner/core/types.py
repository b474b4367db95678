"""
Signing data model.

Submission requests, transactions, intents, receipts, activity records
and the observable panel state.
"""

import asyncio
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

import structlog

logger = structlog.get_logger(__name__)

# Post-execution receipt status of a mined but reverted transaction (EIP-658)
RECEIPT_ERROR_STATUS = "0x0"


class SigningStatus(str, Enum):
    """Externally observable status of a signing request."""
    CONFIRMING = "confirming"     # Waiting for the user to confirm
    SIGNING = "signing"           # Transactions being submitted
    SIGNED = "signed"             # Main transaction hashed
    ERROR = "error"               # Submission rejected


class ActivityStatus(str, Enum):
    """Status of a reported transaction activity."""
    PENDING = "pending"           # Hashed, waiting to be mined
    CONFIRMED = "confirmed"       # Mined successfully
    FAILED = "failed"             # Rejected or reverted


def parse_quantity(value: Any) -> Optional[int]:
    """Convert a JSON-RPC quantity given as hex string, decimal string or int."""
    if value is None:
        return None
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def addresses_equal(first: Optional[str], second: Optional[str]) -> bool:
    """Compare two hex addresses regardless of checksum casing."""
    if not first or not second:
        return False
    return first.lower() == second.lower()


@dataclass(frozen=True)
class PathNode:
    """
    A single hop of a submission path.

    Attributes:
        to: Address of the contract at this hop
        name: Application name of the contract
        description: Human description of what the hop does
        annotated_description: Optional structured description for rich display
    """

    to: str
    name: str = ""
    description: str = ""
    annotated_description: Optional[Any] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PathNode":
        """Create a node from its JSON representation."""
        return cls(
            to=data["to"],
            name=data.get("name") or "",
            description=data.get("description") or "",
            annotated_description=data.get("annotatedDescription"),
        )


@dataclass(frozen=True)
class Transaction:
    """
    A transaction handed to the signing provider.

    Attributes:
        from_address: Sending account
        to: Immediate recipient
        data: Call data as hex
        value: Value in wei
        pretransaction: Optional transaction that must be sent first
        description: Human description (used for direct paths)
        annotated_description: Structured description (used for direct paths)
        extra: Further provider fields (gas, gasPrice, nonce, chainId, ...)
    """

    from_address: str
    to: str
    data: str = "0x"
    value: int = 0
    pretransaction: Optional["Transaction"] = None
    description: str = ""
    annotated_description: Optional[Any] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Transaction":
        """
        Create a transaction from its JSON representation.

        Unknown keys are kept in ``extra`` and passed through to the provider.

        Args:
            data: Mapping using the provider field names (``from``, ``to``, ...)

        Returns:
            New Transaction instance
        """
        known = {"from", "to", "data", "value", "pretransaction", "description", "annotatedDescription"}
        pretransaction = data.get("pretransaction")

        return cls(
            from_address=data["from"],
            to=data["to"],
            data=data.get("data") or "0x",
            value=parse_quantity(data.get("value")) or 0,
            pretransaction=cls.from_dict(pretransaction) if pretransaction else None,
            description=data.get("description") or "",
            annotated_description=data.get("annotatedDescription"),
            extra={k: v for k, v in data.items() if k not in known},
        )

    def to_params(self) -> Dict[str, Any]:
        """Get the parameter dict sent to the signing provider."""
        return {
            **self.extra,
            "from": self.from_address,
            "to": self.to,
            "data": self.data,
            "value": self.value,
        }


class ResultHandle:
    """
    Settle-once result of a submission request.

    The caller awaits ``wait()``; the orchestrator settles the handle with
    either the main transaction hash or the error that ended the run.
    """

    def __init__(self):
        self._settled = asyncio.Event()
        self._transaction_hash: Optional[str] = None
        self._error: Optional[BaseException] = None

    @property
    def done(self) -> bool:
        """Check if the handle has been settled."""
        return self._settled.is_set()

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def resolve(self, transaction_hash: str) -> bool:
        """Settle with a transaction hash. Returns False if already settled."""
        if self.done:
            logger.warning("result_already_settled", transaction_hash=transaction_hash)
            return False
        self._transaction_hash = transaction_hash
        self._settled.set()
        return True

    def reject(self, error: BaseException) -> bool:
        """Settle with an error. Returns False if already settled."""
        if self.done:
            logger.warning("result_already_settled", error=str(error))
            return False
        self._error = error
        self._settled.set()
        return True

    async def wait(self) -> str:
        """
        Wait for the handle to settle.

        Returns:
            The main transaction hash

        Raises:
            The error the handle was rejected with
        """
        await self._settled.wait()
        if self._error is not None:
            raise self._error
        return self._transaction_hash


@dataclass(frozen=True, eq=False)
class SubmissionRequest:
    """
    A request to sign an ordered sequence of related transactions.

    Requests compare by identity: a new request object is a new request,
    even if its contents equal the current one.

    Attributes:
        path: Forwarding path, ending at the contract that executes the intent
        transaction: Transaction to sign (may carry a pretransaction)
        result: Handle settled with the outcome
    """

    path: List[PathNode]
    transaction: Transaction
    result: ResultHandle = field(default_factory=ResultHandle)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SubmissionRequest":
        """Create a request from its JSON representation."""
        return cls(
            path=[PathNode.from_dict(node) for node in data.get("path", [])],
            transaction=Transaction.from_dict(data["transaction"]),
        )


@dataclass(frozen=True)
class Intent:
    """Resolved description of what a transaction does and which app it targets."""

    name: str
    to: str
    description: str
    annotated_description: Optional[Any]
    transaction: Transaction

    @property
    def has_forwarder(self) -> bool:
        """Check if the transaction reaches the target through a forwarder."""
        return not addresses_equal(self.to, self.transaction.to)


@dataclass(frozen=True)
class Receipt:
    """Receipt of a mined transaction."""

    transaction_hash: str
    status: Optional[int]
    block_number: Optional[int] = None
    gas_used: Optional[int] = None

    def __post_init__(self):
        """Normalize the status representation."""
        object.__setattr__(self, "status", parse_quantity(self.status))

    @property
    def reverted(self) -> bool:
        """Check if the transaction was mined but its execution failed."""
        return self.status == parse_quantity(RECEIPT_ERROR_STATUS)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Receipt":
        """Create a receipt from a JSON-RPC receipt object."""
        transaction_hash = data["transactionHash"]
        if isinstance(transaction_hash, bytes):
            transaction_hash = "0x" + bytes(transaction_hash).hex()
        return cls(
            transaction_hash=transaction_hash,
            status=data.get("status"),
            block_number=parse_quantity(data.get("blockNumber")),
            gas_used=parse_quantity(data.get("gasUsed")),
        )


@dataclass
class ActivityRecord:
    """
    A ledger entry tracking a submitted transaction.

    Attributes:
        transaction_hash: Hash assigned by the provider
        from_address: Sending account
        target_app_name: Name of the application the intent targets
        target_app_address: Address of the application the intent targets
        forwarder_address: First forwarder, empty for direct transactions
        description: Human description of the transaction
        status: Lifecycle status
        nonce: Account nonce of the transaction, once known
    """

    transaction_hash: str
    from_address: str
    target_app_name: str
    target_app_address: str
    forwarder_address: str = ""
    description: str = ""
    status: ActivityStatus = ActivityStatus.PENDING
    nonce: Optional[int] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self):
        """Validate and normalize after initialization."""
        if isinstance(self.status, str):
            self.status = ActivityStatus(self.status)

    def mark_confirmed(self) -> None:
        """Mark activity as confirmed."""
        self.status = ActivityStatus.CONFIRMED
        self.updated_at = datetime.utcnow()

    def mark_failed(self) -> None:
        """Mark activity as failed."""
        self.status = ActivityStatus.FAILED
        self.updated_at = datetime.utcnow()

    def set_nonce(self, nonce: int) -> None:
        self.nonce = nonce
        self.updated_at = datetime.utcnow()

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "transaction_hash": self.transaction_hash,
            "from": self.from_address,
            "target_app_name": self.target_app_name,
            "target_app_address": self.target_app_address,
            "forwarder_address": self.forwarder_address,
            "description": self.description,
            "status": self.status.value,
            "nonce": self.nonce,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(frozen=True)
class PanelState:
    """
    Observable state of the signing panel.

    Attributes:
        opened: Whether the panel is shown
        request: Request the state was populated from
        intent: Resolved intent of the request
        direct_path: True if the transaction goes straight to its target
        action_paths: Paths the user may choose from
        pretransaction: Transaction to send before the main one
        status: Signing status
        sign_error: Error of the last failed run
    """

    opened: bool = False
    request: Optional[SubmissionRequest] = None
    intent: Optional[Intent] = None
    direct_path: bool = False
    action_paths: List[List[PathNode]] = field(default_factory=list)
    pretransaction: Optional[Transaction] = None
    status: SigningStatus = SigningStatus.CONFIRMING
    sign_error: Optional[BaseException] = None

    def evolve(self, **changes: Any) -> "PanelState":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)
