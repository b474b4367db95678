"""
Transaction Submitter - drives a single transaction through the provider.

Each submission produces an ordered sequence of lifecycle events:
HASHED once the provider accepts the transaction, then MINED when a
receipt arrives, or FAILED if the provider declines it.
"""

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Coroutine, List, Optional, Set

import structlog

from txsigner.config import SignerConfig, get_config
from txsigner.core.types import ActivityRecord, Intent, Receipt, Transaction
from txsigner.core.intent import pretransaction_description
from txsigner.provider.interface import (
    AccountQuery,
    ExecutionFailure,
    ProviderRejection,
    ReceiptTimeoutError,
    SigningProvider,
)
from txsigner.state.ledger import ActivityLedger

logger = structlog.get_logger(__name__)


class SubmissionEventKind(str, Enum):
    """Lifecycle events of a submitted transaction."""
    HASHED = "hashed"             # Accepted into the pending pool
    MINED = "mined"               # Receipt received
    FAILED = "failed"             # Declined, or lost track of


@dataclass(frozen=True)
class SubmissionEvent:
    """A lifecycle event of a submission."""

    kind: SubmissionEventKind
    transaction_hash: Optional[str] = None
    receipt: Optional[Receipt] = None
    error: Optional[BaseException] = None

    @property
    def reverted(self) -> bool:
        """Check if the event reports a mined but reverted transaction."""
        return self.receipt is not None and self.receipt.reverted


def _consume_exception(future: asyncio.Future) -> None:
    # Rejections are delivered to whoever awaits; nobody awaiting is fine.
    if not future.cancelled():
        future.exception()


class Submission:
    """
    A transaction handed to the provider, and the events it produced.

    ``wait_hashed()`` resolves as soon as the transaction has a hash;
    ``wait_settled()`` resolves with the terminal MINED or FAILED event.
    """

    def __init__(self, transaction: Transaction, description: str, is_pretransaction: bool = False):
        loop = asyncio.get_running_loop()
        self.transaction = transaction
        self.description = description
        self.is_pretransaction = is_pretransaction
        self.events: List[SubmissionEvent] = []

        self._hashed: asyncio.Future = loop.create_future()
        self._hashed.add_done_callback(_consume_exception)
        self._settled: asyncio.Future = loop.create_future()

    @property
    def transaction_hash(self) -> Optional[str]:
        if self._hashed.done() and self._hashed.exception() is None:
            return self._hashed.result()
        return None

    @property
    def settled(self) -> bool:
        return self._settled.done()

    def _emit(self, event: SubmissionEvent) -> None:
        """Record an event and wake up its waiters."""
        self.events.append(event)

        if event.kind == SubmissionEventKind.HASHED:
            self._hashed.set_result(event.transaction_hash)
            return

        if not self._hashed.done():
            self._hashed.set_exception(event.error)
        self._settled.set_result(event)

    async def wait_hashed(self) -> str:
        """
        Wait for the transaction hash.

        Returns:
            Transaction hash

        Raises:
            ProviderRejection: If the provider declined the transaction
        """
        return await asyncio.shield(self._hashed)

    async def wait_settled(self) -> SubmissionEvent:
        """Wait for the terminal MINED or FAILED event."""
        return await asyncio.shield(self._settled)


class TransactionSubmitter:
    """
    Submits transactions and reports their lifecycle to the activity ledger.

    Submissions run as background tasks: ``submit`` returns immediately and
    the caller awaits the event it needs. Receipt tracking continues after
    the hash is known, and may never end for a dropped transaction unless
    ``receipt_timeout_seconds`` is configured.
    """

    def __init__(
        self,
        provider: SigningProvider,
        ledger: ActivityLedger,
        account_query: Optional[AccountQuery] = None,
        config: Optional[SignerConfig] = None,
    ):
        """
        Initialize the submitter.

        Args:
            provider: Signing provider that sends transactions
            ledger: Activity ledger to report to
            account_query: Source of advisory nonce annotations (skipped if None)
            config: Signer configuration
        """
        self.config = config or get_config()
        self.provider = provider
        self.ledger = ledger
        self.account_query = account_query
        self._tasks: Set[asyncio.Task] = set()

    def submit(
        self,
        transaction: Transaction,
        intent: Intent,
        is_pretransaction: bool = False,
    ) -> Submission:
        """
        Submit a transaction.

        Args:
            transaction: Transaction to send
            intent: Intent the transaction belongs to
            is_pretransaction: True for the authorization sent before the main transaction

        Returns:
            Submission tracking the transaction's events
        """
        description = pretransaction_description(intent) if is_pretransaction else intent.description
        submission = Submission(transaction, description, is_pretransaction)
        task = self._spawn(self._drive(submission, intent))
        task.add_done_callback(lambda t: self._settle_cancelled(submission, t))

        logger.debug(
            "transaction_submitting",
            to=transaction.to,
            pretransaction=is_pretransaction,
        )
        return submission

    @property
    def pending(self) -> int:
        """Number of outstanding background tasks."""
        return len(self._tasks)

    async def wait_idle(self) -> None:
        """Wait for every outstanding submission and nonce lookup to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Stop tracking outstanding submissions."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.info("submitter_closed", cancelled=len(tasks))

    def _spawn(self, coro: Coroutine) -> asyncio.Task:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _settle_cancelled(self, submission: Submission, task: asyncio.Task) -> None:
        """Fail a submission whose task was cancelled before it settled."""
        if not task.cancelled() or submission.settled:
            return

        logger.warning(
            "submission_cancelled",
            transaction_hash=submission.transaction_hash,
            pretransaction=submission.is_pretransaction,
        )
        error = ProviderRejection("Submission cancelled", submission.transaction_hash)
        submission._emit(SubmissionEvent(SubmissionEventKind.FAILED, submission.transaction_hash, error=error))

    async def _drive(self, submission: Submission, intent: Intent) -> None:
        """Send a transaction and follow it until mined or failed."""
        try:
            transaction_hash = await self.provider.send_transaction(submission.transaction)
        except ProviderRejection as e:
            logger.warning(
                "transaction_rejected",
                to=submission.transaction.to,
                error=str(e),
                pretransaction=submission.is_pretransaction,
            )
            if e.transaction_hash:
                await self._report(self.ledger.set_activity_failed(e.transaction_hash), e.transaction_hash)
            submission._emit(SubmissionEvent(SubmissionEventKind.FAILED, e.transaction_hash, error=e))
            return
        except Exception as e:
            logger.error("transaction_send_failed", to=submission.transaction.to, error=str(e))
            submission._emit(SubmissionEvent(SubmissionEventKind.FAILED, error=e))
            return

        await self._report(
            self.ledger.add_transaction_activity(self._build_activity(submission, intent, transaction_hash)),
            transaction_hash,
        )
        if self.account_query is not None:
            self._spawn(self._annotate_nonce(transaction_hash))

        logger.info(
            "transaction_hashed",
            transaction_hash=transaction_hash,
            pretransaction=submission.is_pretransaction,
        )
        submission._emit(SubmissionEvent(SubmissionEventKind.HASHED, transaction_hash))

        await self._track_receipt(submission, transaction_hash)

    async def _track_receipt(self, submission: Submission, transaction_hash: str) -> None:
        """Wait for the receipt and report the execution outcome."""
        try:
            receipt = await self.provider.wait_for_receipt(
                transaction_hash,
                timeout_seconds=self.config.receipt_timeout_seconds,
            )
        except ReceiptTimeoutError as e:
            # Outcome unknown: the activity stays pending
            logger.warning("receipt_wait_expired", transaction_hash=transaction_hash)
            submission._emit(SubmissionEvent(SubmissionEventKind.FAILED, transaction_hash, error=e))
            return
        except ProviderRejection as e:
            logger.warning("transaction_failed_after_hash", transaction_hash=transaction_hash, error=str(e))
            await self._report(self.ledger.set_activity_failed(transaction_hash), transaction_hash)
            submission._emit(SubmissionEvent(SubmissionEventKind.FAILED, transaction_hash, error=e))
            return
        except Exception as e:
            logger.error("receipt_wait_failed", transaction_hash=transaction_hash, error=str(e))
            submission._emit(SubmissionEvent(SubmissionEventKind.FAILED, transaction_hash, error=e))
            return

        if receipt.reverted:
            logger.warning("transaction_reverted", transaction_hash=transaction_hash)
            await self._report(self.ledger.set_activity_failed(transaction_hash), transaction_hash)
            submission._emit(SubmissionEvent(
                SubmissionEventKind.MINED,
                transaction_hash,
                receipt=receipt,
                error=ExecutionFailure(transaction_hash, receipt),
            ))
        else:
            logger.info("transaction_mined", transaction_hash=transaction_hash, block=receipt.block_number)
            await self._report(self.ledger.set_activity_confirmed(transaction_hash), transaction_hash)
            submission._emit(SubmissionEvent(SubmissionEventKind.MINED, transaction_hash, receipt=receipt))

    def _build_activity(self, submission: Submission, intent: Intent, transaction_hash: str) -> ActivityRecord:
        return ActivityRecord(
            transaction_hash=transaction_hash,
            from_address=intent.transaction.from_address,
            target_app_name=intent.name,
            target_app_address=intent.to,
            forwarder_address=intent.transaction.to if intent.has_forwarder else "",
            description=submission.description,
        )

    async def _annotate_nonce(self, transaction_hash: str) -> None:
        """Attach the transaction's nonce to its activity, best effort."""
        try:
            nonce = await self.account_query.get_transaction_nonce(transaction_hash)
        except Exception as e:
            logger.warning("nonce_lookup_failed", transaction_hash=transaction_hash, error=str(e))
            return

        await self._report(self.ledger.set_activity_nonce(transaction_hash, nonce), transaction_hash)

    async def _report(self, update: Awaitable, transaction_hash: str) -> None:
        """Apply a ledger update; a failing ledger never affects the submission."""
        try:
            await update
        except Exception as e:
            logger.error("ledger_update_failed", transaction_hash=transaction_hash, error=str(e))
