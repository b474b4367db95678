"""
Signing Orchestrator - runs a confirmed signing request.

Sends the optional pretransaction, then the main transaction, and
settles the caller's result with the main transaction hash.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import structlog

from txsigner.core.types import (
    Intent,
    ResultHandle,
    SigningStatus,
    SubmissionRequest,
    Transaction,
)
from txsigner.engine.submitter import Submission, TransactionSubmitter
from txsigner.provider.interface import ProviderRejection
from txsigner.state.machine import InvalidTransitionError, SigningStateMachine

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SigningResult:
    """Outcome of a signing run: the main transaction hash, or an error."""

    transaction_hash: Optional[str] = None
    error: Optional[BaseException] = None
    submissions: Tuple[Submission, ...] = ()

    @property
    def ok(self) -> bool:
        return self.error is None


class SigningOrchestrator:
    """
    Sequences the transactions of a signing request.

    The pretransaction must be hashed before the main transaction is
    sent; if it is declined the run ends there. A run only updates the
    state machine while the state still describes the run's request: if a
    new request replaced it mid-flight, the old run settles its own result
    handle and leaves the new state alone.

    Usage:
        ```python
        machine.receive(request)
        result = await orchestrator.confirm()
        ```
    """

    def __init__(self, submitter: TransactionSubmitter, state_machine: SigningStateMachine):
        self.submitter = submitter
        self.state_machine = state_machine

    async def confirm(self) -> SigningResult:
        """
        Sign the request the state machine currently shows.

        Returns:
            Result of the run

        Raises:
            InvalidTransitionError: If no open request is awaiting confirmation
        """
        state = self.state_machine.state
        if not state.opened or state.request is None or state.status != SigningStatus.CONFIRMING:
            raise InvalidTransitionError(state.status, SigningStatus.SIGNING)

        return await self.run(
            state.intent,
            state.intent.transaction,
            state.pretransaction,
            result=state.request.result,
        )

    async def run(
        self,
        intent: Intent,
        transaction: Transaction,
        pretransaction: Optional[Transaction] = None,
        result: Optional[ResultHandle] = None,
    ) -> SigningResult:
        """
        Send the pretransaction, if any, then the main transaction.

        Args:
            intent: Intent both transactions belong to
            transaction: Main transaction
            pretransaction: Authorization to send first
            result: Caller's handle to settle with the outcome

        Returns:
            Result of the run; errors are returned, not raised
        """
        request = self.state_machine.state.request
        self.state_machine.mark_signing()
        submissions = []

        try:
            if pretransaction is not None:
                submission = self.submitter.submit(pretransaction, intent, is_pretransaction=True)
                submissions.append(submission)
                await submission.wait_hashed()

            submission = self.submitter.submit(transaction, intent)
            submissions.append(submission)
            transaction_hash = await submission.wait_hashed()

        except ProviderRejection as e:
            logger.warning("signing_rejected", target_app=intent.name, error=str(e))
            return self._fail(request, result, e, submissions)

        except Exception as e:
            logger.error("signing_failed_unexpectedly", target_app=intent.name, error=str(e))
            return self._fail(request, result, e, submissions)

        if result is not None:
            result.resolve(transaction_hash)

        if self._owns_state(request):
            self.state_machine.mark_signed()
        else:
            logger.info("signing_outcome_discarded", transaction_hash=transaction_hash)

        logger.info(
            "signing_completed",
            target_app=intent.name,
            transaction_hash=transaction_hash,
            transactions=len(submissions),
        )
        return SigningResult(transaction_hash=transaction_hash, submissions=tuple(submissions))

    def _fail(
        self,
        request: Optional[SubmissionRequest],
        result: Optional[ResultHandle],
        error: BaseException,
        submissions: list,
    ) -> SigningResult:
        if result is not None:
            result.reject(error)

        if self._owns_state(request):
            self.state_machine.mark_error(error)
        else:
            logger.info("signing_outcome_discarded", error=str(error))

        return SigningResult(error=error, submissions=tuple(submissions))

    def _owns_state(self, request: Optional[SubmissionRequest]) -> bool:
        """Check if the state machine still describes this run."""
        state = self.state_machine.state
        return state.request is request and state.status == SigningStatus.SIGNING
