"""
Signing State Machine - owns the observable state of the signing panel.

Status moves CONFIRMING -> SIGNING -> SIGNED | ERROR. A new request
replaces everything at any point and starts over at CONFIRMING.
"""

import asyncio
from typing import Callable, Dict, Optional, Set

import structlog

from txsigner.config import SignerConfig, get_config
from txsigner.core.types import PanelState, SigningStatus, SubmissionRequest
from txsigner.core.intent import IntentResolver

logger = structlog.get_logger(__name__)

_TRANSITIONS: Dict[SigningStatus, Set[SigningStatus]] = {
    SigningStatus.CONFIRMING: {SigningStatus.SIGNING},
    SigningStatus.SIGNING: {SigningStatus.SIGNED, SigningStatus.ERROR},
    SigningStatus.SIGNED: set(),
    SigningStatus.ERROR: set(),
}


class InvalidTransitionError(Exception):
    """Raised when a status change is not allowed from the current status."""

    def __init__(self, current: SigningStatus, requested: SigningStatus):
        super().__init__(f"Cannot move from {current.value} to {requested.value}")
        self.current = current
        self.requested = requested


class SigningStateMachine:
    """
    State of one signing session.

    The state is only changed through the entry points below. Reaching
    SIGNED schedules an automatic close after ``close_delay_seconds``; the
    timer is cancelled by any later status change or new request.

    Closing is two-step: ``close()`` hides the panel and the view reports
    ``transition_ended(False)`` once its close transition is over. Only then
    is the state reset, so the view never loses data it is still showing.
    """

    def __init__(
        self,
        resolver: Optional[IntentResolver] = None,
        config: Optional[SignerConfig] = None,
    ):
        self.config = config or get_config()
        self.resolver = resolver or IntentResolver()

        self._state = PanelState()
        self._last_request: Optional[SubmissionRequest] = None
        self._close_timer: Optional[asyncio.TimerHandle] = None
        self._closing = False

        # Callbacks
        self._on_change: Optional[Callable[[PanelState], None]] = None
        self._on_close: Optional[Callable[[], None]] = None

    @property
    def state(self) -> PanelState:
        return self._state

    @property
    def status(self) -> SigningStatus:
        return self._state.status

    @property
    def close_scheduled(self) -> bool:
        """Check if an automatic close is pending."""
        return self._close_timer is not None

    def is_current(self, request: Optional[SubmissionRequest]) -> bool:
        """Check if a request is the one the state currently describes."""
        return request is not None and self._state.request is request

    def receive(self, request: SubmissionRequest) -> bool:
        """
        Take a new submission request.

        A request that is not the last one received replaces the whole
        state, whatever is in flight.

        Args:
            request: Incoming submission request

        Returns:
            True if the state was replaced, False for a repeated request

        Raises:
            ValueError: If the request path is empty
        """
        if request is self._last_request:
            return False

        path = list(request.path)
        intent = self.resolver.resolve(path, request.transaction)

        self._cancel_close_timer()
        self._closing = False
        self._last_request = request

        self._set_state(PanelState(
            opened=True,
            request=request,
            intent=intent,
            direct_path=self.resolver.is_direct_path(path),
            action_paths=[path],
            pretransaction=request.transaction.pretransaction,
            status=SigningStatus.CONFIRMING,
        ))

        logger.info(
            "signing_request_received",
            target_app=intent.name,
            target=intent.to,
            direct=self._state.direct_path,
            pretransaction=self._state.pretransaction is not None,
        )
        return True

    def mark_signing(self) -> None:
        """Mark the request as being signed."""
        self._transition(SigningStatus.SIGNING)

    def mark_signed(self) -> None:
        """Mark the request as signed and schedule closing."""
        self._transition(SigningStatus.SIGNED, sign_error=None)
        self._schedule_close()

    def mark_error(self, error: BaseException) -> None:
        """Mark the request as failed, keeping the error for display."""
        self._transition(SigningStatus.ERROR, sign_error=error)

    def close(self) -> bool:
        """
        Ask the panel to close.

        Returns:
            True if the panel started closing, False if already closed
        """
        self._cancel_close_timer()
        if not self._state.opened:
            return False

        self._closing = True
        self._set_state(self._state.evolve(opened=False))
        logger.debug("signing_panel_closing", status=self._state.status.value)

        if self._on_close:
            self._on_close()
        return True

    def transition_ended(self, opened: bool) -> bool:
        """
        Report that the panel finished an open or close transition.

        Returns:
            True if the state was reset
        """
        if opened or self._state.opened or not self._closing:
            return False

        self._closing = False
        self._cancel_close_timer()
        self._set_state(PanelState())
        logger.debug("signing_panel_reset")
        return True

    # Callback registration

    def on_change(self, callback: Callable[[PanelState], None]) -> None:
        """Register callback for state changes."""
        self._on_change = callback

    def on_close(self, callback: Callable[[], None]) -> None:
        """Register callback for close requests."""
        self._on_close = callback

    def _transition(self, status: SigningStatus, **changes) -> None:
        current = self._state.status
        if status not in _TRANSITIONS[current]:
            raise InvalidTransitionError(current, status)

        if status != SigningStatus.SIGNED:
            self._cancel_close_timer()

        self._set_state(self._state.evolve(status=status, **changes))
        logger.info("signing_status_changed", old_status=current.value, new_status=status.value)

    def _set_state(self, state: PanelState) -> None:
        self._state = state
        if self._on_change:
            self._on_change(state)

    def _schedule_close(self) -> None:
        self._cancel_close_timer()
        loop = asyncio.get_running_loop()
        self._close_timer = loop.call_later(self.config.close_delay_seconds, self._auto_close)

    def _auto_close(self) -> None:
        self._close_timer = None
        if self._state.status == SigningStatus.SIGNED:
            self.close()

    def _cancel_close_timer(self) -> None:
        if self._close_timer is not None:
            self._close_timer.cancel()
            self._close_timer = None
