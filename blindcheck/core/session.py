import logging
import threading
from typing import Optional

from ..errors import InvalidSessionState
from ..models import (
    CompiledPayload, ConfirmationOutcome, CorrelationToken, Protocol, SessionState,
)
from .clock import CancelScope
from .poller import ConfirmationPoller

logger = logging.getLogger("blindcheck.session")

_TERMINAL_STATES = {
    ConfirmationOutcome.CONFIRMED: SessionState.CONFIRMED,
    ConfirmationOutcome.NOT_CONFIRMED: SessionState.NOT_CONFIRMED,
    ConfirmationOutcome.ERROR: SessionState.ERROR,
}


class PayloadSession:
    """
    One probe: one token, one compiled payload, one outcome.

    CREATED -> SENT -> POLLING -> CONFIRMED | NOT_CONFIRMED | ERROR
    Terminal states are final. Sessions are never shared between probes.
    """

    def __init__(self, token: CorrelationToken, payload: CompiledPayload, poller: ConfirmationPoller):
        self._token = token
        self._payload = payload
        self._poller = poller
        self._state = SessionState.CREATED
        self._outcome = ConfirmationOutcome.PENDING
        self._lock = threading.Lock()
        self._cancel_event = threading.Event()

    @property
    def token(self) -> CorrelationToken:
        return self._token

    @property
    def payload(self) -> CompiledPayload:
        return self._payload

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def outcome(self) -> ConfirmationOutcome:
        return self._outcome

    def mark_sent(self):
        """The detector has transmitted the payload to the target."""
        with self._lock:
            if self._state != SessionState.CREATED:
                raise InvalidSessionState("mark_sent", self._state)
            self._state = SessionState.SENT
        logger.debug(f"Session {self._token.cbid} marked sent")

    def confirm(self, deadline: float, protocol: Protocol = Protocol.ANY,
                cancel_event: Optional[threading.Event] = None) -> ConfirmationOutcome:
        """
        Polls the collector until a terminal outcome. Blocks the caller.

        `deadline` is the polling budget in seconds and is mandatory.
        `cancel_event` lets a scan-wide abort cancel this session as well as
        cancel() does.
        """
        with self._lock:
            if self._state != SessionState.SENT:
                raise InvalidSessionState("confirm", self._state)
            if deadline is None or deadline <= 0:
                raise ValueError("deadline must be a positive number of seconds")
            self._state = SessionState.POLLING

        scope = CancelScope(self._cancel_event, cancel_event)
        try:
            outcome = self._poller.confirm(self._token, protocol, deadline, scope)
        except Exception:
            self._finish(ConfirmationOutcome.ERROR)
            logger.exception(f"Session {self._token.cbid} failed while polling")
            raise

        self._finish(outcome)
        return outcome

    def cancel(self):
        """Stops an active poll promptly. The session then ends NOT_CONFIRMED."""
        self._cancel_event.set()

    def _finish(self, outcome: ConfirmationOutcome):
        with self._lock:
            self._outcome = outcome
            self._state = _TERMINAL_STATES[outcome]

    def __repr__(self):
        return f"PayloadSession(cbid={self._token.cbid}, state={self._state.value})"
