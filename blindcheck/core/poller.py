"""
Send-then-poll confirmation loop.

Queries a CallbackRegistry for one token until evidence arrives, the budget
runs out, or the caller cancels. Each query runs on a daemon thread and is
bounded through the injected clock, so a hung collector can never hold the
loop past its per-attempt bound or keep the process alive. Registries should
still honour the `timeout` they are given.
"""
import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Optional

from ..errors import CollectorUnreachable
from ..models import ConfirmationOutcome, CorrelationToken, Protocol
from .clock import SystemClock
from .registry import CallbackRegistry

logger = logging.getLogger("blindcheck.poller")

# A single attempt may use at most this share of the remaining budget.
ATTEMPT_BUDGET_FRACTION = 0.9


@dataclass(frozen=True)
class BackoffPolicy:
    initial_interval: float = 1.0
    max_interval: float = 5.0
    multiplier: float = 1.5

    def next_interval(self, current: float) -> float:
        return min(current * self.multiplier, self.max_interval)


class ConfirmationPoller:
    def __init__(self, registry: CallbackRegistry, clock=None,
                 backoff: Optional[BackoffPolicy] = None, attempt_timeout: float = 5.0):
        if attempt_timeout <= 0:
            raise ValueError("attempt_timeout must be positive")
        self.registry = registry
        self.clock = clock or SystemClock()
        self.backoff = backoff or BackoffPolicy()
        self.attempt_timeout = attempt_timeout

    def confirm(self, token: CorrelationToken, protocol: Protocol, deadline: float,
                cancel_event: Optional[threading.Event] = None) -> ConfirmationOutcome:
        """
        Polls for evidence of `token` within `deadline` seconds.

        Returns CONFIRMED on the first matching evidence, NOT_CONFIRMED when the
        budget elapses (or the caller cancels), and ERROR when every attempt
        failed to reach the collector.
        """
        if deadline is None or deadline <= 0:
            raise ValueError("deadline must be a positive number of seconds")
        cancel_event = cancel_event or threading.Event()

        deadline_at = self.clock.now() + deadline
        interval = self.backoff.initial_interval
        attempts = 0
        failures = 0

        while True:
            if cancel_event.is_set():
                logger.info(f"Polling for cbid {token.cbid} cancelled after {attempts} attempt(s)")
                return ConfirmationOutcome.NOT_CONFIRMED

            remaining = deadline_at - self.clock.now()
            if remaining <= 0:
                break

            attempts += 1
            attempt_timeout = min(self.attempt_timeout, remaining * ATTEMPT_BUDGET_FRACTION)
            future = self._submit(token, protocol, attempt_timeout)
            completed = self.clock.wait_for(future, attempt_timeout, cancel_event)

            if not completed and cancel_event.is_set():
                logger.info(f"Polling for cbid {token.cbid} cancelled during attempt {attempts}")
                return ConfirmationOutcome.NOT_CONFIRMED

            if not completed:
                failures += 1
                # The query thread is a daemon and is simply left behind.
                logger.warning(f"Collector query for cbid {token.cbid} exceeded {attempt_timeout:.2f}s, abandoned")
            else:
                try:
                    evidence = future.result()
                except CollectorUnreachable as e:
                    failures += 1
                    logger.debug(f"Attempt {attempts} for cbid {token.cbid} failed: {e}")
                else:
                    if evidence.has_interaction(protocol):
                        logger.info(f"Callback confirmed for cbid {token.cbid} ({protocol.value}) after {attempts} attempt(s)")
                        return ConfirmationOutcome.CONFIRMED

            remaining = deadline_at - self.clock.now()
            if remaining <= 0:
                break
            if self.clock.sleep(min(interval, remaining), cancel_event):
                logger.info(f"Polling for cbid {token.cbid} cancelled after {attempts} attempt(s)")
                return ConfirmationOutcome.NOT_CONFIRMED
            interval = self.backoff.next_interval(interval)

        if attempts and failures == attempts:
            logger.warning(f"Collector unreachable for all {attempts} attempt(s) on cbid {token.cbid}; result indeterminate")
            return ConfirmationOutcome.ERROR

        logger.info(f"No callback for cbid {token.cbid} within {deadline}s ({attempts} attempt(s))")
        return ConfirmationOutcome.NOT_CONFIRMED

    def _submit(self, token: CorrelationToken, protocol: Protocol, timeout: float) -> Future:
        """Runs one registry query on its own daemon thread."""
        future: Future = Future()

        def run():
            if not future.set_running_or_notify_cancel():
                return
            try:
                future.set_result(self.registry.query(token, protocol, timeout))
            except Exception as e:
                future.set_exception(e)

        threading.Thread(target=run, name=f"blindcheck-query-{token.cbid[:8]}", daemon=True).start()
        return future
