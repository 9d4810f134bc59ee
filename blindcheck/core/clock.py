import threading
import time
from concurrent.futures import Future, wait
from typing import Optional


class SystemClock:
    """Monotonic time source. Sleeping and waiting wake early when the cancel event is set."""
    CANCEL_CHECK_INTERVAL = 0.05

    def now(self) -> float:
        return time.monotonic()

    def sleep(self, seconds: float, cancel_event: Optional[threading.Event] = None) -> bool:
        """Returns True if the sleep was interrupted by cancellation."""
        if seconds <= 0:
            return bool(cancel_event and cancel_event.is_set())
        if cancel_event is None:
            time.sleep(seconds)
            return False
        return cancel_event.wait(seconds)

    def wait_for(self, future: Future, timeout: float, cancel_event: Optional[threading.Event] = None) -> bool:
        """Waits up to `timeout` for `future`, in short slices. Returns True if it completed."""
        give_up_at = self.now() + timeout
        while True:
            left = give_up_at - self.now()
            if left <= 0 or (cancel_event is not None and cancel_event.is_set()):
                return future.done()
            done, _ = wait([future], timeout=min(self.CANCEL_CHECK_INTERVAL, left))
            if done:
                return True


class CancelScope:
    """
    Event-like view over several cancel events; set when any of them is.
    Lets a session honour its own cancel() and a scan-wide abort at once.
    """
    SLICE = 0.05

    def __init__(self, *events: Optional[threading.Event]):
        self._events = [e for e in events if e is not None]
        if not self._events:
            self._events = [threading.Event()]

    def is_set(self) -> bool:
        return any(e.is_set() for e in self._events)

    def wait(self, timeout: float) -> bool:
        if len(self._events) == 1:
            return self._events[0].wait(timeout)
        give_up_at = time.monotonic() + timeout
        while not self.is_set():
            left = give_up_at - time.monotonic()
            if left <= 0:
                return False
            self._events[0].wait(min(self.SLICE, left))
        return True
