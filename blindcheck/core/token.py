import os
import threading
from typing import Optional

from ..errors import EntropyUnavailable
from ..models import CorrelationToken

# 160 bits. Collisions stay negligible across any realistic scan run.
SECRET_LENGTH = 20


class SystemRandomSource:
    """Fills buffers from the operating system CSPRNG (os.urandom is thread-safe)."""
    thread_safe = True

    def fill(self, buffer: bytearray):
        buffer[:] = os.urandom(len(buffer))


class TokenSource:
    """
    Generates correlation tokens.
    Every call draws fresh entropy into a fresh buffer, so concurrent callers
    never share state. Sources that do not declare `thread_safe` are serialized.
    """

    def __init__(self, random_source=None, secret_length: int = SECRET_LENGTH):
        if secret_length < 16:
            raise ValueError("secret_length must provide at least 128 bits")
        self.random_source = random_source or SystemRandomSource()
        self.secret_length = secret_length
        self._lock: Optional[threading.Lock] = None
        if not getattr(self.random_source, "thread_safe", False):
            self._lock = threading.Lock()

    def next(self) -> CorrelationToken:
        buffer = bytearray(self.secret_length)
        try:
            if self._lock:
                with self._lock:
                    self.random_source.fill(buffer)
            else:
                self.random_source.fill(buffer)
        except (OSError, NotImplementedError) as e:
            raise EntropyUnavailable(f"Secure random source failed: {e}") from e

        if len(buffer) != self.secret_length:
            raise EntropyUnavailable(
                f"Secure random source returned {len(buffer)} bytes, expected {self.secret_length}"
            )
        return CorrelationToken(bytes(buffer))
