class BlindCheckError(Exception):
    """Base class for every error raised by blindcheck."""


class EntropyUnavailable(BlindCheckError):
    """The secure random source failed. No detection attempt may proceed."""


class UnsupportedEnvironment(BlindCheckError):
    """No payload template, or no delivery encoding, exists for the requested environment."""

    def __init__(self, vulnerability_class, environment, delivery=None):
        self.vulnerability_class = vulnerability_class
        self.environment = environment
        self.delivery = delivery
        if delivery is None:
            message = f"No payload template for {vulnerability_class.value} on {environment.value}"
        else:
            message = f"No {delivery.value} encoding for {environment.value} payloads"
        super().__init__(message)


class InvalidSessionState(BlindCheckError):
    """A session was reused or driven out of order."""

    def __init__(self, operation: str, state):
        self.operation = operation
        self.state = state
        super().__init__(f"Cannot {operation} a session in state {state.value}")


class CollectorUnreachable(BlindCheckError):
    """A collector query failed at the transport level."""


class CallbackServerDisabled(BlindCheckError):
    """No callback collector is configured."""


class ConfigError(BlindCheckError):
    """Malformed configuration or payload definitions."""
