from .clock import CancelScope, SystemClock
from .engine import BlindConfirmationEngine
from .payloads import PayloadCompiler, PayloadDefinition, load_payload_definitions
from .poller import BackoffPolicy, ConfirmationPoller
from .registry import CallbackRegistry, HttpCallbackRegistry
from .session import PayloadSession
from .token import SystemRandomSource, TokenSource
