"""
blindcheck: out-of-band confirmation engine for blind vulnerability detectors.

    engine = BlindConfirmationEngine(load_config("blindcheck.yaml"))
    session = engine.new_session(PayloadSpec(ExecutionEnvironment.LINUX_SHELL))
    send_to_target(session.payload.payload)
    session.mark_sent()
    outcome = session.confirm(deadline=30, protocol=Protocol.HTTP)
"""
from .config import EngineConfig, load_config
from .core import (
    BackoffPolicy, BlindConfirmationEngine, CallbackRegistry, ConfirmationPoller,
    HttpCallbackRegistry, PayloadCompiler, PayloadSession, TokenSource,
)
from .errors import (
    BlindCheckError, CallbackServerDisabled, CollectorUnreachable, ConfigError,
    EntropyUnavailable, InvalidSessionState, UnsupportedEnvironment,
)
from .models import (
    CompiledPayload, ConfirmationOutcome, CorrelationToken, DeliveryMode,
    DetectionReport, DetectionStatus, ExecutionEnvironment, InteractionEvidence,
    PayloadSpec, Protocol, SessionState, Severity, VulnerabilityClass,
)

__version__ = "0.1.0"
