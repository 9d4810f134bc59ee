import hashlib
from dataclasses import dataclass, field
from typing import Dict, Any, Optional
from enum import Enum

class Severity(str, Enum):
    CRITICAL = "CRITICAL"
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    INFO = "INFO"

class ExecutionEnvironment(str, Enum):
    LINUX_SHELL = "LINUX_SHELL"
    WINDOWS_SHELL = "WINDOWS_SHELL"
    JAVA = "JAVA"
    PYTHON = "PYTHON"
    ANY = "ANY" # Environment independent (e.g. bare callback URL)

class VulnerabilityClass(str, Enum):
    BLIND_RCE = "BLIND_RCE"
    SSRF = "SSRF"
    BLIND_INJECTION = "BLIND_INJECTION"

class DeliveryMode(str, Enum):
    DIRECT = "DIRECT"
    SHELL_QUOTED = "SHELL_QUOTED"
    SHELL_WRAPPED = "SHELL_WRAPPED" # sh -c '<payload>'
    URL_ENCODED = "URL_ENCODED"

class Protocol(str, Enum):
    HTTP = "HTTP"
    DNS = "DNS"
    ANY = "ANY"

class ConfirmationOutcome(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    NOT_CONFIRMED = "NOT_CONFIRMED"
    ERROR = "ERROR"

class SessionState(str, Enum):
    CREATED = "CREATED"
    SENT = "SENT"
    POLLING = "POLLING"
    CONFIRMED = "CONFIRMED"
    NOT_CONFIRMED = "NOT_CONFIRMED"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.CONFIRMED, SessionState.NOT_CONFIRMED, SessionState.ERROR)

class DetectionStatus(str, Enum):
    VULNERABLE = "VULNERABLE"
    SECURE = "SECURE"
    SKIPPED = "SKIPPED"
    ERROR = "ERROR"


@dataclass(frozen=True, repr=False)
class CorrelationToken:
    """
    Random secret bound to one probe.
    The public callback id (cbid) is derived from the secret, so the payload
    never carries the value needed to poll the collector.
    """
    secret: bytes

    @property
    def secret_hex(self) -> str:
        return self.secret.hex()

    @property
    def cbid(self) -> str:
        return hashlib.sha3_224(self.secret).hexdigest()

    @classmethod
    def from_secret_hex(cls, secret_hex: str) -> "CorrelationToken":
        return cls(bytes.fromhex(secret_hex))

    def __repr__(self):
        return f"CorrelationToken(cbid={self.cbid})"


@dataclass(frozen=True)
class PayloadSpec:
    environment: ExecutionEnvironment
    vulnerability_class: VulnerabilityClass = VulnerabilityClass.BLIND_RCE
    delivery: DeliveryMode = DeliveryMode.DIRECT


@dataclass(frozen=True)
class CompiledPayload:
    """The token-bound string a detector sends to the target."""
    payload: str
    spec: PayloadSpec
    template_name: str
    callback_url: str
    cbid: str

    def __str__(self):
        return self.payload


@dataclass(frozen=True)
class InteractionEvidence:
    """Snapshot of one collector answer."""
    has_dns_interaction: bool = False
    has_http_interaction: bool = False
    raw: Optional[Dict[str, Any]] = field(default=None, compare=False)

    def has_interaction(self, protocol: Protocol = Protocol.ANY) -> bool:
        if protocol == Protocol.HTTP:
            return self.has_http_interaction
        if protocol == Protocol.DNS:
            return self.has_dns_interaction
        return self.has_http_interaction or self.has_dns_interaction


@dataclass
class DetectionReport:
    """Standardized output for one detector probe."""
    detector_id: str
    target: str
    status: DetectionStatus
    severity: Severity
    outcome: ConfirmationOutcome = ConfirmationOutcome.PENDING
    details: Dict[str, Any] = field(default_factory=dict)
    payload: Optional[str] = None
