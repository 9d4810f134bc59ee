import os
import shlex
import logging
import subprocess
from dataclasses import dataclass
from string import Template
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import quote

import yaml

from ..config import EngineConfig
from ..errors import ConfigError, UnsupportedEnvironment
from ..models import (
    CompiledPayload, CorrelationToken, DeliveryMode, ExecutionEnvironment,
    PayloadSpec, VulnerabilityClass,
)

logger = logging.getLogger("blindcheck.payloads")

DEFAULT_DEFINITIONS_PATH = os.path.join(os.path.dirname(os.path.dirname(__file__)), "payload_definitions.yaml")

# cmd.exe metacharacters that need a ^ outside double quotes.
CMD_METACHARACTERS = frozenset("^&|<>()")


def _posix_wrap(payload: str) -> str:
    return f"sh -c {shlex.quote(payload)}"


def _windows_quote(payload: str) -> str:
    """One argument in Windows command-line quoting (backslash-escaped inner quotes)."""
    return subprocess.list2cmdline([payload])


def _cmd_wrap(payload: str) -> str:
    """
    `cmd /c <payload>` where the outer cmd.exe parse strips the carets and
    hands the inner cmd the payload unchanged. Quoted sections stay literal.
    """
    escaped = []
    quoted = False
    for ch in payload:
        if ch == '"':
            quoted = not quoted
        elif not quoted and ch in CMD_METACHARACTERS:
            escaped.append("^")
        escaped.append(ch)
    return "cmd /c " + "".join(escaped)


# Shell deliveries only exist for real shells. Everything else is unsupported.
SHELL_ENCODERS: Dict[Tuple[ExecutionEnvironment, DeliveryMode], Callable[[str], str]] = {
    (ExecutionEnvironment.LINUX_SHELL, DeliveryMode.SHELL_QUOTED): shlex.quote,
    (ExecutionEnvironment.LINUX_SHELL, DeliveryMode.SHELL_WRAPPED): _posix_wrap,
    (ExecutionEnvironment.WINDOWS_SHELL, DeliveryMode.SHELL_QUOTED): _windows_quote,
    (ExecutionEnvironment.WINDOWS_SHELL, DeliveryMode.SHELL_WRAPPED): _cmd_wrap,
}


@dataclass(frozen=True)
class PayloadDefinition:
    name: str
    vulnerability_class: VulnerabilityClass
    environment: ExecutionEnvironment
    template: str
    requires_domain: bool = False


def load_payload_definitions(path: str = DEFAULT_DEFINITIONS_PATH) -> List[PayloadDefinition]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"Error loading payload definitions {path}: {e}") from e

    definitions = []
    for idx, item in enumerate(data.get("payloads") or []):
        try:
            definitions.append(PayloadDefinition(
                name=str(item.get("name", f"payload_{idx}")),
                vulnerability_class=VulnerabilityClass(item["vulnerability_class"]),
                environment=ExecutionEnvironment(item["environment"]),
                template=str(item["template"]),
                requires_domain=bool(item.get("requires_domain", False)),
            ))
        except (KeyError, ValueError, AttributeError) as e:
            raise ConfigError(f"{path}: invalid payload definition #{idx}: {e}") from e
    return definitions


class PayloadCompiler:
    """
    Renders token-bound payloads from templates.
    compile() is a pure function of (spec, token) for a given compiler.
    """

    def __init__(self, config: EngineConfig, definitions: Optional[List[PayloadDefinition]] = None):
        self.config = config
        self._templates: Dict[Tuple[VulnerabilityClass, ExecutionEnvironment], PayloadDefinition] = {}
        for definition in definitions if definitions is not None else load_payload_definitions():
            key = (definition.vulnerability_class, definition.environment)
            if key in self._templates:
                raise ConfigError(f"Duplicate payload definition for {key[0].value}/{key[1].value}")
            self._templates[key] = definition

    def compile(self, spec: PayloadSpec, token: CorrelationToken) -> CompiledPayload:
        definition = self._select(spec)
        encode = self._encoder(spec)
        callback_url, callback_host = self.callback_address(token)

        rendered = Template(definition.template).safe_substitute(
            callback_url=callback_url,
            callback_host=callback_host,
            cbid=token.cbid,
        )
        return CompiledPayload(
            payload=encode(rendered),
            spec=spec,
            template_name=definition.name,
            callback_url=callback_url,
            cbid=token.cbid,
        )

    def callback_address(self, token: CorrelationToken) -> Tuple[str, str]:
        """Returns (callback_url, callback_host) for the token."""
        if self.config.callback_domain:
            host = f"{token.cbid}.{self.config.callback_domain}"
            netloc = host if self.config.callback_port == 80 else f"{host}:{self.config.callback_port}"
            return f"http://{netloc}/", host

        if not self.config.callback_address:
            raise ConfigError("Neither callback_address nor callback_domain is configured")
        address = self.config.callback_address
        return f"http://{address}:{self.config.callback_port}/{token.cbid}", address

    def supports(self, spec: PayloadSpec) -> bool:
        try:
            self._select(spec)
            self._encoder(spec)
        except UnsupportedEnvironment:
            return False
        return True

    def _select(self, spec: PayloadSpec) -> PayloadDefinition:
        # Exact environment first, then the environment-independent entry of
        # the same class. Never another concrete environment.
        for env in (spec.environment, ExecutionEnvironment.ANY):
            definition = self._templates.get((spec.vulnerability_class, env))
            if definition is None:
                continue
            if definition.requires_domain and not self.config.callback_domain:
                logger.debug(f"Template {definition.name} needs a callback domain, none configured")
                continue
            return definition
        raise UnsupportedEnvironment(spec.vulnerability_class, spec.environment)

    @staticmethod
    def _encoder(spec: PayloadSpec) -> Callable[[str], str]:
        # Keyed on the target environment, with no cross-shell fallback.
        if spec.delivery == DeliveryMode.DIRECT:
            return str
        if spec.delivery == DeliveryMode.URL_ENCODED:
            return lambda payload: quote(payload, safe="")
        encoder = SHELL_ENCODERS.get((spec.environment, spec.delivery))
        if encoder is None:
            raise UnsupportedEnvironment(spec.vulnerability_class, spec.environment, spec.delivery)
        return encoder
