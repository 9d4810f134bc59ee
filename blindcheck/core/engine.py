import logging
from typing import Optional

from ..config import EngineConfig
from ..errors import CallbackServerDisabled
from ..models import PayloadSpec
from .payloads import PayloadCompiler
from .poller import BackoffPolicy, ConfirmationPoller
from .registry import CallbackRegistry, HttpCallbackRegistry
from .session import PayloadSession
from .token import TokenSource

logger = logging.getLogger("blindcheck.engine")


class BlindConfirmationEngine:
    """
    Entry point for blind detectors. Every collaborator (registry client,
    random source, clock, compiler) is passed in or built from the config;
    nothing is global.
    """

    def __init__(self, config: EngineConfig, registry: Optional[CallbackRegistry] = None,
                 token_source: Optional[TokenSource] = None, compiler: Optional[PayloadCompiler] = None,
                 clock=None):
        self.config = config
        if registry is None and config.polling_uri:
            registry = HttpCallbackRegistry(config.polling_uri, verify_tls=config.verify_tls)
        self.registry = registry
        self.token_source = token_source or TokenSource()
        self.compiler = compiler or PayloadCompiler(config)
        self.poller = None
        if registry is not None:
            self.poller = ConfirmationPoller(
                registry,
                clock=clock,
                backoff=BackoffPolicy(
                    initial_interval=config.initial_interval,
                    max_interval=config.max_interval,
                    multiplier=config.backoff_multiplier,
                ),
                attempt_timeout=config.attempt_timeout,
            )

    @property
    def callback_enabled(self) -> bool:
        return self.poller is not None and bool(self.config.callback_address or self.config.callback_domain)

    def new_session(self, spec: PayloadSpec) -> PayloadSession:
        """Generates a token and compiles its payload. Never suspends."""
        if not self.callback_enabled:
            raise CallbackServerDisabled("Callback server is not configured")
        token = self.token_source.next()
        payload = self.compiler.compile(spec, token)
        logger.debug(f"New session cbid={token.cbid} template={payload.template_name}")
        return PayloadSession(token, payload, self.poller)
