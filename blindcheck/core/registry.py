import logging
from abc import ABC, abstractmethod
from typing import Optional

import requests

from ..errors import CollectorUnreachable
from ..models import CorrelationToken, InteractionEvidence, Protocol

logger = logging.getLogger("blindcheck.registry")


class CallbackRegistry(ABC):
    """
    Read-only view of a callback collector.
    Implementations must be safe for concurrent queries, should return within
    the `timeout` they are given, and raise CollectorUnreachable on transport
    failures, never a negative result.
    """

    @abstractmethod
    def query(self, token: CorrelationToken, protocol: Protocol, timeout: float) -> InteractionEvidence:
        pass


class HttpCallbackRegistry(CallbackRegistry):
    """
    Polls a callback server over HTTP.

    GET <polling_uri>/?secret=<hex secret>
      200 -> {"has_dns_interaction": bool, "has_http_interaction": bool}
      404 -> nothing recorded for this secret yet
    """

    def __init__(self, polling_uri: str, verify_tls: bool = True, session: Optional[requests.Session] = None):
        self.polling_uri = polling_uri.rstrip("/") + "/"
        self.verify_tls = verify_tls
        self.session = session or requests.Session()

    def query(self, token: CorrelationToken, protocol: Protocol, timeout: float) -> InteractionEvidence:
        try:
            resp = self.session.get(
                self.polling_uri,
                params={"secret": token.secret_hex},
                timeout=timeout,
                verify=self.verify_tls,
            )
        except requests.RequestException as e:
            raise CollectorUnreachable(f"Polling request failed: {e}") from e

        if resp.status_code == 404:
            return InteractionEvidence()
        if resp.status_code != 200:
            raise CollectorUnreachable(f"Callback server answered HTTP {resp.status_code}")

        try:
            data = resp.json()
        except ValueError as e:
            raise CollectorUnreachable(f"Malformed polling response: {e}") from e
        if not isinstance(data, dict):
            raise CollectorUnreachable("Malformed polling response: expected a JSON object")

        evidence = InteractionEvidence(
            has_dns_interaction=bool(data.get("has_dns_interaction", False)),
            has_http_interaction=bool(data.get("has_http_interaction", False)),
            raw=data,
        )
        logger.debug(f"Polled cbid {token.cbid}: dns={evidence.has_dns_interaction} http={evidence.has_http_interaction}")
        return evidence

    def close(self):
        self.session.close()
