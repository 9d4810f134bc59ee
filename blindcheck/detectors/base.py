import logging
import threading
from abc import ABC, abstractmethod
from typing import Any, Optional

from ..core.engine import BlindConfirmationEngine
from ..errors import UnsupportedEnvironment
from ..models import (
    CompiledPayload, ConfirmationOutcome, DetectionReport, DetectionStatus,
    PayloadSpec, Protocol, Severity,
)

logger = logging.getLogger("blindcheck.detectors")

_STATUS_FOR_OUTCOME = {
    ConfirmationOutcome.CONFIRMED: DetectionStatus.VULNERABLE,
    ConfirmationOutcome.NOT_CONFIRMED: DetectionStatus.SECURE,
    # Indeterminate. Never reported as SECURE.
    ConfirmationOutcome.ERROR: DetectionStatus.ERROR,
}


class BlindDetector(ABC):
    """
    Base class for detectors confirmed through an out-of-band callback.
    Subclasses build the payload spec and deliver the payload; probe() drives
    the session and maps its outcome to a report.
    """

    # --- Detector Metadata (OVERRIDE THESE) ---
    ID: str = "generic_blind"
    NAME: str = "Generic Blind Detector"
    DESCRIPTION: str = "No description available."
    SEVERITY: Severity = Severity.CRITICAL
    PROTOCOL: Protocol = Protocol.ANY
    DEADLINE: float = 30.0

    def __init__(self, engine: BlindConfirmationEngine):
        self.engine = engine

    def probe(self, target: Any, cancel_event: Optional[threading.Event] = None) -> DetectionReport:
        """
        Template method. DO NOT OVERRIDE.
        """
        if not self.applies_to(target):
            return self._report(target, DetectionStatus.SKIPPED, details="Target does not match this detector.")

        if not self.engine.callback_enabled:
            logger.info(f"{self.ID}: callback server is not available, skipping {target}")
            return self._report(target, DetectionStatus.SKIPPED, details="Callback server is not available.")

        try:
            session = self.engine.new_session(self.payload_spec(target))
        except UnsupportedEnvironment as e:
            logger.info(f"{self.ID}: {e}; skipping {target}")
            return self._report(target, DetectionStatus.SKIPPED, details=str(e))

        try:
            self.deliver(target, session.payload)
        except Exception as e:
            # One broken delivery must not crash the scan.
            logger.warning(f"{self.ID}: delivery to {target} failed: {e}")
            return self._report(target, DetectionStatus.ERROR, details=f"Payload delivery failed: {e}",
                                payload=session.payload)
        session.mark_sent()

        outcome = session.confirm(self.DEADLINE, self.PROTOCOL, cancel_event)
        return self._report(
            target,
            _STATUS_FOR_OUTCOME[outcome],
            outcome=outcome,
            details={"cbid": session.payload.cbid, "template": session.payload.template_name},
            payload=session.payload,
        )

    def applies_to(self, target: Any) -> bool:
        """Override to skip targets this detector cannot affect."""
        return True

    @abstractmethod
    def payload_spec(self, target: Any) -> PayloadSpec:
        pass

    @abstractmethod
    def deliver(self, target: Any, payload: CompiledPayload):
        """Send the payload to the target by whatever protocol the detector speaks."""
        pass

    def _report(self, target: Any, status: DetectionStatus, details: Any = None,
                outcome: ConfirmationOutcome = ConfirmationOutcome.PENDING,
                payload: Optional[CompiledPayload] = None) -> DetectionReport:
        return DetectionReport(
            detector_id=self.ID,
            target=str(target),
            status=status,
            severity=self.SEVERITY if status == DetectionStatus.VULNERABLE else Severity.INFO,
            outcome=outcome,
            details={"message": str(details)} if not isinstance(details, dict) else details,
            payload=payload.payload if payload else None,
        )
