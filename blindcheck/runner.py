import logging
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, List, Sequence

from colorama import Fore, Style

from .detectors.base import BlindDetector
from .models import ConfirmationOutcome, DetectionReport, DetectionStatus, Severity

logger = logging.getLogger("blindcheck.runner")

_STATUS_COLORS = {
    DetectionStatus.VULNERABLE: Fore.RED,
    DetectionStatus.SECURE: Fore.GREEN,
    DetectionStatus.SKIPPED: Fore.CYAN,
    DetectionStatus.ERROR: Fore.YELLOW,
}


class ScanRunner:
    """
    Runs every (detector, target) probe concurrently.
    abort() cancels all active polls; their sessions end NOT_CONFIRMED.
    """

    def __init__(self, concurrency: int = 5, verbose: bool = False):
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self.concurrency = concurrency
        self.verbose = verbose
        self.abort_event = threading.Event()

    def abort(self):
        logger.info("Scan aborted; cancelling active sessions")
        self.abort_event.set()

    def run(self, detectors: Sequence[BlindDetector], targets: Sequence[Any]) -> List[DetectionReport]:
        jobs = [(d, t) for t in targets for d in detectors]
        results: List[DetectionReport] = []
        if not jobs:
            return results

        if self.verbose:
            print(f"[*] Running {len(jobs)} blind probe(s) with concurrency {self.concurrency}...")

        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="blindcheck-probe") as executor:
            future_to_job = {executor.submit(self._probe, d, t): (d, t) for d, t in jobs}
            for future in as_completed(future_to_job):
                detector, target = future_to_job[future]
                try:
                    report = future.result()
                except Exception as exc:
                    logger.error(f"{detector.ID} on {target} generated an exception: {exc}")
                    report = DetectionReport(
                        detector_id=detector.ID,
                        target=str(target),
                        status=DetectionStatus.ERROR,
                        severity=Severity.INFO,
                        outcome=ConfirmationOutcome.ERROR,
                        details={"message": f"Probe failed: {exc}"},
                    )
                results.append(report)
                if self.verbose:
                    color = _STATUS_COLORS.get(report.status, "")
                    print(f"    -> {color}[{report.status.value}] {report.detector_id} {report.target}{Style.RESET_ALL}")
        return results

    def _probe(self, detector: BlindDetector, target: Any) -> DetectionReport:
        if self.abort_event.is_set():
            return DetectionReport(
                detector_id=detector.ID,
                target=str(target),
                status=DetectionStatus.SKIPPED,
                severity=Severity.INFO,
                details={"message": "Scan aborted before probe started."},
            )
        return detector.probe(target, cancel_event=self.abort_event)
