import unittest
import threading
import time
import sys
import os
from unittest.mock import MagicMock

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from fakes import FailingRegistry, FakeClock, FakeRegistry
from blindcheck.config import EngineConfig
from blindcheck.core.clock import SystemClock
from blindcheck.core.engine import BlindConfirmationEngine
from blindcheck.detectors import BlindDetector, BlindSsrf, HttpParameterTarget, ParameterCommandInjection
from blindcheck.models import (
    ConfirmationOutcome, DetectionStatus, ExecutionEnvironment, PayloadSpec, Severity,
)

CONFIG = EngineConfig(callback_address="203.0.113.7", callback_port=8881, polling_uri="http://203.0.113.7:8880")


class RecordingDetector(BlindDetector):
    """Delivers by handing the payload to a callable; tests decide what the target does."""
    ID = "recording"
    DEADLINE = 10

    def __init__(self, engine, on_deliver=None, environment=ExecutionEnvironment.LINUX_SHELL):
        super().__init__(engine)
        self.on_deliver = on_deliver or (lambda payload: None)
        self.environment = environment
        self.delivered = []

    def applies_to(self, target):
        return target != "skip-me"

    def payload_spec(self, target):
        return PayloadSpec(self.environment)

    def deliver(self, target, payload):
        self.delivered.append(payload)
        self.on_deliver(payload)


class TestBlindDetector(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.registry = FakeRegistry(self.clock)
        self.engine = BlindConfirmationEngine(CONFIG, registry=self.registry, clock=self.clock)

    def test_vulnerable_when_callback_observed(self):
        # The "target" executes the payload: the collector sees its cbid.
        detector = RecordingDetector(self.engine, on_deliver=lambda p: self.registry.record(p.cbid, at=1.5))
        report = detector.probe("http://victim.local")

        self.assertEqual(report.status, DetectionStatus.VULNERABLE)
        self.assertEqual(report.outcome, ConfirmationOutcome.CONFIRMED)
        self.assertEqual(report.severity, Severity.CRITICAL)
        self.assertEqual(report.detector_id, "recording")
        self.assertEqual(report.payload, detector.delivered[0].payload)
        self.assertEqual(report.details["cbid"], detector.delivered[0].cbid)

    def test_secure_when_no_callback(self):
        report = RecordingDetector(self.engine).probe("http://victim.local")
        self.assertEqual(report.status, DetectionStatus.SECURE)
        self.assertEqual(report.outcome, ConfirmationOutcome.NOT_CONFIRMED)
        self.assertEqual(report.severity, Severity.INFO)

    def test_collector_down_is_never_secure(self):
        engine = BlindConfirmationEngine(CONFIG, registry=FailingRegistry(), clock=self.clock)
        report = RecordingDetector(engine).probe("http://victim.local")
        self.assertEqual(report.status, DetectionStatus.ERROR)
        self.assertEqual(report.outcome, ConfirmationOutcome.ERROR)

    def test_delivery_failure_is_error(self):
        def boom(payload):
            raise ConnectionError("target reset connection")

        report = RecordingDetector(self.engine, on_deliver=boom).probe("http://victim.local")
        self.assertEqual(report.status, DetectionStatus.ERROR)
        self.assertIn("target reset connection", report.details["message"])
        self.assertEqual(self.registry.queries, [])

    def test_unsupported_environment_is_skipped(self):
        detector = RecordingDetector(self.engine, environment=ExecutionEnvironment.ANY)
        report = detector.probe("http://victim.local")
        self.assertEqual(report.status, DetectionStatus.SKIPPED)
        self.assertEqual(detector.delivered, [])

    def test_callback_server_disabled_is_skipped(self):
        engine = BlindConfirmationEngine(EngineConfig())
        detector = RecordingDetector(engine)
        report = detector.probe("http://victim.local")
        self.assertEqual(report.status, DetectionStatus.SKIPPED)
        self.assertIn("not available", report.details["message"])
        self.assertEqual(detector.delivered, [])

    def test_target_filter(self):
        detector = RecordingDetector(self.engine)
        self.assertEqual(detector.probe("skip-me").status, DetectionStatus.SKIPPED)
        self.assertEqual(detector.delivered, [])

    def test_probe_honours_cancel_event(self):
        engine = BlindConfirmationEngine(
            EngineConfig(callback_address="127.0.0.1", polling_uri="http://127.0.0.1:1",
                         initial_interval=5, max_interval=5),
            registry=FakeRegistry(), clock=SystemClock())
        detector = RecordingDetector(engine)
        abort = threading.Event()
        threading.Timer(0.2, abort.set).start()
        started = time.monotonic()
        report = detector.probe("http://victim.local", cancel_event=abort)
        self.assertEqual(report.status, DetectionStatus.SECURE)
        self.assertLess(time.monotonic() - started, 1.0)


class TestHttpParameterDetectors(unittest.TestCase):
    def setUp(self):
        self.clock = FakeClock()
        self.registry = FakeRegistry(self.clock)
        self.engine = BlindConfirmationEngine(CONFIG, registry=self.registry, clock=self.clock)
        self.http = MagicMock()

    def test_command_injection_get(self):
        target = HttpParameterTarget("http://victim.local/ping", "host")
        detector = ParameterCommandInjection(self.engine, http=self.http)
        report = detector.probe(target)

        self.assertEqual(report.status, DetectionStatus.SECURE)
        args, kwargs = self.http.get.call_args
        self.assertEqual(args[0], "http://victim.local/ping")
        value = kwargs["params"]["host"]
        self.assertTrue(value.startswith("127.0.0.1; curl "))
        self.assertIn(report.details["cbid"], value)

    def test_command_injection_post_confirmed(self):
        target = HttpParameterTarget("http://victim.local/ping", "host", method="POST")

        def executes(method, url, data, timeout):
            cbid = data["host"].rsplit("/", 1)[-1]
            self.registry.record(cbid)
            return MagicMock()

        self.http.request.side_effect = executes
        report = ParameterCommandInjection(self.engine, http=self.http).probe(target)
        self.assertEqual(report.status, DetectionStatus.VULNERABLE)
        self.assertEqual(self.http.request.call_args[0][0], "POST")

    def test_ssrf_sends_bare_callback_url(self):
        target = HttpParameterTarget("http://victim.local/fetch", "url")
        report = BlindSsrf(self.engine, http=self.http).probe(target)
        value = self.http.get.call_args[1]["params"]["url"]
        self.assertEqual(value, f"http://203.0.113.7:8881/{report.details['cbid']}")


if __name__ == '__main__':
    unittest.main()
