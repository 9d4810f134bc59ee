import unittest
import io
import sys
import os
from contextlib import redirect_stdout
from unittest.mock import patch

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from blindcheck.cli import main
from blindcheck.collector import CallbackServer
from blindcheck.core.token import TokenSource


@patch("blindcheck.cli.init")
class TestCli(unittest.TestCase):
    def run_cli(self, *argv):
        out = io.StringIO()
        with redirect_stdout(out), self.assertRaises(SystemExit) as ctx:
            main(list(argv))
        return ctx.exception.code, out.getvalue()

    def test_payload_prints_command_and_secret(self, _init):
        code, out = self.run_cli("payload", "--callback-address", "203.0.113.7", "--env", "LINUX_SHELL")
        self.assertEqual(code, 0)
        self.assertIn("curl -s -m 10 http://203.0.113.7:8881/", out)
        self.assertIn("secret: ", out)

    def test_payload_for_unsupported_environment(self, _init):
        code, out = self.run_cli("payload", "--callback-address", "203.0.113.7",
                                 "--env", "JAVA", "--vuln", "BLIND_INJECTION")
        self.assertEqual(code, 2)
        self.assertIn("JAVA", out)

    def test_payload_without_callback_address(self, _init):
        code, _ = self.run_cli("payload", "--env", "LINUX_SHELL")
        self.assertEqual(code, 2)

    def test_poll_rejects_non_positive_deadline(self, _init):
        code, _ = self.run_cli("poll", "--polling-uri", "http://127.0.0.1:1", "--secret", "ab", "--deadline", "0")
        self.assertEqual(code, 2)

    def test_poll_requires_polling_uri(self, _init):
        code, _ = self.run_cli("poll", "--secret", "ab", "--deadline", "1")
        self.assertEqual(code, 2)

    def test_poll_rejects_bad_secret(self, _init):
        code, _ = self.run_cli("poll", "--polling-uri", "http://127.0.0.1:1", "--secret", "zz", "--deadline", "1")
        self.assertEqual(code, 2)


@patch("blindcheck.cli.init")
class TestCliPollAgainstCollector(unittest.TestCase):
    def setUp(self):
        self.server = CallbackServer(port=0, bind_address="127.0.0.1")
        self.server.start()
        self.polling_uri = f"http://127.0.0.1:{self.server.port}"
        self.token = TokenSource().next()

    def tearDown(self):
        self.server.stop()

    def poll(self):
        out = io.StringIO()
        with redirect_stdout(out), self.assertRaises(SystemExit) as ctx:
            main(["poll", "--polling-uri", self.polling_uri, "--secret", self.token.secret_hex, "--deadline", "0.5"])
        return ctx.exception.code, out.getvalue()

    def test_not_confirmed_exit_code(self, _init):
        code, out = self.poll()
        self.assertEqual(code, 1)
        self.assertIn("NOT CONFIRMED", out)

    def test_confirmed_exit_code(self, _init):
        self.server.record_http_interaction(self.token.cbid, {"path": "/" + self.token.cbid})
        code, out = self.poll()
        self.assertEqual(code, 0)
        self.assertIn("CONFIRMED", out)


if __name__ == '__main__':
    unittest.main()
