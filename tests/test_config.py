import unittest
import tempfile
import shutil
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from blindcheck.config import EngineConfig, load_config
from blindcheck.errors import ConfigError


class TestConfig(unittest.TestCase):
    def setUp(self):
        self.tmp = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmp)

    def _write(self, text):
        path = os.path.join(self.tmp, "blindcheck.yaml")
        with open(path, "w", encoding="utf-8") as f:
            f.write(text)
        return path

    def test_loads_callback_server_section(self):
        path = self._write(
            "callback_server:\n"
            "  callback_address: 203.0.113.7\n"
            "  callback_port: '9000'\n"
            "  polling_uri: http://203.0.113.7:8880\n"
            "  initial_interval: 2\n"
            "  max_interval: 8\n"
            "  verify_tls: false\n"
        )
        config = load_config(path)
        self.assertEqual(config.callback_address, "203.0.113.7")
        self.assertEqual(config.callback_port, 9000)
        self.assertEqual(config.initial_interval, 2.0)
        self.assertEqual(config.max_interval, 8.0)
        self.assertFalse(config.verify_tls)
        self.assertTrue(config.callback_enabled)

    def test_missing_section_gives_disabled_defaults(self):
        config = load_config(self._write("other: 1\n"))
        self.assertEqual(config, EngineConfig())
        self.assertFalse(config.callback_enabled)

    def test_empty_file(self):
        self.assertEqual(load_config(self._write("")), EngineConfig())

    def test_callback_requires_polling_uri(self):
        self.assertFalse(EngineConfig(callback_address="203.0.113.7").callback_enabled)
        self.assertTrue(EngineConfig(callback_domain="oob.example.net", polling_uri="http://x").callback_enabled)

    def test_unknown_key_rejected(self):
        path = self._write("callback_server:\n  callback_adress: 1.2.3.4\n")
        with self.assertRaises(ConfigError) as ctx:
            load_config(path)
        self.assertIn("callback_adress", str(ctx.exception))

    def test_bad_values_rejected(self):
        for body in ("callback_port: 70000", "callback_port: abc", "attempt_timeout: 0",
                     "initial_interval: 5\n  max_interval: 1", "backoff_multiplier: 0.5",
                     "verify_tls: 'yes'"):
            with self.subTest(body=body):
                with self.assertRaises(ConfigError):
                    load_config(self._write("callback_server:\n  " + body + "\n"))

    def test_malformed_yaml(self):
        with self.assertRaises(ConfigError):
            load_config(self._write("callback_server: [unclosed\n"))

    def test_top_level_must_be_mapping(self):
        with self.assertRaises(ConfigError):
            load_config(self._write("- a\n- b\n"))
        with self.assertRaises(ConfigError):
            load_config(self._write("callback_server: 5\n"))

    def test_missing_file(self):
        with self.assertRaises(ConfigError):
            load_config(os.path.join(self.tmp, "nope.yaml"))


if __name__ == '__main__':
    unittest.main()
