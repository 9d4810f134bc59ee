import hashlib
import http.server
import json
import logging
import re
import socketserver
import threading
import time
from typing import Dict, Optional
from urllib.parse import parse_qs, urlsplit

logger = logging.getLogger("blindcheck.collector")

CBID_PATTERN = re.compile(r"^[0-9a-f]{56}$")


class _ThreadingServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True


class CallbackServer:
    """
    Lab callback collector.

    - Records an HTTP interaction for any request to /<cbid>[/...] or with
      Host: <cbid>.<domain>.
    - Answers GET /?secret=<hex> with the polling JSON for sha3_224(secret),
      or 404 when nothing was recorded.

    Runs in a background thread. Interactions are stored in memory only.
    """

    def __init__(self, port: int = 8881, bind_address: str = "0.0.0.0"):
        self.bind_address = bind_address
        self._requested_port = port
        self.server: Optional[_ThreadingServer] = None
        self.server_thread: Optional[threading.Thread] = None
        self.running = False

        # {cbid: {"http": [...], "dns": [...]}}
        self.interactions: Dict[str, Dict[str, list]] = {}
        self.interaction_lock = threading.Lock()

    @property
    def port(self) -> int:
        if self.server:
            return self.server.server_address[1]
        return self._requested_port

    def start(self):
        """Starts the listener in a background thread."""
        if self.running:
            return
        self.server = _ThreadingServer((self.bind_address, self._requested_port), self._create_handler())
        self.running = True
        self.server_thread = threading.Thread(target=self.server.serve_forever, name="blindcheck-collector", daemon=True)
        self.server_thread.start()
        logger.info(f"Callback server started on {self.bind_address}:{self.port}")

    def stop(self):
        if self.running and self.server:
            self.running = False
            self.server.shutdown()
            self.server.server_close()
            if self.server_thread:
                self.server_thread.join()
            logger.info("Callback server stopped.")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc):
        self.stop()

    def record_http_interaction(self, cbid: str, data: Dict):
        self._record(cbid, "http", data)

    def record_dns_interaction(self, cbid: str, data: Optional[Dict] = None):
        """Hook for an external DNS listener."""
        self._record(cbid, "dns", data or {"timestamp": time.time()})

    def polling_result(self, secret_hex: str) -> Optional[Dict[str, bool]]:
        try:
            secret = bytes.fromhex(secret_hex)
        except ValueError:
            return None
        cbid = hashlib.sha3_224(secret).hexdigest()
        with self.interaction_lock:
            record = self.interactions.get(cbid)
            if record is None:
                return None
            return {
                "has_dns_interaction": bool(record["dns"]),
                "has_http_interaction": bool(record["http"]),
            }

    def get_interactions(self, cbid: str) -> Optional[Dict[str, list]]:
        with self.interaction_lock:
            record = self.interactions.get(cbid)
            if record is None:
                return None
            return {"http": list(record["http"]), "dns": list(record["dns"])}

    def _record(self, cbid: str, protocol: str, data: Dict):
        with self.interaction_lock:
            record = self.interactions.setdefault(cbid, {"http": [], "dns": []})
            first = not record[protocol]
            record[protocol].append(data)
        if first:
            logger.info(f"{protocol.upper()} interaction captured for cbid: {cbid}")

    def _create_handler(self):
        collector = self

        class CallbackRequestHandler(http.server.BaseHTTPRequestHandler):
            def log_message(self, format, *args):
                logger.debug("%s - %s", self.client_address[0], format % args)

            def do_GET(self):
                self._handle_request("GET")

            def do_POST(self):
                self._handle_request("POST")

            def do_PUT(self):
                self._handle_request("PUT")

            def do_HEAD(self):
                self._handle_request("HEAD")

            def _handle_request(self, method):
                parts = urlsplit(self.path)
                query = parse_qs(parts.query)
                if method == "GET" and parts.path in ("", "/") and "secret" in query:
                    self._answer_poll(query["secret"][0])
                    return

                cbid = self._extract_cbid(parts.path)
                if cbid:
                    collector.record_http_interaction(cbid, {
                        "timestamp": time.time(),
                        "remote_ip": self.client_address[0],
                        "method": method,
                        "path": self.path,
                        "user_agent": self.headers.get("User-Agent", "Unknown"),
                    })
                self._send(200, b"OK", "text/plain")

            def _extract_cbid(self, path: str) -> Optional[str]:
                segment = path.strip("/").split("/")[0].lower()
                if CBID_PATTERN.match(segment):
                    return segment
                host = (self.headers.get("Host") or "").split(":")[0].lower()
                label = host.split(".")[0]
                if CBID_PATTERN.match(label):
                    return label
                return None

            def _answer_poll(self, secret_hex: str):
                result = collector.polling_result(secret_hex)
                if result is None:
                    self._send(404, b"", "text/plain")
                    return
                self._send(200, json.dumps(result).encode(), "application/json")

            def _send(self, status: int, body: bytes, content_type: str):
                self.send_response(status)
                self.send_header("Content-type", content_type)
                self.send_header("Content-Length", str(len(body)))
                self.end_headers()
                if self.command != "HEAD":
                    self.wfile.write(body)

        return CallbackRequestHandler
