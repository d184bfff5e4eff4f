import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qsl, urlsplit

import structlog

from acquired_gateway.config import Settings
from acquired_gateway.services.gateway import PaymentGateway

logger = structlog.get_logger(__name__)

CALLBACK_PREFIX = "/wc-api/"


class _CallbackHandler(BaseHTTPRequestHandler):
    """Routes processor callbacks to the gateway."""

    def _send_json(self, code: int, body: dict) -> None:
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.end_headers()
        self.wfile.write(json.dumps(body).encode())

    def _send_redirect(self, location: str) -> None:
        self.send_response(303)
        self.send_header("Location", location)
        self.send_header("Content-Length", "0")
        self.end_headers()

    def _read_body(self) -> bytes:
        content_length = int(self.headers.get("Content-Length", 0))
        return self.rfile.read(content_length)

    def do_POST(self):
        gateway: PaymentGateway = self.server.gateway  # type: ignore[attr-defined]
        routes: dict[str, str] = self.server.routes  # type: ignore[attr-defined]

        path = urlsplit(self.path).path
        route = routes.get(path)
        body = self._read_body()

        if route == "webhook":
            code, response = gateway.process_webhook(body.decode("utf-8", "replace"), self.headers.get("Hash", ""))
            logger.debug("webhook_handled", status_code=code)
            self._send_json(code, response)
            return

        if route in ("redirect-new-order", "redirect-new-payment-method"):
            form = dict(parse_qsl(body.decode("utf-8", "replace"), keep_blank_values=True))
            if route == "redirect-new-order":
                location = gateway.redirect_new_order(form)
            else:
                location = gateway.redirect_new_payment_method(form)
            self._send_redirect(location)
            return

        self._send_json(404, {"success": False, "message": "Not found."})

    def log_message(self, format, *args):
        """Suppress default request logging."""
        pass


class CallbackServer:
    """Threaded HTTP server exposing the webhook and redirect endpoints."""

    ENDPOINTS = ("webhook", "redirect-new-order", "redirect-new-payment-method")

    def __init__(self, gateway: PaymentGateway, settings: Settings, host: str = "127.0.0.1", port: int = 0):
        self.gateway = gateway
        self._host = host
        self._port = port
        self._routes = {
            f"{CALLBACK_PREFIX}{settings.get_callback_endpoint(name)}/": name for name in self.ENDPOINTS
        }
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._server = ThreadingHTTPServer((self._host, self._port), _CallbackHandler)
        self._server.gateway = self.gateway  # type: ignore[attr-defined]
        self._server.routes = self._routes  # type: ignore[attr-defined]
        # Actual port when bound to 0
        self._port = self._server.server_address[1]
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()
        logger.info("callback_server_started", host=self._host, port=self._port)

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    def serve_forever(self) -> None:
        self.start()
        try:
            self._thread.join()
        except KeyboardInterrupt:
            logger.info("callback_server_stopping")
        finally:
            self.stop()

    @property
    def base_url(self) -> str:
        return f"http://{self._host}:{self._port}"

    @property
    def port(self) -> int:
        return self._port

    def url_for(self, name: str) -> str:
        for path, route in self._routes.items():
            if route == name:
                return self.base_url + path
        raise KeyError(name)
