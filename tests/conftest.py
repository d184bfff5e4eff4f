import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import urlsplit

import pytest
import requests

from acquired_gateway.bootstrap import build_gateway
from acquired_gateway.config import Settings
from acquired_gateway.receiver.server import CallbackServer
from acquired_gateway.services.scheduler import ScheduleService
from acquired_gateway.services.store import InMemoryStore
from acquired_gateway.utils.factories import (
    CardFactory,
    CustomerFactory,
    OrderFactory,
    RedirectFactory,
    TransactionFactory,
    WebhookFactory,
)


APP_KEY = "test-app-key-for-hashes"
API_PREFIX = "/v1/"


class _ProcessorHandler(BaseHTTPRequestHandler):
    """Serves canned processor API responses and records every request."""

    def _handle(self):
        content_length = int(self.headers.get("Content-Length", 0))
        raw = self.rfile.read(content_length)
        try:
            body = json.loads(raw) if raw else None
        except ValueError:
            body = None

        api = self.server.api  # type: ignore[attr-defined]
        parts = urlsplit(self.path)
        headers = {name.lower(): value for name, value in self.headers.items()}
        api.record(self.command, parts.path, parts.query, headers, body)

        code, response = api.lookup(self.command, parts.path)
        self.send_response(code)
        self.send_header("Content-Type", "application/json")
        self.end_headers()
        if response is not None:
            self.wfile.write(json.dumps(response).encode())

    do_GET = _handle
    do_POST = _handle
    do_PUT = _handle

    def log_message(self, format, *args):
        """Suppress default request logging."""
        pass


class FakeProcessorApi:
    """Local stand-in for the processor REST API."""

    def __init__(self, host: str = "127.0.0.1"):
        self._host = host
        self._port = 0
        self._routes: dict[tuple[str, str], tuple[int, dict | None]] = {}
        self._requests: list[dict] = []
        self._lock = threading.Lock()
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None
        self.set_response("POST", "login", {"token_type": "Bearer", "access_token": "tok_123"})

    @staticmethod
    def _path(path: str) -> str:
        return API_PREFIX + path.strip("/") + "/"

    def set_response(self, method: str, path: str, body: dict | None, status: int = 200) -> None:
        with self._lock:
            self._routes[(method, self._path(path))] = (status, body)

    def lookup(self, method: str, path: str) -> tuple[int, dict | None]:
        with self._lock:
            return self._routes.get((method, path), (404, {"status": "error", "title": "Not found"}))

    def record(self, method: str, path: str, query: str, headers: dict, body) -> None:
        with self._lock:
            self._requests.append({
                "method": method, "path": path, "query": query, "headers": headers, "json": body,
            })

    def get_requests(self, method: str | None = None, path: str | None = None) -> list[dict]:
        with self._lock:
            return [
                r for r in self._requests
                if (method is None or r["method"] == method)
                and (path is None or r["path"] == self._path(path))
            ]

    def start(self) -> None:
        self._server = ThreadingHTTPServer((self._host, self._port), _ProcessorHandler)
        self._server.api = self  # type: ignore[attr-defined]
        self._port = self._server.server_address[1]
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None

    @property
    def url(self) -> str:
        return f"http://{self._host}:{self._port}{API_PREFIX}"


class ManualClock:
    """Clock the tests move forward by hand."""

    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def app_key():
    return APP_KEY


@pytest.fixture
def fake_api():
    api = FakeProcessorApi()
    api.start()
    yield api
    api.stop()


@pytest.fixture
def settings(fake_api):
    return Settings(
        _env_file=None,
        app_id_staging="app_test",
        app_key_staging=APP_KEY,
        api_url=fake_api.url,
        site_url="http://shop.test",
        tokenization=True,
        timeout_seconds=5,
    )


@pytest.fixture
def offline_settings():
    """Settings with credentials but no reachable API."""
    return Settings(
        _env_file=None,
        app_id_staging="app_test",
        app_key_staging=APP_KEY,
        site_url="http://shop.test",
        tokenization=True,
    )


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def schedule_service(settings, clock):
    return ScheduleService(group=settings.plugin_id, delay=settings.schedule_delay_seconds, clock=clock)


@pytest.fixture
def wallet_refunds():
    return []


@pytest.fixture
def gateway(settings, store, schedule_service, wallet_refunds):
    return build_gateway(
        settings,
        store=store,
        schedule_service=schedule_service,
        wallet_refund=wallet_refunds.append,
    )


@pytest.fixture
def api_client(gateway):
    return gateway.api_client


@pytest.fixture
def order_service(gateway):
    return gateway.order_service


@pytest.fixture
def payment_method_service(gateway):
    return gateway.payment_method_service


@pytest.fixture
def customer_service(gateway):
    return gateway.order_service.customer_service


@pytest.fixture
def callback_server(gateway, settings):
    server = CallbackServer(gateway, settings)
    server.start()
    yield server
    server.stop()


@pytest.fixture
def make_response():
    """Build a requests.Response without any network."""

    def _make(status_code: int = 200, body=None, reason: str = "OK", raw: bytes | None = None):
        resp = requests.Response()
        resp.status_code = status_code
        resp.reason = reason
        if raw is not None:
            resp._content = raw
        else:
            resp._content = json.dumps(body).encode() if body is not None else b""
        return resp

    return _make


@pytest.fixture
def order_factory():
    return OrderFactory


@pytest.fixture
def customer_factory():
    return CustomerFactory


@pytest.fixture
def webhook_factory():
    return WebhookFactory


@pytest.fixture
def redirect_factory():
    return RedirectFactory


@pytest.fixture
def card_factory():
    return CardFactory


@pytest.fixture
def transaction_factory():
    return TransactionFactory
