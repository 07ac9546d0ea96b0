"""Shared fixtures and helpers for the kuberesolver tests.

Nothing here touches a real cluster: HTTP goes through httpx.MockTransport and
the in-cluster credentials are written to temporary files.
"""

import concurrent.futures
import datetime
import http.server
import json
import threading

import httpx
import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from kuberesolver.kubernetes.model import WatchEvent


def make_slice(name="my-service-abc12", endpoints=(), ports=({"port": 8080},)):
    """Build the JSON for an EndpointSlice.

    ``endpoints`` is a sequence of ``(addresses, ready)`` tuples.
    """
    return {
        "apiVersion": "discovery.k8s.io/v1",
        "kind": "EndpointSlice",
        "metadata": {"name": name, "namespace": "my-namespace"},
        "addressType": "IPv4",
        "endpoints": [
            {"addresses": list(addresses), "conditions": {"ready": ready}}
            for addresses, ready in endpoints
        ],
        "ports": [dict(port) for port in ports],
    }


def make_event(event_type, endpoint_slice):
    return WatchEvent.model_validate({"type": event_type, "object": endpoint_slice})


def event_line(event_type, endpoint_slice):
    return json.dumps({"type": event_type, "object": endpoint_slice})


def stream_transport(lines, status_code=200, requests=None):
    """Return a mock transport that answers every request with the given lines."""

    def handler(request):
        if requests is not None:
            requests.append(request)
        body = "\n".join(lines).encode()
        return httpx.Response(status_code, content=body)

    return httpx.MockTransport(handler)


class RecordingSubscriber:
    """Subscriber that records every callback in order."""

    def __init__(self):
        self.calls = []

    def on_event(self, event):
        self.calls.append(("event", event))

    def on_error(self, exc):
        self.calls.append(("error", exc))

    def on_completed(self):
        self.calls.append(("completed", None))

    @property
    def events(self):
        return [arg for name, arg in self.calls if name == "event"]

    @property
    def errors(self):
        return [arg for name, arg in self.calls if name == "error"]


class RecordingListener:
    """Listener that records address updates and errors."""

    def __init__(self):
        self.addresses = []
        self.statuses = []
        self.updated = threading.Event()

    def on_addresses(self, groups, attributes):
        self.addresses.append([[str(address) for address in group] for group in groups])
        self.updated.set()

    def on_error(self, status):
        self.statuses.append(status)
        self.updated.set()


class InlineExecutor(concurrent.futures.Executor):
    """Executor that runs each task in the calling thread."""

    def __init__(self):
        self.shutdown_called = False

    def submit(self, fn, /, *args, **kwargs):
        if self.shutdown_called:
            raise RuntimeError("cannot schedule new futures after shutdown")
        future = concurrent.futures.Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except BaseException as exc:
            future.set_exception(exc)
        return future

    def shutdown(self, wait=True, *, cancel_futures=False):
        self.shutdown_called = True


@pytest.fixture
def ca_pem():
    """A freshly generated self-signed CA certificate, PEM encoded."""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, "kubernetes")])
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(days=1))
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=True)
        .sign(key, hashes.SHA256())
    )
    return cert.public_bytes(serialization.Encoding.PEM)


@pytest.fixture
def service_account(tmp_path, ca_pem):
    """A service account directory like the one Kubernetes mounts into pods."""
    (tmp_path / "namespace").write_text("pod-namespace\n")
    (tmp_path / "ca.crt").write_bytes(ca_pem)
    (tmp_path / "token").write_text("sa-token\n")
    return tmp_path


@pytest.fixture
def cluster_env():
    return {"KUBERNETES_SERVICE_HOST": "10.96.0.1", "KUBERNETES_SERVICE_PORT": "443"}


class IdleStreamHandler(http.server.BaseHTTPRequestHandler):
    """Starts a chunked 200 response, then sends nothing until released."""

    protocol_version = "HTTP/1.1"

    def do_GET(self):
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Transfer-Encoding", "chunked")
        self.end_headers()
        self.wfile.flush()
        self.server.request_received.set()
        self.server.release.wait(30)
        self.close_connection = True

    def log_message(self, format, *args):
        pass


@pytest.fixture
def idle_server():
    """A real HTTP server whose watch responses stay open and idle."""
    server = http.server.ThreadingHTTPServer(("127.0.0.1", 0), IdleStreamHandler)
    server.daemon_threads = True
    server.request_received = threading.Event()
    server.release = threading.Event()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server
    finally:
        server.release.set()
        server.shutdown()
        server.server_close()
        thread.join(5)
