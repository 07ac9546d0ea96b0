import logging
import pathlib
import ssl
import typing as t

import httpx

from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding


logger = logging.getLogger(__name__)


#: Path template for watching EndpointSlices in a namespace
WATCH_PATH = "/apis/discovery.k8s.io/v1/watch/namespaces/{namespace}/endpointslices"
#: The label that Kubernetes puts on EndpointSlices to link them to their service
SERVICE_NAME_LABEL = "kubernetes.io/service-name"


class AuthSource(t.Protocol):
    """
    Supplies the credentials for talking to a secure Kubernetes API server.
    """
    def ca_cert(self) -> bytes:
        """
        Returns the PEM-encoded CA certificate for the API server.
        """

    def token(self) -> bytes:
        """
        Returns the bearer token to authenticate with.
        """


class FileAuthSource:
    """
    Auth source that reads the CA certificate and token from files.

    The files are read on every call, so rotated tokens are picked up.
    """
    def __init__(self, ca_cert_path: t.Union[str, pathlib.Path], token_path: t.Union[str, pathlib.Path]):
        self.ca_cert_path = pathlib.Path(ca_cert_path)
        self.token_path = pathlib.Path(token_path)

    def ca_cert(self) -> bytes:
        return self.ca_cert_path.read_bytes()

    def token(self) -> bytes:
        return self.token_path.read_bytes()


class Transport:
    """
    Base class for the ways of reaching the Kubernetes API server.

    A transport knows where the server is and how to build a client and a watch
    request for it. Any exception raised by these methods means the watch could
    not be set up.
    """
    def __init__(
        self,
        host: str,
        namespace: str,
        *,
        http_transport: t.Optional[httpx.BaseTransport] = None
    ):
        self.host = host.rstrip("/")
        self.namespace = namespace
        # Allows the network to be replaced, e.g. with httpx.MockTransport
        self._http_transport = http_transport

    def url(self) -> httpx.URL:
        """
        Returns the URL for watching EndpointSlices in the namespace.
        """
        try:
            url = httpx.URL(self.host + WATCH_PATH.format(namespace = self.namespace))
        except httpx.InvalidURL as exc:
            raise ValueError(f"'{self.host}' is not a valid http(s) URL") from exc
        if url.scheme not in {"http", "https"} or not url.host:
            raise ValueError(f"'{self.host}' is not a valid http(s) URL")
        return url

    def headers(self) -> t.Dict[str, str]:
        """
        Returns the headers for a watch request.
        """
        return { "Accept": "application/json" }

    def client_kwargs(self) -> t.Dict[str, t.Any]:
        """
        Returns the keyword arguments for the HTTPX client.
        """
        return {
            "http1": True,
            "http2": False,
            # The watch stays open until the server closes it, so there is no read timeout
            "timeout": httpx.Timeout(10.0, read = None),
            "transport": self._http_transport,
        }

    def build_client(self) -> httpx.Client:
        """
        Returns a new HTTPX client for talking to the API server.
        """
        return httpx.Client(**self.client_kwargs())

    def build_request(self, client: httpx.Client, service_name: str) -> httpx.Request:
        """
        Returns the watch request for EndpointSlices belonging to the given service.
        """
        return client.build_request(
            "GET",
            self.url(),
            params = { "labelSelector": f"{SERVICE_NAME_LABEL}={service_name}" },
            headers = self.headers()
        )


class InsecureTransport(Transport):
    """
    Transport that uses plain HTTP without authentication, e.g. for ``kubectl proxy``.
    """


class SecureTransport(Transport):
    """
    Transport that uses HTTPS, trusting a single CA, with bearer token authentication.
    """
    def __init__(
        self,
        host: str,
        namespace: str,
        auth: AuthSource,
        *,
        http_transport: t.Optional[httpx.BaseTransport] = None
    ):
        super().__init__(host, namespace, http_transport = http_transport)
        self.auth = auth

    def ssl_context(self) -> ssl.SSLContext:
        """
        Returns an SSL context that trusts only the CA certificate from the auth source.
        """
        # Only the first certificate in the data is used
        ca_cert = x509.load_pem_x509_certificate(self.auth.ca_cert())
        logger.debug("Trusting CA '%s' for %s", ca_cert.subject.rfc4514_string(), self.host)
        # The system trust store is not loaded, only the cluster CA is trusted
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        context.load_verify_locations(cadata = ca_cert.public_bytes(Encoding.PEM).decode())
        return context

    def client_kwargs(self):
        return { **super().client_kwargs(), "verify": self.ssl_context() }

    def headers(self):
        token = self.auth.token().decode().strip()
        return { **super().headers(), "Authorization": f"Bearer {token}" }
