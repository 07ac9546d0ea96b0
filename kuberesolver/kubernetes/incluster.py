import logging
import os
import pathlib
import typing as t

from .transport import FileAuthSource, SecureTransport
from .watcher import EndpointSliceWatcher


logger = logging.getLogger(__name__)


KUBERNETES_SERVICE_HOST = "KUBERNETES_SERVICE_HOST"
KUBERNETES_SERVICE_PORT = "KUBERNETES_SERVICE_PORT"

#: The directory where Kubernetes mounts the service account credentials
SERVICE_ACCOUNT_DIR = pathlib.Path("/var/run/secrets/kubernetes.io/serviceaccount")
SERVICE_ACCOUNT_NAMESPACE_PATH = SERVICE_ACCOUNT_DIR / "namespace"
SERVICE_ACCOUNT_CA_CERT_PATH = SERVICE_ACCOUNT_DIR / "ca.crt"
SERVICE_ACCOUNT_TOKEN_PATH = SERVICE_ACCOUNT_DIR / "token"

DEFAULT_NAMESPACE = "default"


class ClusterConfigurationError(RuntimeError):
    """
    Raised when the environment does not look like the inside of a Kubernetes pod.
    """


def cluster_host(environ: t.Optional[t.Mapping[str, str]] = None) -> str:
    """
    Returns the URL of the API server from the service environment variables.
    """
    environ = os.environ if environ is None else environ
    try:
        host = environ[KUBERNETES_SERVICE_HOST]
        port = environ[KUBERNETES_SERVICE_PORT]
    except KeyError as exc:
        raise ClusterConfigurationError(f"{exc.args[0]} env variable not set") from exc
    if ":" in host:
        # IPv6 addresses must be bracketed in a URL
        host = f"[{host}]"
    return f"https://{host}:{port}"


def cluster_namespace(
    path: t.Union[str, pathlib.Path] = SERVICE_ACCOUNT_NAMESPACE_PATH,
    default: str = DEFAULT_NAMESPACE
) -> str:
    """
    Returns the namespace of the current pod, or the default if it cannot be found.
    """
    try:
        namespace = pathlib.Path(path).read_text().strip()
    except FileNotFoundError:
        logger.debug("No namespace file at %s, using namespace %s", path, default)
        return default
    return namespace or default


class ClusterEnvironmentWatcher(EndpointSliceWatcher):
    """
    EndpointSlice watcher that is configured from the environment of a Kubernetes pod.
    """
    def __init__(
        self,
        namespace: t.Optional[str] = None,
        *,
        environ: t.Optional[t.Mapping[str, str]] = None,
        namespace_path: t.Union[str, pathlib.Path] = SERVICE_ACCOUNT_NAMESPACE_PATH,
        ca_cert_path: t.Union[str, pathlib.Path] = SERVICE_ACCOUNT_CA_CERT_PATH,
        token_path: t.Union[str, pathlib.Path] = SERVICE_ACCOUNT_TOKEN_PATH,
        default_namespace: str = DEFAULT_NAMESPACE,
        **transport_kwargs
    ):
        host = cluster_host(environ)
        if not namespace:
            namespace = cluster_namespace(namespace_path, default_namespace)
        super().__init__(
            SecureTransport(
                host,
                namespace,
                FileAuthSource(ca_cert_path, token_path),
                **transport_kwargs
            )
        )

    @classmethod
    def from_config(cls, config_obj, namespace: t.Optional[str] = None) -> "ClusterEnvironmentWatcher":
        """
        Initialises an instance of the watcher from the cluster section of a config object.
        """
        cluster = config_obj.cluster
        return cls(
            namespace,
            namespace_path = cluster.namespace_path,
            ca_cert_path = cluster.ca_cert_path,
            token_path = cluster.token_path,
            default_namespace = cluster.default_namespace
        )
