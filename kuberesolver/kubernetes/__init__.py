from .incluster import ClusterConfigurationError, ClusterEnvironmentWatcher  # noqa: F401
from .model import EndpointSlice, EventKind, WatchEvent  # noqa: F401
from .transport import (  # noqa: F401
    AuthSource,
    FileAuthSource,
    InsecureTransport,
    SecureTransport,
    Transport
)
from .watcher import (  # noqa: F401
    CancelToken,
    EndpointSliceWatcher,
    StreamConnectionError,
    StreamDecodeError,
    Subscriber,
    TransportSetupError,
    UnexpectedStatusError,
    WatchCancelledError,
    WatchError
)
