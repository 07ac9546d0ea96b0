from .provider import KubernetesResolverProvider, ResolverRegistry  # noqa: F401
from .resolver import (  # noqa: F401
    EMPTY_ATTRIBUTES,
    AddressGroup,
    KubernetesResolver,
    Listener,
    SocketAddress
)
from .status import Status, StatusCode  # noqa: F401
from .target import InvalidTargetError, ResolverTarget  # noqa: F401
