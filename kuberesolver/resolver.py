import concurrent.futures
import dataclasses
import logging
import threading
import types
import typing as t

from .kubernetes import CancelToken, ClusterEnvironmentWatcher, EndpointSliceWatcher
from .kubernetes.model import EndpointPort, EndpointSlice, EventKind, WatchEvent
from .status import UNAVAILABLE, Status
from .target import ResolverTarget


logger = logging.getLogger(__name__)


#: The attributes that accompany every address update
EMPTY_ATTRIBUTES: t.Mapping[str, t.Any] = types.MappingProxyType({})

#: The event kinds that can change the addresses of a service
SUPPORTED_EVENTS = frozenset({EventKind.ADDED, EventKind.MODIFIED, EventKind.DELETED})


@dataclasses.dataclass(frozen = True)
class SocketAddress:
    """
    An IP address and port that a backend can be reached on.
    """
    host: str
    port: int

    def __str__(self):
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{host}:{self.port}"


@dataclasses.dataclass(frozen = True)
class AddressGroup:
    """
    The addresses of a single endpoint, all of which reach the same backend.
    """
    addresses: t.Tuple[SocketAddress, ...]

    def __iter__(self):
        return iter(self.addresses)

    def __len__(self):
        return len(self.addresses)

    def __str__(self):
        return "(" + ", ".join(str(address) for address in self.addresses) + ")"


class Listener(t.Protocol):
    """
    Receives the results of resolution.
    """
    def on_addresses(self, groups: t.List[AddressGroup], attributes: t.Mapping[str, t.Any]):
        """
        Called with the complete set of addresses whenever it changes.
        """

    def on_error(self, status: Status):
        """
        Called when resolution fails or the watch ends.
        """


def find_port(target_port: t.Optional[str], ports: t.Sequence[EndpointPort]) -> t.Optional[int]:
    """
    Returns the port number to use for the given target port, or None if there is none.

    With no target port, the first port of the slice is used. A numeric target port is
    used as-is, anything else is looked up by name.
    """
    if target_port is None:
        return next((port.number for port in ports), None)
    if target_port.isascii() and target_port.isdigit():
        return int(target_port)
    return next((port.number for port in ports if port.name == target_port), None)


def build_address_groups(endpoint_slice: EndpointSlice, port: int) -> t.List[AddressGroup]:
    """
    Returns an address group for each ready endpoint in the slice.
    """
    groups = []
    for endpoint in endpoint_slice.endpoints:
        if endpoint.ready is not True:
            continue
        addresses = tuple(
            dict.fromkeys(SocketAddress(address, port) for address in endpoint.addresses)
        )
        if addresses:
            groups.append(AddressGroup(addresses))
    return groups


def format_groups(groups: t.Iterable[AddressGroup]) -> str:
    return "[" + ", ".join(str(group) for group in groups) + "]"


class WatchCycle:
    """
    Subscriber that turns the events from a single watch into listener calls.
    """
    def __init__(self, resolver: "KubernetesResolver"):
        self.resolver = resolver
        # Address groups for each EndpointSlice seen during this watch
        self.slices: t.Dict[t.Optional[str], t.List[AddressGroup]] = {}

    def on_event(self, event: WatchEvent):
        service = self.resolver.target.service
        if event.type not in SUPPORTED_EVENTS:
            logger.debug("Ignoring %s event for service %s", event.type.value, service)
            return
        endpoint_slice = event.endpoint_slice
        if endpoint_slice is None:
            logger.debug("No EndpointSlice in %s event for service %s", event.type.value, service)
            return
        if event.type is EventKind.DELETED:
            logger.debug("EndpointSlice %s was deleted", endpoint_slice.name)
            self.slices.pop(endpoint_slice.name, None)
            return
        groups = self.resolver.resolve_addresses(endpoint_slice)
        if not groups:
            # Stale addresses from an earlier version of this slice must not be reported again
            self.slices.pop(endpoint_slice.name, None)
            return
        if self.resolver.accumulate_slices:
            self.slices[endpoint_slice.name] = groups
            groups = list(dict.fromkeys(g for slice_groups in self.slices.values() for g in slice_groups))
        logger.debug("All resolved addresses for service %s: %s", service, format_groups(groups))
        self.resolver.notify_addresses(groups)

    def on_error(self, exc: Exception):
        logger.warning(
            "Error watching EndpointSlices for service %s: %s",
            self.resolver.target.service,
            exc
        )
        try:
            self.resolver.notify_error(Status.from_exception(exc))
        finally:
            self.resolver.release()

    def on_completed(self):
        logger.info(
            "Watch for EndpointSlices of service %s was finished by the server",
            self.resolver.target.service
        )
        try:
            self.resolver.notify_error(UNAVAILABLE)
        finally:
            self.resolver.release()


class KubernetesResolver:
    """
    Resolves a Kubernetes service into the addresses of its ready endpoints.

    Resolution runs as a watch on the service's EndpointSlices, executed on a
    background executor. At most one watch runs at a time. When a watch ends, the
    listener receives an error and the resolver waits for ``refresh`` to be called
    before watching again.
    """
    def __init__(
        self,
        target: ResolverTarget,
        watcher: t.Optional[EndpointSliceWatcher] = None,
        executor: t.Optional[concurrent.futures.Executor] = None,
        *,
        accumulate_slices: bool = True
    ):
        self.target = target
        self.watcher = watcher or ClusterEnvironmentWatcher(target.namespace)
        self.accumulate_slices = accumulate_slices
        self._owns_executor = executor is None
        self._executor = executor or concurrent.futures.ThreadPoolExecutor(
            max_workers = 1,
            thread_name_prefix = "kuberesolver"
        )
        self._gate = threading.BoundedSemaphore(1)
        self._cancel = CancelToken()
        self._listener: t.Optional[Listener] = None
        self._shutdown = False

    def start(self, listener: Listener):
        """
        Starts resolution, reporting to the given listener.

        The first watch is started through the same single-flight gate as
        :py:meth:`refresh`. The gate is free until a watch starts, so the first call
        always starts a watch, but calling ``start`` again while a watch is running
        only replaces the listener.
        """
        self._listener = listener
        self.refresh()

    def refresh(self):
        """
        Starts a new watch unless one is already running.
        """
        if self._listener is None or self._shutdown:
            logger.debug("Ignoring refresh for service %s", self.target.service)
            return
        if self._gate.acquire(blocking = False):
            self._resolve()
        else:
            logger.debug("Watch already running for service %s", self.target.service)

    def shutdown(self):
        """
        Stops resolution, abandoning any running watch.
        """
        self._shutdown = True
        self._cancel.cancel()
        if self._owns_executor:
            self._executor.shutdown(wait = False, cancel_futures = True)

    def get_service_authority(self) -> str:
        return ""

    def _resolve(self):
        try:
            future = self._executor.submit(
                self.watcher.watch,
                self.target.service,
                WatchCycle(self),
                self._cancel
            )
        except RuntimeError as exc:
            # The executor has been shut down by its owner
            logger.warning("Unable to start watch for service %s: %s", self.target.service, exc)
            self.release()
            return
        future.add_done_callback(self._watch_done)

    def _watch_done(self, future: concurrent.futures.Future):
        if not future.cancelled() and future.exception() is not None:
            logger.error(
                "Watch for service %s raised an exception",
                self.target.service,
                exc_info = future.exception()
            )

    def resolve_addresses(self, endpoint_slice: EndpointSlice) -> t.List[AddressGroup]:
        """
        Returns the address groups for the ready endpoints in the slice.

        An empty list is returned if the slice has no usable addresses.
        """
        port = find_port(self.target.port, endpoint_slice.ports)
        if port is None:
            logger.debug(
                "No port matching %s in EndpointSlice %s",
                self.target.port,
                endpoint_slice.name
            )
            return []
        groups = build_address_groups(endpoint_slice, port)
        if not groups:
            logger.debug(
                "No usable addresses found for service %s in EndpointSlice %s",
                self.target.service,
                endpoint_slice.name
            )
        return groups

    def notify_addresses(self, groups: t.List[AddressGroup]):
        if not self._shutdown:
            self._listener.on_addresses(groups, EMPTY_ATTRIBUTES)

    def notify_error(self, status: Status):
        if not self._shutdown:
            self._listener.on_error(status)

    def release(self):
        """
        Releases the single-flight gate so that a refresh can start a new watch.
        """
        self._gate.release()
