import contextlib
import functools
import logging
import socket
import threading
import typing as t

import httpx
from pydantic import ValidationError

from .model import WatchEvent
from .transport import Transport


logger = logging.getLogger(__name__)


class WatchError(Exception):
    """
    Base class for errors that end a watch.
    """


class TransportSetupError(WatchError):
    """
    Raised when the client or request for a watch cannot be built.
    """


class UnexpectedStatusError(WatchError):
    """
    Raised when the API server responds to a watch with a status other than 200.
    """
    def __init__(self, status_code: int, reason: str = ""):
        self.status_code = status_code
        message = f"got HTTP {status_code} status code in response from kube-apiserver"
        super().__init__(f"{message} ({reason})" if reason else message)


class StreamDecodeError(WatchError):
    """
    Raised when a line on the watch stream is not a valid watch event.
    """


class StreamConnectionError(WatchError):
    """
    Raised when the connection to the API server fails or is lost.
    """


class WatchCancelledError(WatchError):
    """
    Raised when a watch is cancelled before the stream ends.
    """


class Subscriber(t.Protocol):
    """
    Receives the events from a single call to :py:meth:`EndpointSliceWatcher.watch`.

    ``on_event`` is called for each event in stream order, followed by exactly one
    call to either ``on_error`` or ``on_completed``.
    """
    def on_event(self, event: WatchEvent): ...

    def on_error(self, exc: Exception): ...

    def on_completed(self): ...


class CancelToken:
    """
    Allows a blocking watch to be cancelled from another thread.
    """
    def __init__(self):
        self._lock = threading.Lock()
        self._cancelled = False
        self._callbacks = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self):
        """
        Marks the token as cancelled and runs the registered callbacks.
        """
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            callbacks, self._callbacks = self._callbacks, []
        # Innermost first, so a live socket is shut down before its client is closed
        for callback in reversed(callbacks):
            try:
                callback()
            except Exception:
                logger.exception("Error running cancellation callback")

    @contextlib.contextmanager
    def on_cancel(self, callback: t.Callable[[], t.Any]):
        """
        Context manager that runs the callback if the token is cancelled inside the block.
        """
        with self._lock:
            cancelled = self._cancelled
            if not cancelled:
                self._callbacks.append(callback)
        if cancelled:
            callback()
        try:
            yield
        finally:
            with self._lock:
                if callback in self._callbacks:
                    self._callbacks.remove(callback)


def shutdown_socket(sock: t.Optional[socket.socket]):
    """
    Shuts down both directions of the socket, waking any thread that is blocked reading it.
    """
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError as exc:
        logger.debug("Socket was already closed: %s", exc)


class EndpointSliceWatcher:
    """
    Watches the EndpointSlices for a service using the Kubernetes watch API.
    """
    def __init__(self, transport: Transport):
        self.transport = transport

    @property
    def namespace(self) -> str:
        return self.transport.namespace

    @staticmethod
    def decode(line: str) -> WatchEvent:
        """
        Decodes a single line from the watch stream.
        """
        try:
            return WatchEvent.model_validate_json(line)
        except ValidationError as exc:
            raise StreamDecodeError(f"invalid watch event: {line!r}") from exc

    @staticmethod
    def _iter_lines(response: httpx.Response) -> t.Iterator[str]:
        try:
            yield from response.iter_lines()
        except httpx.TransportError as exc:
            raise StreamConnectionError(f"watch stream failed: {exc}") from exc

    def _stream(self, service_name: str, subscriber: Subscriber, cancel: CancelToken):
        try:
            client = self.transport.build_client()
        except Exception as exc:
            raise TransportSetupError(f"unable to build client: {exc}") from exc
        with client, cancel.on_cancel(client.close):
            try:
                request = self.transport.build_request(client, service_name)
            except Exception as exc:
                raise TransportSetupError(f"unable to build watch request: {exc}") from exc
            if cancel.cancelled:
                raise WatchCancelledError("watch cancelled before it started")
            logger.debug("Sending watch request to %s", request.url)
            try:
                response = client.send(request, stream = True)
            except httpx.TransportError as exc:
                raise StreamConnectionError(f"unable to reach kube-apiserver: {exc}") from exc
            # Only shutting down the socket wakes a read that is blocked on an idle connection
            network_stream = response.extensions.get("network_stream")
            sock = network_stream.get_extra_info("socket") if network_stream else None
            try:
                with cancel.on_cancel(functools.partial(shutdown_socket, sock)):
                    if response.status_code != httpx.codes.OK:
                        raise UnexpectedStatusError(response.status_code, response.reason_phrase)
                    for line in self._iter_lines(response):
                        if cancel.cancelled:
                            raise WatchCancelledError("watch cancelled")
                        if not line.strip():
                            continue
                        subscriber.on_event(self.decode(line))
                    # A shut down socket looks like the server ending the stream
                    if cancel.cancelled:
                        raise WatchCancelledError("watch cancelled")
            finally:
                response.close()

    def watch(
        self,
        service_name: str,
        subscriber: Subscriber,
        cancel: t.Optional[CancelToken] = None
    ):
        """
        Watches the EndpointSlices for the named service until the stream ends.

        This method blocks for the lifetime of the stream. Failures are never raised,
        they are reported to the subscriber instead.
        """
        cancel = cancel or CancelToken()
        logger.info(
            "Watching EndpointSlices for service %s in namespace %s",
            service_name,
            self.namespace
        )
        try:
            self._stream(service_name, subscriber, cancel)
        except Exception as exc:
            if cancel.cancelled and not isinstance(exc, WatchCancelledError):
                # Whatever the closed connection raised, the real reason is the cancellation
                cancelled = WatchCancelledError("watch cancelled")
                cancelled.__cause__ = exc
                exc = cancelled
            logger.info("Watch for service %s failed: %s", service_name, exc)
            subscriber.on_error(exc)
        else:
            logger.info("Watch for service %s was closed by the server", service_name)
            subscriber.on_completed()
