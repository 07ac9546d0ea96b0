import dataclasses
import enum
import typing as t

from .kubernetes.watcher import UnexpectedStatusError, WatchError


@enum.unique
class StatusCode(enum.Enum):
    """
    The subset of RPC status codes that a resolver reports.
    """
    OK = "OK"
    UNKNOWN = "UNKNOWN"
    UNAVAILABLE = "UNAVAILABLE"
    UNAUTHENTICATED = "UNAUTHENTICATED"
    PERMISSION_DENIED = "PERMISSION_DENIED"


@dataclasses.dataclass(frozen = True)
class Status:
    """
    An error code plus message, reported to a listener when resolution fails.
    """
    #: The status code
    code: StatusCode
    #: A human-readable description of the failure
    description: str = ""
    #: The exception that caused the failure, if any
    cause: t.Optional[BaseException] = dataclasses.field(default = None, compare = False)

    @property
    def ok(self) -> bool:
        return self.code is StatusCode.OK

    @classmethod
    def from_exception(cls, exc: BaseException) -> "Status":
        """
        Derives a status from the exception that ended a watch.
        """
        if isinstance(exc, UnexpectedStatusError) and exc.status_code == 401:
            code = StatusCode.UNAUTHENTICATED
        elif isinstance(exc, UnexpectedStatusError) and exc.status_code == 403:
            code = StatusCode.PERMISSION_DENIED
        elif isinstance(exc, WatchError):
            code = StatusCode.UNAVAILABLE
        else:
            code = StatusCode.UNKNOWN
        return cls(code, str(exc) or type(exc).__name__, exc)


#: Reported when the API server ends a watch stream cleanly
UNAVAILABLE = Status(StatusCode.UNAVAILABLE, "watch stream was closed by the server")
