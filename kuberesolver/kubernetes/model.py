import enum
import typing as t

from pydantic import BaseModel, ConfigDict, Field, field_validator


def empty_if_null(v):
    """
    Treats an explicit JSON null as an empty list.
    """
    return [] if v is None else v


class Model(BaseModel):
    """
    Base class for the parts of the Kubernetes API that we consume.
    """
    model_config = ConfigDict(extra = "ignore", populate_by_name = True, frozen = True)


@enum.unique
class EventKind(enum.Enum):
    """
    The types of event that appear on a Kubernetes watch stream.
    """
    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"
    ERROR = "ERROR"
    BOOKMARK = "BOOKMARK"
    #: Any event type that we do not recognise
    UNKNOWN = "UNKNOWN"

    @classmethod
    def _missing_(cls, value):
        return cls.UNKNOWN


class Metadata(Model):
    """
    The object metadata that we care about.
    """
    name: t.Optional[str] = None


class Conditions(Model):
    """
    Conditions for an endpoint.
    """
    #: Indicates whether the endpoint is ready to receive traffic
    ready: t.Optional[bool] = None


class Endpoint(Model):
    """
    A single endpoint in an EndpointSlice.
    """
    #: The IP addresses of the endpoint
    addresses: t.List[str] = Field(default_factory = list)
    #: The conditions for the endpoint
    conditions: t.Optional[Conditions] = None

    @field_validator("addresses", mode = "before")
    @classmethod
    def validate_addresses(cls, v):
        return empty_if_null(v)

    @property
    def ready(self) -> t.Optional[bool]:
        return self.conditions.ready if self.conditions else None


class EndpointPort(Model):
    """
    A port that is exposed by the endpoints in an EndpointSlice.
    """
    #: The name of the port, if it has one
    name: t.Optional[str] = None
    #: The port number
    number: t.Optional[int] = Field(None, alias = "port")


class EndpointSlice(Model):
    """
    An EndpointSlice, as delivered on the watch stream.
    """
    metadata: t.Optional[Metadata] = None
    endpoints: t.List[Endpoint] = Field(default_factory = list)
    ports: t.List[EndpointPort] = Field(default_factory = list)

    @field_validator("endpoints", "ports", mode = "before")
    @classmethod
    def validate_lists(cls, v):
        return empty_if_null(v)

    @property
    def name(self) -> t.Optional[str]:
        return self.metadata.name if self.metadata else None


class WatchEvent(Model):
    """
    A single event on the watch stream for EndpointSlices.
    """
    #: The type of the event
    type: EventKind = EventKind.UNKNOWN
    #: The EndpointSlice that the event is for
    endpoint_slice: t.Optional[EndpointSlice] = Field(None, alias = "object")

    @field_validator("type", mode = "before")
    @classmethod
    def validate_type(cls, v):
        """
        Maps unrecognised or missing event types to UNKNOWN rather than failing.
        """
        if isinstance(v, EventKind):
            return v
        return EventKind(v) if isinstance(v, str) else EventKind.UNKNOWN
