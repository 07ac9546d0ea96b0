import dataclasses
import typing as t
import urllib.parse


class InvalidTargetError(ValueError):
    """
    Raised when a service name cannot be extracted from a resolver target.
    """


def _urlsplit(value: str) -> urllib.parse.SplitResult:
    try:
        return urllib.parse.urlsplit(value)
    except ValueError as exc:
        raise InvalidTargetError(f"malformed target '{value}'") from exc


def _trim_leading_slash(value: str) -> str:
    return value[1:] if value.startswith("/") else value


@dataclasses.dataclass(frozen = True)
class ResolverTarget:
    """
    The Kubernetes service that a resolver is asked to resolve.
    """
    #: The namespace of the service, if given
    namespace: t.Optional[str]
    #: The name of the service
    service: str
    #: The port of the service, either a number or a port name
    port: t.Optional[str] = None

    @classmethod
    def _parse_segment(cls, segment: str) -> "ResolverTarget":
        """
        Parses a string of the form service[.namespace[.anything]][:port].
        """
        service, port = segment, None
        # Use the last colon so that the port never swallows part of the name
        head, sep, tail = segment.rpartition(":")
        if sep:
            service, port = head, tail
        namespace = None
        parts = service.split(".", 2)
        if len(parts) >= 2:
            service, namespace = parts[0], parts[1]
        return cls(namespace or None, service, port or None)

    @classmethod
    def _from_parts(cls, authority: str, path: str) -> "ResolverTarget":
        path = _trim_leading_slash(path)
        if not authority:
            # kubernetes:///service.namespace:port
            target = cls._parse_segment(path)
        elif path:
            # kubernetes://namespace/service:port
            target = dataclasses.replace(cls._parse_segment(path), namespace = authority)
        else:
            # kubernetes://service.namespace:port
            target = cls._parse_segment(authority)
        return target

    @classmethod
    def parse(cls, target: str) -> "ResolverTarget":
        """
        Parses a target string whose scheme has already been removed.

        Both the path form (``service.namespace:port``, ``/service``) and the
        authority form (``//namespace/service:port``) are accepted.
        """
        if target.startswith("//"):
            split = _urlsplit(target)
            parsed = cls._from_parts(split.netloc, split.path)
        else:
            parsed = cls._from_parts("", target)
        if not parsed.service:
            raise InvalidTargetError(f"cannot parse service name from target '{target}'")
        return parsed

    @classmethod
    def from_uri(cls, uri: str) -> "ResolverTarget":
        """
        Parses a full target URI, e.g. ``kubernetes:///service.namespace:8080``.
        """
        split = _urlsplit(uri)
        parsed = cls._from_parts(split.netloc, split.path)
        if not parsed.service:
            raise InvalidTargetError(f"cannot parse service name from URI '{uri}'")
        return parsed
