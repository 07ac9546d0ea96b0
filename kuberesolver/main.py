import dataclasses
import logging
import threading
import typing as t

import click

from . import config
from .kubernetes import ClusterEnvironmentWatcher, EndpointSliceWatcher, InsecureTransport
from .resolver import KubernetesResolver, format_groups
from .status import Status
from .target import ResolverTarget


logger = logging.getLogger(__name__)


class EchoListener:
    """
    Listener that prints address updates to stdout and errors to stderr.
    """
    def on_addresses(self, groups, attributes):
        click.echo(format_groups(groups))

    def on_error(self, status: Status):
        click.echo(f"{status.code.value}: {status.description}", err = True)


def parse_target(value: str) -> ResolverTarget:
    """
    Parses either a full target URI or a target with the scheme removed.
    """
    if "://" in value:
        return ResolverTarget.from_uri(value)
    else:
        return ResolverTarget.parse(value)


def build_watcher(
    config_obj: config.ResolverConfig,
    target: ResolverTarget,
    host: t.Optional[str] = None
) -> EndpointSliceWatcher:
    """
    Returns the watcher to use for the target.

    When a host is given, it is assumed to be an unauthenticated proxy to the API server.
    """
    if host:
        namespace = target.namespace or config_obj.cluster.default_namespace
        return EndpointSliceWatcher(InsecureTransport(host, namespace))
    else:
        return ClusterEnvironmentWatcher.from_config(config_obj, target.namespace)


def run(
    config_obj: config.ResolverConfig,
    target: ResolverTarget,
    watcher: EndpointSliceWatcher,
    refresh_interval: float = 5.0,
    stop: t.Optional[threading.Event] = None
):
    """
    Resolves the target, refreshing on the given interval, until stopped or interrupted.
    """
    resolver = KubernetesResolver(
        target,
        watcher,
        accumulate_slices = config_obj.accumulate_slices
    )
    stop = stop or threading.Event()
    logger.info("Resolving %s", target)
    resolver.start(EchoListener())
    try:
        # The resolver does not reconnect by itself, so we act as the RPC framework would
        while not stop.wait(refresh_interval):
            resolver.refresh()
    except KeyboardInterrupt:
        logger.info("Interrupted")
    finally:
        resolver.shutdown()


def with_namespace(target: ResolverTarget, namespace: t.Optional[str]) -> ResolverTarget:
    return dataclasses.replace(target, namespace = namespace) if namespace else target
