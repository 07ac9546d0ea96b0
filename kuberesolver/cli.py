import click

from .config import ResolverConfig
from .main import build_watcher, parse_target, run, with_namespace
from .target import InvalidTargetError


@click.group()
def main():
    """
    Kubernetes EndpointSlice resolver.
    """


@main.command()
@click.argument("target")
@click.option(
    "--config",
    "config_path",
    type = click.Path(exists = True, file_okay = True, dir_okay = False),
    help = "Path to configuration file."
)
@click.option(
    "--host",
    help = "URL of an unauthenticated proxy to the API server, e.g. from kubectl proxy."
)
@click.option("--namespace", help = "Namespace of the service, overriding the target.")
@click.option(
    "--refresh-interval",
    type = click.FloatRange(min = 0, min_open = True),
    default = 5.0,
    show_default = True,
    help = "Seconds between attempts to restart a finished watch."
)
def watch(target, config_path, host, namespace, refresh_interval):
    """
    Print the addresses of the ready endpoints of TARGET as they change.

    TARGET is either a URI such as kubernetes:///my-service.my-namespace:grpc or
    the same without the scheme.
    """
    config = ResolverConfig(_path = config_path)
    config.logging.apply()
    try:
        resolver_target = with_namespace(parse_target(target), namespace)
    except InvalidTargetError as exc:
        raise click.BadParameter(str(exc), param_hint = "TARGET")
    run(
        config,
        resolver_target,
        build_watcher(config, resolver_target, host),
        refresh_interval
    )
