import concurrent.futures
import logging
import typing as t
import urllib.parse

from .kubernetes import ClusterEnvironmentWatcher, EndpointSliceWatcher
from .resolver import KubernetesResolver
from .target import ResolverTarget


logger = logging.getLogger(__name__)


#: The default scheme for Kubernetes targets, e.g. kubernetes:///my-service
DEFAULT_SCHEME = "kubernetes"
#: The default priority of the provider, in the range 0-10
DEFAULT_PRIORITY = 5


class KubernetesResolverProvider:
    """
    Creates Kubernetes resolvers for target URIs that use the provider's scheme.
    """
    def __init__(
        self,
        scheme: str = DEFAULT_SCHEME,
        priority: int = DEFAULT_PRIORITY,
        *,
        accumulate_slices: bool = True,
        watcher_factory: t.Optional[t.Callable[[ResolverTarget], EndpointSliceWatcher]] = None
    ):
        if not 0 <= priority <= 10:
            raise ValueError(f"priority must be between 0 and 10, got {priority}")
        self.default_scheme = scheme
        self.priority = priority
        self.accumulate_slices = accumulate_slices
        self.watcher_factory = watcher_factory or (
            lambda target: ClusterEnvironmentWatcher(target.namespace)
        )

    def is_available(self) -> bool:
        return True

    def new_resolver(
        self,
        target_uri: str,
        executor: t.Optional[concurrent.futures.Executor] = None
    ) -> t.Optional[KubernetesResolver]:
        """
        Returns a resolver for the target URI, or None if the scheme does not match.

        Raises :py:class:`InvalidTargetError` if the URI does not name a service.
        """
        if urllib.parse.urlsplit(target_uri).scheme != self.default_scheme:
            return None
        target = ResolverTarget.from_uri(target_uri)
        logger.debug("Creating resolver for %s", target)
        return KubernetesResolver(
            target,
            self.watcher_factory(target),
            executor,
            accumulate_slices = self.accumulate_slices
        )

    @classmethod
    def from_config(cls, config_obj) -> "KubernetesResolverProvider":
        """
        Initialises an instance of the provider from a config object.
        """
        return cls(
            config_obj.scheme,
            config_obj.priority,
            accumulate_slices = config_obj.accumulate_slices,
            watcher_factory = lambda target: ClusterEnvironmentWatcher.from_config(
                config_obj,
                target.namespace
            )
        )


class ResolverRegistry:
    """
    Holds the resolver providers that have been registered, keyed by scheme.

    Providers are only ever added by explicit calls to :py:meth:`register`.
    """
    def __init__(self):
        self._providers: t.Dict[str, KubernetesResolverProvider] = {}

    def register(self, provider: KubernetesResolverProvider):
        """
        Registers the provider, unless a provider with a higher priority has the scheme.
        """
        if not provider.is_available():
            logger.debug("Provider for scheme %s is not available", provider.default_scheme)
            return
        existing = self._providers.get(provider.default_scheme)
        if existing is None or provider.priority >= existing.priority:
            self._providers[provider.default_scheme] = provider

    def deregister(self, provider: KubernetesResolverProvider):
        if self._providers.get(provider.default_scheme) is provider:
            del self._providers[provider.default_scheme]

    def provider_for(self, scheme: str) -> t.Optional[KubernetesResolverProvider]:
        return self._providers.get(scheme)

    def new_resolver(
        self,
        target_uri: str,
        executor: t.Optional[concurrent.futures.Executor] = None
    ) -> t.Optional[KubernetesResolver]:
        """
        Returns a resolver from the provider registered for the URI's scheme, if any.
        """
        provider = self.provider_for(urllib.parse.urlsplit(target_uri).scheme)
        return provider.new_resolver(target_uri, executor) if provider else None
