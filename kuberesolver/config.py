import typing as t

from pydantic import Field, StringConstraints

from configomatic import Configuration, Section, LoggingConfiguration

from .kubernetes import incluster


#: Type for a non-empty string
NonEmptyString = t.Annotated[str, StringConstraints(min_length = 1)]


class ClusterConfig(Section):
    """
    Model for the in-cluster configuration section.
    """
    #: The file containing the namespace of the pod
    namespace_path: NonEmptyString = str(incluster.SERVICE_ACCOUNT_NAMESPACE_PATH)
    #: The file containing the CA certificate for the API server
    ca_cert_path: NonEmptyString = str(incluster.SERVICE_ACCOUNT_CA_CERT_PATH)
    #: The file containing the service account token
    token_path: NonEmptyString = str(incluster.SERVICE_ACCOUNT_TOKEN_PATH)
    #: The namespace to use when the namespace file does not exist
    default_namespace: NonEmptyString = incluster.DEFAULT_NAMESPACE


class ResolverConfig(
    Configuration,
    default_path = "/etc/kuberesolver/config.yaml",
    path_env_var = "KUBERESOLVER_CONFIG",
    env_prefix = "KUBERESOLVER"
):
    """
    Configuration model for the kuberesolver package.
    """
    #: The logging configuration
    logging: LoggingConfiguration = Field(default_factory = LoggingConfiguration)

    #: The URI scheme that the resolver provider handles
    scheme: NonEmptyString = "kubernetes"
    #: The priority of the resolver provider
    priority: t.Annotated[int, Field(ge = 0, le = 10)] = 5
    #: Indicates whether addresses from all the EndpointSlices of a service are combined
    #: When false, each event replaces the addresses with those of a single slice
    accumulate_slices: bool = True

    #: The in-cluster configuration
    cluster: ClusterConfig = Field(default_factory = ClusterConfig)
