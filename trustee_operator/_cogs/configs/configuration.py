"""
All configuration flags, options, settings to fine-tune the operator.

All settings are grouped semantically just for convenience
(instead of a flat mega-object with all the values in it).

This includes the fixed identities of the children objects, the mount paths,
the ports and the default images of the Trustee components: they are
process-wide values, but they are kept here rather than as free-standing
constants, so that the tests (and the curious users) can override them.

Some of the settings are flags, some are scalars, some are optional,
some are not (but all of them have reasonable defaults).
"""
import dataclasses
import os
from typing import Iterable, Mapping, Optional, Union


@dataclasses.dataclass
class NamingSettings:

    default_namespace: str = 'kbs-operator-system'
    """
    The operating namespace if neither the CLI nor the environment set one.
    """

    namespace_env: str = 'POD_NAMESPACE'
    """
    The environment variable with the operating namespace, usually injected
    into the operator's pod via the downward API.
    """

    deployment_name: str = 'trustee-deployment'
    """
    The name of the singleton ``Deployment`` in the operating namespace.
    """

    service_name: str = 'kbs-service'
    """
    The name of the singleton ``Service`` in the operating namespace.
    """

    service_port_name: str = 'kbs-port'

    finalizer: str = 'kbsconfig.confidentialcontainers.org/finalizer'
    """
    A string marker to be put on the ``KbsConfig`` records to block their
    deletion until the ``Deployment`` is torn down by this operator.
    """

    app_labels: Mapping[str, str] = dataclasses.field(default_factory=lambda: {'app': 'kbs'})
    """
    The labels of the pods and the selector of both the deployment and the service.
    """


@dataclasses.dataclass
class PathSettings:

    kbs_config_root: str = '/etc'
    """
    Where the KBS's own config, auth & HTTPS secrets are mounted, one dir per volume.
    """

    as_config_root: str = '/etc'
    rvps_config_root: str = '/etc'

    kbs_resources_root: str = '/opt/confidential-containers/kbs/repository/default'
    """
    Where the additional secret resources are mounted for the KBS to serve them.
    """

    rvps_reference_values_root: str = '/opt/confidential-containers/rvps'
    """
    Where the reference values are mounted: into the RVPS container with
    the microservices, or into the KBS container for the all-in-one topology.
    """

    scratch_root: str = '/opt'
    scratch_volume_name: str = 'confidential-containers'
    """
    An in-memory writable volume for the components' runtime files.
    """

    kbs_config_file: str = '/etc/kbs-config/kbs-config.json'
    as_config_file: str = '/etc/as-config/as-config.json'
    rvps_config_file: str = '/etc/rvps-config/rvps-config.json'


@dataclasses.dataclass
class PortSettings:
    kbs: int = 8080
    attestation: int = 50004
    reference_values: int = 50003


@dataclasses.dataclass
class ImageSettings:
    """
    The container images: an environment variable, if set, overrides the default.
    """

    kbs_env: str = 'KBS_IMAGE_NAME'
    kbs_default: str = 'ghcr.io/confidential-containers/staged-images/kbs:latest'

    as_env: str = 'AS_IMAGE_NAME'
    as_default: str = 'ghcr.io/confidential-containers/staged-images/coco-as-grpc:latest'

    rvps_env: str = 'RVPS_IMAGE_NAME'
    rvps_default: str = 'ghcr.io/confidential-containers/staged-images/rvps:latest'


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: Optional[float] = 5 * 60  # == aiohttp.client.DEFAULT_TIMEOUT
    """
    A timeout for each individual request to Kubernetes API, in seconds.
    """

    connect_timeout: Optional[float] = None
    """
    A timeout for the connection establishment, in seconds.
    """

    error_backoffs: Union[float, Iterable[float]] = (1, 2, 5)
    """
    How many times and how long to sleep between the retries of the requests
    on connection errors and HTTP 5xx errors, in seconds. The retries are done
    within a single API call, transparently to the reconciliation logic.
    Set to an empty collection to disable the retries.
    """


@dataclasses.dataclass
class WatchingSettings:

    server_timeout: Optional[float] = None
    """
    The maximum duration of one streaming request. Patched in some tests.
    If ``None``, then obeys the server-side timeouts (usually 5-10 minutes).
    """

    client_timeout: Optional[float] = None
    """
    An HTTP/HTTPS session timeout to use in watch requests.
    """

    connect_timeout: Optional[float] = None
    """
    An HTTP/HTTPS connection timeout to use in watch requests.
    """

    reconnect_backoff: float = 0.1
    """
    How long should a pause be between watch requests (to prevent API flooding).
    """


@dataclasses.dataclass
class QueueingSettings:

    worker_limit: int = 4
    """
    How many workers can be running simultaneously on the work queue.
    Every worker processes one key at a time; one key is never processed
    by two workers at the same time.
    """

    error_delays: Iterable[float] = (1, 1, 2, 3, 5, 8, 13, 21, 34, 55, 89, 144, 233, 377, 610)
    """
    Backoff intervals in case of failed reconciliations, per key, in seconds.
    The last value repeats for all the following failures. A successful
    reconciliation resets the backoff of that key to the beginning.
    """

    exit_timeout: float = 2.0
    """
    How long the workers can work on the operator's exit before being cancelled.
    """


@dataclasses.dataclass
class OperatorSettings:
    naming: NamingSettings = dataclasses.field(default_factory=NamingSettings)
    paths: PathSettings = dataclasses.field(default_factory=PathSettings)
    ports: PortSettings = dataclasses.field(default_factory=PortSettings)
    images: ImageSettings = dataclasses.field(default_factory=ImageSettings)
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    watching: WatchingSettings = dataclasses.field(default_factory=WatchingSettings)
    queueing: QueueingSettings = dataclasses.field(default_factory=QueueingSettings)

    def resolve_namespace(self, explicit: Optional[str] = None) -> str:
        """
        The operating namespace: explicitly set, or from the environment, or the default one.
        """
        return explicit or os.environ.get(self.naming.namespace_env) or self.naming.default_namespace
