"""
Composition of the pod's volumes from the artifacts referenced by a record.

Every artifact field of a ``KbsConfig`` is optional: an empty or absent name
means that the feature is not requested. But once an artifact is named,
it must exist: a missing config map or secret fails the whole reconciliation
(and it is retried later, e.g. when the artifact is eventually created).

The artifacts are only read for their existence, never modified. The lookup
is injected, so the composition can be done against any object store.

Every volume is mounted into a directory named after the volume itself
within a root directory specific to the volume's category and component.
The volume names are fixed per field (e.g. ``kbs-config``), except for
the additional secret resources, which are named after the secrets.
"""
import dataclasses
import posixpath
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol

from typing_extensions import TypedDict

from trustee_operator._cogs.configs import configuration
from trustee_operator._cogs.helpers import typedefs
from trustee_operator._cogs.structs import bodies, kbsconfigs, references

Volume = Dict[str, Any]


class VolumeMount(TypedDict):
    name: str
    mountPath: str


class ReconciliationError(Exception):
    """ A reconciliation cannot proceed for the record as it is now. """


class InvalidConfigurationError(ReconciliationError):
    """ The record's spec is self-contradictory; no cluster reads are done. """


class MissingArtifactError(ReconciliationError):
    """ A named config map or secret does not exist. """

    def __init__(
            self,
            *,
            resource: references.Resource,
            namespace: str,
            name: str,
            field: str,
    ) -> None:
        super().__init__(f"{resource.kind} {namespace}/{name} does not exist (referenced in {field}).")
        self.resource = resource
        self.namespace = namespace
        self.name = name
        self.field = field


class ArtifactLookup(Protocol):
    async def __call__(
            self,
            *,
            resource: references.Resource,
            namespace: references.NamespaceName,
            name: str,
    ) -> Optional[bodies.RawBody]:
        ...


@dataclasses.dataclass(frozen=True)
class ArtifactField:
    field: str
    volume_name: str
    resource: references.Resource


KBS_CONFIG = ArtifactField('kbsConfigMapName', 'kbs-config', references.CONFIGMAPS)
KBS_AUTH = ArtifactField('kbsAuthSecretName', 'auth-secret', references.SECRETS)
HTTPS_KEY = ArtifactField('kbsHttpsKeySecretName', 'https-key', references.SECRETS)
HTTPS_CERT = ArtifactField('kbsHttpsCertSecretName', 'https-cert', references.SECRETS)
AS_CONFIG = ArtifactField('kbsAsConfigMapName', 'as-config', references.CONFIGMAPS)
RVPS_CONFIG = ArtifactField('kbsRvpsConfigMapName', 'rvps-config', references.CONFIGMAPS)
REFERENCE_VALUES = ArtifactField('kbsRvpsRefValuesConfigMapName', 'reference-values', references.CONFIGMAPS)
SECRET_RESOURCES_FIELD = 'kbsSecretResources'


@dataclasses.dataclass
class ComposedVolumes:
    """
    The pod's volumes and the per-container mounts of these volumes.

    It is only ever constructed in full: a failed composition raises
    instead of returning a partial result.
    """
    volumes: List[Volume] = dataclasses.field(default_factory=list)
    mounts: Dict[kbsconfigs.Component, List[VolumeMount]] = dataclasses.field(default_factory=dict)

    def add(
            self,
            component: kbsconfigs.Component,
            volumes: Iterable[Volume],
            *,
            root: str,
    ) -> None:
        for volume in volumes:
            self.volumes.append(volume)
            self.mounts.setdefault(component, []).append(make_mount(volume, root=root))

    def mounts_of(self, component: kbsconfigs.Component) -> List[VolumeMount]:
        return list(self.mounts.get(component, []))


def make_mount(volume: Mapping[str, Any], *, root: str) -> VolumeMount:
    return VolumeMount(name=volume['name'], mountPath=posixpath.join(root, volume['name']))


def make_volume(
        *,
        resource: references.Resource,
        volume_name: str,
        artifact_name: str,
) -> Volume:
    if resource == references.SECRETS:
        return {'name': volume_name, 'secret': {'secretName': artifact_name}}
    elif resource == references.CONFIGMAPS:
        return {'name': volume_name, 'configMap': {'name': artifact_name}}
    else:
        raise TypeError(f"Unsupported artifact resource: {resource!r}")


def make_scratch_volume(settings: configuration.OperatorSettings) -> Volume:
    return {'name': settings.paths.scratch_volume_name, 'emptyDir': {'medium': 'Memory'}}


def is_https_requested(body: Mapping[str, Any]) -> bool:
    """
    Check if both parts of HTTPS are configured, or none of them.

    A key without a certificate (or vice versa) is a misconfiguration:
    the KBS cannot serve HTTPS with a half of the pair, and serving HTTP
    instead would silently degrade the security of the deployment.
    """
    key_name = kbsconfigs.get_artifact_name(body, HTTPS_KEY.field)
    cert_name = kbsconfigs.get_artifact_name(body, HTTPS_CERT.field)
    if key_name is None and cert_name is None:
        return False
    elif key_name is not None and cert_name is not None:
        return True
    else:
        raise InvalidConfigurationError(
            f"Invalid HTTPS parameters: both {HTTPS_KEY.field} and {HTTPS_CERT.field} "
            f"must be set, or none of them.")


def get_deployment_type(body: Mapping[str, Any]) -> kbsconfigs.DeploymentType:
    try:
        return kbsconfigs.get_deployment_type(body)
    except ValueError as e:
        value = kbsconfigs.get_spec(body).get('kbsDeploymentType')
        raise InvalidConfigurationError(f"Unsupported kbsDeploymentType: {value!r}.") from e


async def compose_volumes(
        *,
        body: Mapping[str, Any],
        namespace: references.NamespaceName,
        lookup: ArtifactLookup,
        settings: configuration.OperatorSettings,
        logger: typedefs.Logger,
) -> ComposedVolumes:
    """
    Resolve the record's artifact references into the volumes & mounts.

    The validation goes first, so that an invalid record does not cause
    any API calls. The lookups go strictly one by one in a fixed order,
    and the first missing artifact aborts the composition.
    """
    deployment_type = get_deployment_type(body)
    https_requested = is_https_requested(body)
    paths = settings.paths
    composed = ComposedVolumes()

    async def resolve(fields: Iterable[ArtifactField]) -> List[Volume]:
        volumes: List[Volume] = []
        for artifact_field in fields:
            name = kbsconfigs.get_artifact_name(body, artifact_field.field)
            if name is not None:
                await ensure_artifact(resource=artifact_field.resource, name=name,
                                      field=artifact_field.field)
                volumes.append(make_volume(resource=artifact_field.resource,
                                           volume_name=artifact_field.volume_name,
                                           artifact_name=name))
        return volumes

    async def ensure_artifact(*, resource: references.Resource, name: str, field: str) -> None:
        artifact = await lookup(resource=resource, namespace=namespace, name=name)
        if artifact is None:
            raise MissingArtifactError(resource=resource, namespace=namespace, name=name, field=field)
        logger.debug(f"Found {resource.kind} {name!r} for {field}.")

    # The KBS's own configs & credentials, all in the same root.
    kbs_fields = [KBS_CONFIG, KBS_AUTH] + ([HTTPS_KEY, HTTPS_CERT] if https_requested else [])
    composed.add(kbsconfigs.Component.KBS, await resolve(kbs_fields), root=paths.kbs_config_root)

    # The additional secret resources: as many as listed, named after themselves.
    resource_volumes: List[Volume] = []
    for name in kbsconfigs.get_secret_resources(body):
        await ensure_artifact(resource=references.SECRETS, name=name, field=SECRET_RESOURCES_FIELD)
        resource_volumes.append(make_volume(resource=references.SECRETS,
                                            volume_name=name, artifact_name=name))
    composed.add(kbsconfigs.Component.KBS, resource_volumes, root=paths.kbs_resources_root)

    # The in-memory writable area: always present, nothing to look up.
    composed.add(kbsconfigs.Component.KBS, [make_scratch_volume(settings)], root=paths.scratch_root)

    # Without a standalone RVPS, the reference values go to the KBS container which embeds it.
    if deployment_type == kbsconfigs.DeploymentType.ALL_IN_ONE:
        composed.add(kbsconfigs.Component.KBS, await resolve([REFERENCE_VALUES]),
                     root=paths.rvps_reference_values_root)
    else:
        composed.add(kbsconfigs.Component.AS, await resolve([AS_CONFIG]),
                     root=paths.as_config_root)
        composed.add(kbsconfigs.Component.RVPS, await resolve([RVPS_CONFIG]),
                     root=paths.rvps_config_root)
        composed.add(kbsconfigs.Component.RVPS, await resolve([REFERENCE_VALUES]),
                     root=paths.rvps_reference_values_root)

    return composed
