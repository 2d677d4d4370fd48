"""
Typed access to the fields of the ``KbsConfig`` custom resource.

The schema itself belongs to the CRD and is not defined here: this module
only knows the field names it reads, and how to interpret their absence.
An empty string is the same as an absent field, as it is in the CRD.
"""
import enum
from typing import Any, Collection, List, Mapping, Optional, Set, Tuple, cast

from typing_extensions import TypedDict

from trustee_operator._cogs.structs import references


class DeploymentType(str, enum.Enum):
    MICROSERVICES = 'Microservices'
    ALL_IN_ONE = 'AllInOne'


class Component(str, enum.Enum):
    """ The Trustee components, each running in its own container (if at all). """
    KBS = 'kbs'     # the key broker service, the core; always present.
    AS = 'as'       # the attestation service; only with the microservices.
    RVPS = 'rvps'   # the reference value provider service; only with the microservices.


DEFAULT_DEPLOYMENT_TYPE = DeploymentType.MICROSERVICES
DEFAULT_SERVICE_TYPE = 'ClusterIP'


class KbsConfigSpec(TypedDict, total=False):
    kbsServiceType: str
    kbsDeploymentType: str
    kbsConfigMapName: str
    kbsAsConfigMapName: str
    kbsRvpsConfigMapName: str
    kbsRvpsRefValuesConfigMapName: str
    kbsAuthSecretName: str
    kbsHttpsKeySecretName: str
    kbsHttpsCertSecretName: str
    kbsSecretResources: List[str]


def get_spec(body: Mapping[str, Any]) -> KbsConfigSpec:
    return cast(KbsConfigSpec, body.get('spec') or {})


def get_deployment_type(body: Mapping[str, Any]) -> DeploymentType:
    """
    Interpret the deployment topology, defaulting to the microservices.

    Unknown values are not guessed: they fail loudly with a ``ValueError``,
    which the CRD's enum validation should normally prevent anyway.
    """
    value = get_spec(body).get('kbsDeploymentType') or None
    return DeploymentType(value) if value is not None else DEFAULT_DEPLOYMENT_TYPE


def get_service_type(body: Mapping[str, Any]) -> str:
    return get_spec(body).get('kbsServiceType') or DEFAULT_SERVICE_TYPE


def get_artifact_name(body: Mapping[str, Any], field: str) -> Optional[str]:
    spec = cast(Mapping[str, Any], get_spec(body))
    return spec.get(field) or None


def get_secret_resources(body: Mapping[str, Any]) -> Collection[str]:
    return [name for name in get_spec(body).get('kbsSecretResources') or [] if name]


def get_referenced_artifacts(
        body: Mapping[str, Any],
) -> Set[Tuple[references.Resource, str]]:
    """
    All the artifacts referenced by the record, regardless of the topology.

    Used to map the events of the secondary resources to the records,
    so it is fine to over-match: a superfluous reconciliation is harmless.
    """
    configmap_fields = ['kbsConfigMapName', 'kbsAsConfigMapName',
                        'kbsRvpsConfigMapName', 'kbsRvpsRefValuesConfigMapName']
    secret_fields = ['kbsAuthSecretName', 'kbsHttpsKeySecretName', 'kbsHttpsCertSecretName']
    result: Set[Tuple[references.Resource, str]] = set()
    for field in configmap_fields:
        name = get_artifact_name(body, field)
        if name is not None:
            result.add((references.CONFIGMAPS, name))
    for field in secret_fields:
        name = get_artifact_name(body, field)
        if name is not None:
            result.add((references.SECRETS, name))
    for name in get_secret_resources(body):
        result.add((references.SECRETS, name))
    return result
