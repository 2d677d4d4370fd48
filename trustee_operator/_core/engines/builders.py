"""
The desired state of the children objects: the deployment & the service.

These are pure functions: no API calls, no side effects beyond reading
the environment for the images. The same inputs produce the same bodies,
so the re-application of an unchanged record does not change the children.
"""
import os
from typing import Any, Dict, List, Mapping

from trustee_operator._cogs.configs import configuration
from trustee_operator._cogs.structs import bodies, kbsconfigs, references
from trustee_operator._core.engines import volumes

Container = Dict[str, Any]


def resolve_image(
        component: kbsconfigs.Component,
        *,
        settings: configuration.OperatorSettings,
        environ: Mapping[str, str] = os.environ,
) -> str:
    images = settings.images
    match component:
        case kbsconfigs.Component.KBS:
            env, default = images.kbs_env, images.kbs_default
        case kbsconfigs.Component.AS:
            env, default = images.as_env, images.as_default
        case kbsconfigs.Component.RVPS:
            env, default = images.rvps_env, images.rvps_default
        case _:
            raise ValueError(f"Unknown component: {component!r}")
    return environ.get(env) or default


def build_kbs_container(
        *,
        composed: volumes.ComposedVolumes,
        settings: configuration.OperatorSettings,
) -> Container:
    return {
        'name': kbsconfigs.Component.KBS.value,
        'image': resolve_image(kbsconfigs.Component.KBS, settings=settings),
        'command': ['/usr/local/bin/kbs', '--config-file', settings.paths.kbs_config_file],
        'ports': [{'containerPort': settings.ports.kbs, 'name': 'kbs'}],
        'volumeMounts': composed.mounts_of(kbsconfigs.Component.KBS),
    }


def build_as_container(
        *,
        composed: volumes.ComposedVolumes,
        settings: configuration.OperatorSettings,
) -> Container:
    port = settings.ports.attestation
    return {
        'name': kbsconfigs.Component.AS.value,
        'image': resolve_image(kbsconfigs.Component.AS, settings=settings),
        'command': ['/usr/local/bin/grpc-as',
                    '--socket', f'0.0.0.0:{port}',
                    '--config-file', settings.paths.as_config_file],
        'ports': [{'containerPort': port, 'name': 'as'}],
        'volumeMounts': composed.mounts_of(kbsconfigs.Component.AS),
    }


def build_rvps_container(
        *,
        composed: volumes.ComposedVolumes,
        settings: configuration.OperatorSettings,
) -> Container:
    return {
        'name': kbsconfigs.Component.RVPS.value,
        'image': resolve_image(kbsconfigs.Component.RVPS, settings=settings),
        'command': ['/usr/local/bin/rvps', '-c', settings.paths.rvps_config_file],
        'ports': [{'containerPort': settings.ports.reference_values, 'name': 'rvps'}],
        'volumeMounts': composed.mounts_of(kbsconfigs.Component.RVPS),
    }


def build_containers(
        *,
        body: Mapping[str, Any],
        composed: volumes.ComposedVolumes,
        settings: configuration.OperatorSettings,
) -> List[Container]:
    """
    One container for the all-in-one topology, three for the microservices.
    """
    containers = [build_kbs_container(composed=composed, settings=settings)]
    if kbsconfigs.get_deployment_type(body) == kbsconfigs.DeploymentType.MICROSERVICES:
        containers.append(build_as_container(composed=composed, settings=settings))
        containers.append(build_rvps_container(composed=composed, settings=settings))
    return containers


def build_deployment(
        *,
        body: Mapping[str, Any],
        composed: volumes.ComposedVolumes,
        settings: configuration.OperatorSettings,
) -> bodies.RawBody:
    """
    Build the deployment of the Trustee components for the record.

    The owner reference is not set here: it belongs to the application
    of the child, which decides whether the object is created or updated.
    """
    labels = dict(settings.naming.app_labels)
    return {
        'apiVersion': references.DEPLOYMENTS.api_version,
        'kind': 'Deployment',
        'metadata': {
            'name': settings.naming.deployment_name,
            'namespace': bodies.get_namespace(body) or '',
        },
        'spec': {
            'replicas': 1,
            'selector': {'matchLabels': labels},
            'strategy': {
                'type': 'RollingUpdate',
                'rollingUpdate': {'maxUnavailable': 1},
            },
            'template': {
                'metadata': {'labels': dict(labels)},
                'spec': {
                    'containers': build_containers(body=body, composed=composed, settings=settings),
                    'volumes': list(composed.volumes),
                },
            },
        },
    }


def build_service(
        *,
        body: Mapping[str, Any],
        settings: configuration.OperatorSettings,
) -> bodies.RawBody:
    port = settings.ports.kbs
    return {
        'apiVersion': references.SERVICES.api_version,
        'kind': 'Service',
        'metadata': {
            'name': settings.naming.service_name,
            'namespace': bodies.get_namespace(body) or '',
        },
        'spec': {
            'type': kbsconfigs.get_service_type(body),
            'selector': dict(settings.naming.app_labels),
            'ports': [{
                'name': settings.naming.service_port_name,
                'protocol': 'TCP',
                'port': port,
                'targetPort': port,
            }],
        },
    }
