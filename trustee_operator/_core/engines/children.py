"""
Application of the desired children objects to the cluster.

The children have fixed names, so there is at most one of each kind
per namespace. The application is "create or replace": if the child
does not exist, it is created and adopted by the record; if it exists,
the freshly built desired object replaces it as a whole, guarded by
the resource version of the existing object.

The existing object is never modified and resubmitted: its outdated spec
would silently win over the desired one. Only the fields that the API
allocates itself and refuses to clear are carried over from it.
"""
import copy
import enum
from typing import Any, Mapping

from trustee_operator._cogs.clients import stores
from trustee_operator._cogs.helpers import typedefs
from trustee_operator._cogs.structs import bodies, references

# The server-allocated fields that cannot be cleared on updates, per resource.
PRESERVED_SPEC_FIELDS: Mapping[references.Resource, tuple] = {
    references.SERVICES: ('clusterIP', 'clusterIPs'),
}


class ApplyOutcome(str, enum.Enum):
    CREATED = 'created'
    UPDATED = 'updated'


def merge_preserved_fields(
        *,
        resource: references.Resource,
        desired: bodies.RawBody,
        existing: Mapping[str, Any],
) -> bodies.RawBody:
    """
    Build the replacement body: the desired object with the existing object's identity.
    """
    result = copy.deepcopy(desired)
    metadata = result.setdefault('metadata', {})
    resource_version = bodies.get_resource_version(existing)
    if resource_version is not None:
        metadata['resourceVersion'] = resource_version

    existing_spec = existing.get('spec', {})
    preserved = {field: existing_spec[field]
                 for field in PRESERVED_SPEC_FIELDS.get(resource, ())
                 if existing_spec.get(field)}
    if preserved:
        result['spec'] = dict(result.get('spec', {}), **preserved)
    return result


async def apply_child(
        *,
        store: stores.ObjectStore,
        resource: references.Resource,
        owner: Mapping[str, Any],
        desired: bodies.RawBody,
        logger: typedefs.Logger,
) -> ApplyOutcome:
    """
    Bring one child object to its desired state: create it or replace it.

    The API errors are not handled here: a conflict means that the child
    has changed since it was read, and the whole reconciliation is retried.
    """
    namespace = references.NamespaceName(bodies.get_namespace(desired) or '')
    name = bodies.get_name(desired) or ''
    existing = await store.read(resource=resource, namespace=namespace, name=name)

    if existing is None:
        body = copy.deepcopy(desired)
        bodies.append_owner_reference(body, owner=owner)
        logger.info(f"Creating {resource.kind} {name!r}.")
        await store.create(resource=resource, namespace=namespace, body=body)
        return ApplyOutcome.CREATED
    else:
        body = merge_preserved_fields(resource=resource, desired=desired, existing=existing)
        bodies.append_owner_reference(body, owner=owner)
        logger.info(f"Updating {resource.kind} {name!r}.")
        await store.replace(resource=resource, namespace=namespace, name=name, body=body)
        return ApplyOutcome.UPDATED
