from typing import Any, Mapping

from trustee_operator._cogs.clients import api
from trustee_operator._cogs.configs import configuration
from trustee_operator._cogs.helpers import typedefs
from trustee_operator._cogs.structs import bodies, references


async def patch_obj(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        patch: Mapping[str, Any],
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Patch a resource of specific kind with a JSON merge-patch (RFC 7386).

    Unlike in the frameworks, the absence of the object is not hidden here:
    ``APINotFoundError`` propagates, and so does ``APIConflictError``
    if the patch carries an outdated ``metadata.resourceVersion``.
    """
    patched_body: bodies.RawBody = await api.patch(
        url=resource.get_url(namespace=namespace, name=name),
        headers={'Content-Type': 'application/merge-patch+json'},
        payload=patch,
        settings=settings,
        logger=logger,
    )
    return patched_body


async def replace_obj(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        body: bodies.RawBody,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Replace a resource as a whole (HTTP PUT), as in ``kubectl replace``.

    The body must carry the ``metadata.resourceVersion`` of the object being
    replaced; the server rejects the stale versions with HTTP 409 Conflict.
    """
    replaced_body: bodies.RawBody = await api.put(
        url=resource.get_url(namespace=namespace, name=name),
        payload=body,
        settings=settings,
        logger=logger,
    )
    return replaced_body
