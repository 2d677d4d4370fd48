from typing import Optional, cast

from trustee_operator._cogs.clients import api
from trustee_operator._cogs.configs import configuration
from trustee_operator._cogs.helpers import typedefs
from trustee_operator._cogs.structs import bodies, references


async def create_obj(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace = None,
        name: Optional[str] = None,
        body: Optional[bodies.RawBody] = None,
        logger: typedefs.Logger,
) -> bodies.RawBody:
    """
    Create a resource and return it as stored by the server.
    """
    body = body if body is not None else {}
    if namespace is not None:
        body.setdefault('metadata', {}).setdefault('namespace', namespace)
    if name is not None:
        body.setdefault('metadata', {}).setdefault('name', name)

    namespace = cast(references.Namespace, body.get('metadata', {}).get('namespace'))
    created_body: bodies.RawBody = await api.post(
        url=resource.get_url(namespace=namespace),
        payload=body,
        settings=settings,
        logger=logger,
    )
    return created_body
