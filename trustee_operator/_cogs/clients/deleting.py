from typing import Any, Mapping, Optional

from trustee_operator._cogs.clients import api
from trustee_operator._cogs.configs import configuration
from trustee_operator._cogs.helpers import typedefs
from trustee_operator._cogs.structs import references

# Same as `kubectl delete`: the children (e.g. replica sets & pods) are deleted in the background.
DEFAULT_PROPAGATION_POLICY = 'Background'


async def delete_obj(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        propagation_policy: Optional[str] = DEFAULT_PROPAGATION_POLICY,
        logger: typedefs.Logger,
) -> Mapping[str, Any]:
    """
    Delete a resource; ``APINotFoundError`` propagates if it is already absent.

    The result is either the deleted object (if its deletion is postponed
    by the finalizers) or a ``Status`` object (if deleted instantly).
    """
    options = {'propagationPolicy': propagation_policy} if propagation_policy else None
    result: Mapping[str, Any] = await api.delete(
        url=resource.get_url(namespace=namespace, name=name),
        payload=options,
        settings=settings,
        logger=logger,
    )
    return result
