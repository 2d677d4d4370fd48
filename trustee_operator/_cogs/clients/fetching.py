from typing import Collection, List, Optional, Tuple, TypeVar, Union

from trustee_operator._cogs.clients import api, errors
from trustee_operator._cogs.configs import configuration
from trustee_operator._cogs.helpers import typedefs
from trustee_operator._cogs.structs import bodies, references

_T = TypeVar('_T')


async def read_obj(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        name: str,
        default: Union[_T, None] = None,
        logger: typedefs.Logger,
) -> Union[bodies.RawBody, _T, None]:
    """
    Read a single object by its name, or return the default if it is absent.

    Only the absence (HTTP 404) is converted to the default. All other errors,
    including the forbidden access, are escalated to the caller as usual.
    """
    try:
        obj: bodies.RawBody = await api.get(
            url=resource.get_url(namespace=namespace, name=name),
            settings=settings,
            logger=logger,
        )
    except errors.APINotFoundError:
        return default
    obj.setdefault('kind', resource.kind or '')
    obj.setdefault('apiVersion', resource.api_version)
    return obj


async def list_objs(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        logger: typedefs.Logger,
) -> Tuple[Collection[bodies.RawBody], Optional[str]]:
    """
    List the objects of specific resource type.

    The resource version of the list is returned too, so that the watch-stream
    could continue right from where the listing has ended.
    """
    rsp = await api.get(
        url=resource.get_url(namespace=namespace),
        settings=settings,
        logger=logger,
    )

    items: List[bodies.RawBody] = []
    resource_version = rsp.get('metadata', {}).get('resourceVersion', None)
    for item in rsp.get('items', []):
        if 'kind' in rsp:
            item.setdefault('kind', rsp['kind'][:-4] if rsp['kind'][-4:] == 'List' else rsp['kind'])
        if 'apiVersion' in rsp:
            item.setdefault('apiVersion', rsp['apiVersion'])
        items.append(item)

    return items, resource_version
