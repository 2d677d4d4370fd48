"""
The object store: the minimal capability of the cluster that the reconciler needs.

The reconciliation logic never calls the API client functions directly.
Instead, it gets an object store, which reads, creates, replaces, patches
and deletes the objects. In production, this is :class:`APIObjectStore`
on top of the aiohttp-based API clients. In tests (and in dry-runs), it is
:class:`trustee_operator.testing.MemoryObjectStore`.

The stores follow the same conventions as the API: the reading returns
``None`` for the absent objects; all other operations raise
:class:`errors.APINotFoundError` for the absent objects,
and :class:`errors.APIConflictError` for the outdated resource versions.
"""
from typing import Any, Mapping, Optional, Protocol

from trustee_operator._cogs.clients import creating, deleting, fetching, patching
from trustee_operator._cogs.configs import configuration
from trustee_operator._cogs.helpers import typedefs
from trustee_operator._cogs.structs import bodies, references


class ObjectStore(Protocol):

    async def read(
            self,
            *,
            resource: references.Resource,
            namespace: references.NamespaceName,
            name: str,
    ) -> Optional[bodies.RawBody]:
        ...

    async def create(
            self,
            *,
            resource: references.Resource,
            namespace: references.NamespaceName,
            body: bodies.RawBody,
    ) -> bodies.RawBody:
        ...

    async def replace(
            self,
            *,
            resource: references.Resource,
            namespace: references.NamespaceName,
            name: str,
            body: bodies.RawBody,
    ) -> bodies.RawBody:
        ...

    async def patch(
            self,
            *,
            resource: references.Resource,
            namespace: references.NamespaceName,
            name: str,
            patch: Mapping[str, Any],
    ) -> bodies.RawBody:
        ...

    async def delete(
            self,
            *,
            resource: references.Resource,
            namespace: references.NamespaceName,
            name: str,
    ) -> None:
        ...


class APIObjectStore:
    """
    The object store backed by the real Kubernetes API.
    """

    def __init__(
            self,
            *,
            settings: configuration.OperatorSettings,
            logger: typedefs.Logger,
    ) -> None:
        super().__init__()
        self.settings = settings
        self.logger = logger

    async def read(
            self,
            *,
            resource: references.Resource,
            namespace: references.NamespaceName,
            name: str,
    ) -> Optional[bodies.RawBody]:
        return await fetching.read_obj(
            resource=resource, namespace=namespace, name=name,
            settings=self.settings, logger=self.logger,
        )

    async def create(
            self,
            *,
            resource: references.Resource,
            namespace: references.NamespaceName,
            body: bodies.RawBody,
    ) -> bodies.RawBody:
        return await creating.create_obj(
            resource=resource, namespace=namespace, body=body,
            settings=self.settings, logger=self.logger,
        )

    async def replace(
            self,
            *,
            resource: references.Resource,
            namespace: references.NamespaceName,
            name: str,
            body: bodies.RawBody,
    ) -> bodies.RawBody:
        return await patching.replace_obj(
            resource=resource, namespace=namespace, name=name, body=body,
            settings=self.settings, logger=self.logger,
        )

    async def patch(
            self,
            *,
            resource: references.Resource,
            namespace: references.NamespaceName,
            name: str,
            patch: Mapping[str, Any],
    ) -> bodies.RawBody:
        return await patching.patch_obj(
            resource=resource, namespace=namespace, name=name, patch=patch,
            settings=self.settings, logger=self.logger,
        )

    async def delete(
            self,
            *,
            resource: references.Resource,
            namespace: references.NamespaceName,
            name: str,
    ) -> None:
        await deleting.delete_obj(
            resource=resource, namespace=namespace, name=name,
            settings=self.settings, logger=self.logger,
        )
