"""
Helper tools to test the reconciliation without a cluster.

This module is a part of the operator's public interface: it is used
in the operator's own tests, and can be used for dry-runs of the records.

:class:`MemoryObjectStore` mimics the relevant behaviour of the Kubernetes API:
the uids and the resource versions are assigned by the store; the outdated
resource versions are rejected with a conflict; the deletion of an object
with finalizers only marks it for deletion until the finalizers are removed.
The owner references are stored, but the garbage collection is not simulated.
"""
import copy
import dataclasses
import datetime
import itertools
import uuid
from typing import Any, Dict, List, Mapping, Optional, Tuple

from trustee_operator._cogs.clients import errors
from trustee_operator._cogs.structs import bodies, references

StoreKey = Tuple[references.Resource, str, str]


@dataclasses.dataclass(frozen=True)
class StoreCall:
    """ A record of a single operation on the store, for assertions in tests. """
    verb: str
    resource: references.Resource
    namespace: str
    name: str


def _status(code: int, reason: str, message: str) -> errors.RawStatus:
    return {'apiVersion': 'v1', 'kind': 'Status', 'code': code,  # type: ignore
            'status': 'Failure', 'reason': reason, 'message': message}


def merge_patch(target: Any, patch: Any) -> Any:
    """ Apply a JSON merge-patch (RFC 7386): ``None`` deletes, dicts merge, all else replaces. """
    if not isinstance(patch, Mapping):
        return copy.deepcopy(patch)
    result = dict(target) if isinstance(target, Mapping) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        else:
            result[key] = merge_patch(result.get(key), value)
    return result


class MemoryObjectStore:

    def __init__(self, objects: Optional[List[Tuple[references.Resource, bodies.RawBody]]] = None) -> None:
        super().__init__()
        self.objects: Dict[StoreKey, bodies.RawBody] = {}
        self.calls: List[StoreCall] = []
        self._versions = itertools.count(1)
        for resource, body in objects or []:
            self.put(resource, body)

    def put(self, resource: references.Resource, body: bodies.RawBody) -> bodies.RawBody:
        """ Add or overwrite an object directly, as if done by other parties (not recorded). """
        stored = copy.deepcopy(body)
        metadata = stored.setdefault('metadata', {})
        metadata.setdefault('uid', str(uuid.uuid4()))
        metadata['resourceVersion'] = str(next(self._versions))
        stored.setdefault('apiVersion', resource.api_version)
        stored.setdefault('kind', resource.kind or '')
        key = (resource, metadata.get('namespace', ''), metadata.get('name', ''))
        self.objects[key] = stored
        return copy.deepcopy(stored)

    def get(self, resource: references.Resource, namespace: str, name: str) -> Optional[bodies.RawBody]:
        """ Peek into the store without recording the call. """
        body = self.objects.get((resource, namespace, name))
        return copy.deepcopy(body) if body is not None else None

    def verbs(self, resource: Optional[references.Resource] = None) -> List[str]:
        return [call.verb for call in self.calls if resource is None or call.resource == resource]

    def _record(self, verb: str, resource: references.Resource, namespace: str, name: str) -> None:
        self.calls.append(StoreCall(verb=verb, resource=resource, namespace=namespace, name=name))

    def _existing(self, resource: references.Resource, namespace: str, name: str) -> bodies.RawBody:
        try:
            return self.objects[(resource, namespace, name)]
        except KeyError:
            raise errors.APINotFoundError(
                _status(404, 'NotFound', f'{resource.plural} "{name}" not found'), status=404)

    def _check_version(self, existing: Mapping[str, Any], new: Mapping[str, Any]) -> None:
        expected = bodies.get_resource_version(new)
        if expected is not None and expected != bodies.get_resource_version(existing):
            name = bodies.get_name(existing)
            raise errors.APIConflictError(
                _status(409, 'Conflict', f'the object "{name}" has been modified'), status=409)

    def _store(self, resource: references.Resource, body: bodies.RawBody) -> bodies.RawBody:
        metadata = body.setdefault('metadata', {})
        namespace, name = metadata.get('namespace', ''), metadata.get('name', '')
        if metadata.get('deletionTimestamp') and not metadata.get('finalizers'):
            self.objects.pop((resource, namespace, name), None)
            return copy.deepcopy(body)
        metadata['resourceVersion'] = str(next(self._versions))
        self.objects[(resource, namespace, name)] = body
        return copy.deepcopy(body)

    async def read(
            self,
            *,
            resource: references.Resource,
            namespace: references.NamespaceName,
            name: str,
    ) -> Optional[bodies.RawBody]:
        self._record('read', resource, namespace, name)
        return self.get(resource, namespace, name)

    async def create(
            self,
            *,
            resource: references.Resource,
            namespace: references.NamespaceName,
            body: bodies.RawBody,
    ) -> bodies.RawBody:
        name = bodies.get_name(body) or ''
        self._record('create', resource, namespace, name)
        if (resource, namespace, name) in self.objects:
            raise errors.APIConflictError(
                _status(409, 'AlreadyExists', f'{resource.plural} "{name}" already exists'), status=409)
        stored = copy.deepcopy(body)
        metadata = stored.setdefault('metadata', {})
        metadata['namespace'] = namespace
        metadata['uid'] = str(uuid.uuid4())
        metadata.pop('resourceVersion', None)
        return self._store(resource, stored)

    async def replace(
            self,
            *,
            resource: references.Resource,
            namespace: references.NamespaceName,
            name: str,
            body: bodies.RawBody,
    ) -> bodies.RawBody:
        self._record('replace', resource, namespace, name)
        existing = self._existing(resource, namespace, name)
        self._check_version(existing, body)
        stored = copy.deepcopy(body)
        metadata = stored.setdefault('metadata', {})
        metadata['uid'] = existing['metadata']['uid']
        for field in ['deletionTimestamp', 'finalizers']:
            if field in existing['metadata'] and field not in metadata:
                metadata[field] = copy.deepcopy(existing['metadata'][field])  # type: ignore
        return self._store(resource, stored)

    async def patch(
            self,
            *,
            resource: references.Resource,
            namespace: references.NamespaceName,
            name: str,
            patch: Mapping[str, Any],
    ) -> bodies.RawBody:
        self._record('patch', resource, namespace, name)
        existing = self._existing(resource, namespace, name)
        self._check_version(existing, patch)
        stored = merge_patch(existing, patch)
        return self._store(resource, stored)

    async def delete(
            self,
            *,
            resource: references.Resource,
            namespace: references.NamespaceName,
            name: str,
    ) -> None:
        self._record('delete', resource, namespace, name)
        existing = self._existing(resource, namespace, name)
        if existing['metadata'].get('finalizers'):
            if not existing['metadata'].get('deletionTimestamp'):
                now = datetime.datetime.now(datetime.timezone.utc)
                existing['metadata']['deletionTimestamp'] = now.strftime('%Y-%m-%dT%H:%M:%SZ')
                existing['metadata']['resourceVersion'] = str(next(self._versions))
        else:
            del self.objects[(resource, namespace, name)]
