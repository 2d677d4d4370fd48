"""
All the structures coming from/to the Kubernetes API.

For strict type-checking, they are detailed to the per-field level
(e.g. `TypedDict` instead of just ``Mapping[Any, Any]``) -- as used
by the operator. The API objects can carry arbitrary fields at runtime,
which are not declared in the type definitions at type-checking time.

The Kubernetes-originated objects are plain dicts, as JSON-decoded
from the API responses. The operator never wraps them into classes.
"""
from typing import Any, List, Mapping, Optional, Union, cast

from typing_extensions import Literal, TypedDict

Labels = Mapping[str, str]
Annotations = Mapping[str, str]

# ``None`` is used for the listing, when the pseudo-watch-stream is simulated.
RawInputType = Literal[None, 'ADDED', 'MODIFIED', 'DELETED', 'ERROR']
RawEventType = Literal[None, 'ADDED', 'MODIFIED', 'DELETED']


class OwnerReference(TypedDict, total=False):
    controller: bool
    blockOwnerDeletion: bool
    apiVersion: str
    kind: str
    name: str
    uid: str


class RawMeta(TypedDict, total=False):
    uid: str
    name: str
    namespace: str
    labels: Labels
    annotations: Annotations
    finalizers: List[str]
    ownerReferences: List[OwnerReference]
    resourceVersion: str
    deletionTimestamp: str
    creationTimestamp: str


class RawBody(TypedDict, total=False):
    apiVersion: str
    kind: str
    metadata: RawMeta
    spec: Mapping[str, Any]
    status: Mapping[str, Any]


# A special payload for type==ERROR (this is not a connection or client error).
class RawError(TypedDict, total=False):
    apiVersion: str     # usually: Literal['v1']
    kind: str           # usually: Literal['Status']
    metadata: Mapping[Any, Any]
    code: int
    reason: str
    status: str
    message: str


# As received from the stream before processing the errors and special cases.
class RawInput(TypedDict, total=True):
    type: RawInputType
    object: Union[RawBody, RawError]


# As passed to the operator after processing the errors and special cases.
class RawEvent(TypedDict, total=True):
    type: RawEventType
    object: RawBody


class ObjectReference(TypedDict, total=False):
    apiVersion: str
    kind: str
    namespace: Optional[str]
    name: str
    uid: str


def get_name(body: Mapping[str, Any]) -> Optional[str]:
    return cast(Optional[str], body.get('metadata', {}).get('name'))


def get_namespace(body: Mapping[str, Any]) -> Optional[str]:
    return cast(Optional[str], body.get('metadata', {}).get('namespace'))


def get_resource_version(body: Mapping[str, Any]) -> Optional[str]:
    return cast(Optional[str], body.get('metadata', {}).get('resourceVersion'))


def build_object_reference(
        body: Mapping[str, Any],
) -> ObjectReference:
    """
    Construct an object reference for the logs.

    Keep in mind that some fields can be absent: e.g. ``namespace``
    for cluster resources, or e.g. ``apiVersion`` for ``kind: Node``, etc.
    """
    ref = dict(
        apiVersion=body.get('apiVersion'),
        kind=body.get('kind'),
        name=body.get('metadata', {}).get('name'),
        uid=body.get('metadata', {}).get('uid'),
        namespace=body.get('metadata', {}).get('namespace'),
    )
    return cast(ObjectReference, {key: val for key, val in ref.items() if val})


def build_owner_reference(
        body: Mapping[str, Any],
) -> OwnerReference:
    """
    Construct an owner reference object for the parent-children relationships.

    The structure needed to link the children objects to the current object as a parent.
    See https://kubernetes.io/docs/concepts/workloads/controllers/garbage-collection/
    """
    ref = dict(
        controller=True,
        blockOwnerDeletion=True,
        apiVersion=body.get('apiVersion'),
        kind=body.get('kind'),
        name=body.get('metadata', {}).get('name'),
        uid=body.get('metadata', {}).get('uid'),
    )
    return cast(OwnerReference, {key: val for key, val in ref.items() if val})


def append_owner_reference(
        child: RawBody,
        owner: Mapping[str, Any],
) -> None:
    """
    Add an owner reference to the child body, unless it is already there.

    The owner is identified by its uid; a re-adoption by the same owner
    does not duplicate the reference.
    """
    owner_ref = build_owner_reference(owner)
    refs = child.setdefault('metadata', {}).setdefault('ownerReferences', [])
    matching = [ref for ref in refs if ref.get('uid') == owner_ref.get('uid')]
    if not matching:
        refs.append(owner_ref)
