"""
Filtering of the change events before they become the work items.

The secondary resources (config maps & secrets) are not owned by the records,
so there is no owner-based routing of their events. Without the filtering,
a cluster-wide watch would deliver the events of every namespace.
The filters are plain predicates over a kind-agnostic :class:`ChangeEvent`,
so they can be combined and tested without any specific resource kind.
"""
import dataclasses
from typing import Any, Callable, Mapping, Optional

from trustee_operator._cogs.structs import bodies


@dataclasses.dataclass(frozen=True)
class ChangeEvent:
    """ A change of any object of any kind, as seen by the watchers. """
    type: bodies.RawEventType
    object: Mapping[str, Any]

    @property
    def namespace(self) -> Optional[str]:
        return bodies.get_namespace(self.object)

    @property
    def name(self) -> Optional[str]:
        return bodies.get_name(self.object)

    @classmethod
    def from_raw_event(cls, raw_event: bodies.RawEvent) -> 'ChangeEvent':
        return cls(type=raw_event['type'], object=raw_event['object'])


EventPredicate = Callable[[ChangeEvent], bool]


def namespace_filter(namespace: str) -> EventPredicate:
    """
    Accept only the events of the objects in the specified namespace.

    All event types are treated the same: a creation, a modification,
    a deletion, or a listing pseudo-event -- only the namespace matters.
    """
    def predicate(event: ChangeEvent) -> bool:
        return event.namespace == namespace
    return predicate
