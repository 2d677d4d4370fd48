"""
All the functions to manipulate the object finalization and deletion.

Finalizers are used to block the actual deletion until the finalizers
are removed, meaning that the operator has done all its duties
to "release" the object (e.g. the teardown of the children in our case).

The finalizers are never modified in the body itself. Instead, a merge-patch
is produced, which carries the full new list of finalizers (merge-patches
replace the lists as a whole) together with the body's resource version,
so that a concurrent modification of the finalizers by other parties fails
with a conflict instead of being silently overwritten.
"""
import datetime
from typing import Any, Dict, Mapping, Optional

import iso8601

from trustee_operator._cogs.structs import bodies

Patch = Dict[str, Any]


def is_deletion_ongoing(
        body: Mapping[str, Any],
) -> bool:
    return body.get('metadata', {}).get('deletionTimestamp', None) is not None


def is_deletion_blocked(
        body: Mapping[str, Any],
        finalizer: str,
) -> bool:
    finalizers = body.get('metadata', {}).get('finalizers', [])
    return finalizer in finalizers


def get_deletion_time(
        body: Mapping[str, Any],
) -> Optional[datetime.datetime]:
    value = body.get('metadata', {}).get('deletionTimestamp', None)
    return iso8601.parse_date(value) if value else None


def block_deletion(body: Mapping[str, Any], finalizer: str) -> Optional[Patch]:
    finalizers = list(body.get('metadata', {}).get('finalizers', []))
    if finalizer in finalizers:
        return None
    finalizers.append(finalizer)
    return _make_patch(body, finalizers)


def allow_deletion(body: Mapping[str, Any], finalizer: str) -> Optional[Patch]:
    finalizers = list(body.get('metadata', {}).get('finalizers', []))
    if finalizer not in finalizers:
        return None
    finalizers = [value for value in finalizers if value != finalizer]
    return _make_patch(body, finalizers)


def _make_patch(body: Mapping[str, Any], finalizers: list) -> Patch:
    metadata: Dict[str, Any] = {'finalizers': finalizers or None}
    resource_version = bodies.get_resource_version(body)
    if resource_version is not None:
        metadata['resourceVersion'] = resource_version
    return {'metadata': metadata}
