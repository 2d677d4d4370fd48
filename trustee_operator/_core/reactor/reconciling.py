"""
The reconciliation of a single ``KbsConfig`` record by its key.

The reconciliation is level-triggered: it does not care which event
has caused it; it reads the current state of the record and converges
the children to it. So, it is safe to run it multiple times in a row,
and the repeated runs do not change anything if nothing has changed.

The flow is strictly sequential, and any failure aborts the remaining
steps: e.g., if a referenced config map is missing, nothing is applied,
and the record is retried later with the same (or an updated) spec.
"""
import enum
from typing import Optional

from trustee_operator._cogs.clients import stores
from trustee_operator._cogs.configs import configuration
from trustee_operator._cogs.helpers import typedefs
from trustee_operator._cogs.structs import bodies, finalizers, references
from trustee_operator._core.actions import loggers
from trustee_operator._core.engines import builders, children, finalizing, volumes


class ReconcileOutcome(str, enum.Enum):
    ABSENT = 'absent'         # the record does not exist (anymore).
    FINALIZED = 'finalized'   # the workload is torn down, the record is released.
    IGNORED = 'ignored'       # the record is being deleted, but not by us.
    SYNCED = 'synced'         # the children are applied, the finalizer is in place.


async def reconcile(
        *,
        key: references.ObjectKey,
        store: stores.ObjectStore,
        settings: configuration.OperatorSettings,
        logger: Optional[typedefs.Logger] = None,
) -> ReconcileOutcome:
    namespace = references.NamespaceName(key.namespace or '')
    body = await store.read(resource=references.KBSCONFIGS, namespace=namespace, name=key.name)
    if body is None:
        logger = logger if logger is not None else loggers.make_object_logger(
            namespace=namespace, name=key.name)
        logger.info("The record is absent; nothing to do.")
        return ReconcileOutcome.ABSENT

    logger = logger if logger is not None else loggers.ObjectLogger(body=body)
    finalizer = settings.naming.finalizer

    if finalizers.is_deletion_ongoing(body):
        if not finalizers.is_deletion_blocked(body, finalizer=finalizer):
            logger.debug("The record is being deleted, but it is not blocked by us.")
            return ReconcileOutcome.IGNORED
        await finalize(body=body, namespace=namespace, store=store, settings=settings, logger=logger)
        return ReconcileOutcome.FINALIZED

    await synchronize(body=body, namespace=namespace, store=store, settings=settings, logger=logger)
    return ReconcileOutcome.SYNCED


async def finalize(
        *,
        body: bodies.RawBody,
        namespace: references.NamespaceName,
        store: stores.ObjectStore,
        settings: configuration.OperatorSettings,
        logger: typedefs.Logger,
) -> None:
    """
    Tear down the workload, and only then release the record for deletion.
    """
    deleted_at = finalizers.get_deletion_time(body)
    logger.info(f"The record is marked for deletion at {deleted_at}; tearing down.")
    await finalizing.ensure_workload_absent(store=store, namespace=namespace,
                                            settings=settings, logger=logger)

    patch = finalizers.allow_deletion(body, finalizer=settings.naming.finalizer)
    if patch is not None:
        await store.patch(resource=references.KBSCONFIGS, namespace=namespace,
                          name=bodies.get_name(body) or '', patch=patch)
        logger.info("The finalizer is removed; the record is released for deletion.")


async def synchronize(
        *,
        body: bodies.RawBody,
        namespace: references.NamespaceName,
        store: stores.ObjectStore,
        settings: configuration.OperatorSettings,
        logger: typedefs.Logger,
) -> None:
    """
    Bring the children to the state desired by the record.

    The volumes are composed first, so that neither child is touched
    if any of the referenced artifacts is missing or the spec is invalid.
    """
    composed = await volumes.compose_volumes(
        body=body,
        namespace=namespace,
        lookup=store.read,
        settings=settings,
        logger=logger,
    )

    deployment = builders.build_deployment(body=body, composed=composed, settings=settings)
    await children.apply_child(store=store, resource=references.DEPLOYMENTS,
                               owner=body, desired=deployment, logger=logger)

    service = builders.build_service(body=body, settings=settings)
    await children.apply_child(store=store, resource=references.SERVICES,
                               owner=body, desired=service, logger=logger)

    patch = finalizers.block_deletion(body, finalizer=settings.naming.finalizer)
    if patch is not None:
        await store.patch(resource=references.KBSCONFIGS, namespace=namespace,
                          name=bodies.get_name(body) or '', patch=patch)
        logger.info("The finalizer is added.")

    logger.info("The record is synchronized.")
