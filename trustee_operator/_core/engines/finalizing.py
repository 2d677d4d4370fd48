"""
The teardown of the workload before the record is released for deletion.

Only the deployment is torn down explicitly. The service is left to
the cluster's garbage collector via its owner reference to the record.

The teardown is idempotent: it ensures that the deployment is absent,
so an already absent deployment (e.g. deleted by someone else,
or by the previous attempt that failed afterwards) is a success.
"""
from trustee_operator._cogs.clients import errors, stores
from trustee_operator._cogs.configs import configuration
from trustee_operator._cogs.helpers import typedefs
from trustee_operator._cogs.structs import references


async def ensure_workload_absent(
        *,
        store: stores.ObjectStore,
        namespace: references.NamespaceName,
        settings: configuration.OperatorSettings,
        logger: typedefs.Logger,
) -> bool:
    """
    Delete the deployment if it exists. Return ``True`` if it was deleted now.

    All errors except the absence propagate, so that the finalizer stays.
    """
    name = settings.naming.deployment_name
    existing = await store.read(resource=references.DEPLOYMENTS, namespace=namespace, name=name)
    if existing is None:
        logger.info(f"Deployment {name!r} is already absent.")
        return False

    try:
        await store.delete(resource=references.DEPLOYMENTS, namespace=namespace, name=name)
    except errors.APINotFoundError:
        logger.info(f"Deployment {name!r} has disappeared while being deleted.")
        return False
    else:
        logger.info(f"Deployment {name!r} is deleted.")
        return True
