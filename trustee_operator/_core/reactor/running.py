"""
The operator's runtime: login, watchers, the work queue, the liveness probe.

Three watch-streams feed the same work queue with the record keys:

* The ``KbsConfig`` records in the operating namespace: every event
  of a record enqueues the record itself.
* The config maps and the secrets, cluster-wide: the events pass
  the namespace filter, and then enqueue all the known records
  of that namespace which reference the changed object by name.

The known records are remembered from the primary watch-stream, so that
the secondary events can be mapped to the records without the API calls.

All tasks run until one of them exits or fails, or the operator
is stopped by a signal or a stop-flag; then all the tasks are stopped.
"""
import asyncio
import functools
import logging
import signal
import threading
from typing import Collection, Dict, List, MutableSequence, Optional, Set, Tuple

from trustee_operator._cogs.clients import auth, stores, watching
from trustee_operator._cogs.configs import configuration
from trustee_operator._cogs.structs import bodies, kbsconfigs, references
from trustee_operator._core.engines import probing
from trustee_operator._core.intents import filters, piggybacking
from trustee_operator._core.reactor import queueing, reconciling

logger = logging.getLogger(__name__)

ArtifactRef = Tuple[references.Resource, str]


class KnownRecords:
    """
    The records seen in the primary watch-stream, and their artifact references.
    """

    def __init__(self) -> None:
        super().__init__()
        self._refs: Dict[references.ObjectKey, Set[ArtifactRef]] = {}

    def __len__(self) -> int:
        return len(self._refs)

    def __contains__(self, key: object) -> bool:
        return key in self._refs

    def remember(self, body: bodies.RawBody) -> references.ObjectKey:
        key = get_key(body)
        self._refs[key] = kbsconfigs.get_referenced_artifacts(body)
        return key

    def forget(self, body: bodies.RawBody) -> references.ObjectKey:
        key = get_key(body)
        self._refs.pop(key, None)
        return key

    def find_referencing(
            self,
            *,
            resource: references.Resource,
            namespace: Optional[str],
            name: Optional[str],
    ) -> List[references.ObjectKey]:
        return sorted(key for key, refs in self._refs.items()
                      if key.namespace == namespace and (resource, name) in refs)


def get_key(body: bodies.RawBody) -> references.ObjectKey:
    return references.ObjectKey(
        namespace=references.NamespaceName(bodies.get_namespace(body) or ''),
        name=bodies.get_name(body) or '',
    )


def dispatch_primary_event(
        raw_event: bodies.RawEvent,
        *,
        queue: queueing.WorkQueue,
        known: KnownRecords,
) -> None:
    """
    Enqueue the record on any of its events, including its deletion.

    The deletion is reconciled too: normally, the record is gone by then,
    but it is cheap to confirm that, and it covers the forced deletions.
    """
    body = raw_event['object']
    if raw_event['type'] == 'DELETED':
        key = known.forget(body)
    else:
        key = known.remember(body)
    queue.add(key)


def dispatch_secondary_event(
        raw_event: bodies.RawEvent,
        *,
        resource: references.Resource,
        queue: queueing.WorkQueue,
        known: KnownRecords,
        predicate: filters.EventPredicate,
) -> None:
    event = filters.ChangeEvent.from_raw_event(raw_event)
    if not predicate(event):
        return
    keys = known.find_referencing(resource=resource, namespace=event.namespace, name=event.name)
    for key in keys:
        logger.debug(f"{resource.kind} {event.namespace}/{event.name} is changed; "
                     f"requeueing the record {key}.")
        queue.add(key)


async def primary_watcher(
        *,
        settings: configuration.OperatorSettings,
        namespace: references.NamespaceName,
        queue: queueing.WorkQueue,
        known: KnownRecords,
) -> None:
    async for raw_event in watching.infinite_watch(
        settings=settings,
        resource=references.KBSCONFIGS,
        namespace=namespace,
    ):
        dispatch_primary_event(raw_event, queue=queue, known=known)


async def secondary_watcher(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        queue: queueing.WorkQueue,
        known: KnownRecords,
        predicate: filters.EventPredicate,
) -> None:
    async for raw_event in watching.infinite_watch(
        settings=settings,
        resource=resource,
        namespace=None,
    ):
        dispatch_secondary_event(raw_event, resource=resource, queue=queue,
                                 known=known, predicate=predicate)


def run(
        *,
        settings: Optional[configuration.OperatorSettings] = None,
        namespace: Optional[str] = None,
        liveness_endpoint: Optional[str] = None,
        stop_flag: Optional[asyncio.Event] = None,
) -> None:
    """
    Run the whole operator synchronously.
    """
    try:
        asyncio.run(operator(
            settings=settings,
            namespace=namespace,
            liveness_endpoint=liveness_endpoint,
            stop_flag=stop_flag,
        ))
    except asyncio.CancelledError:
        pass


async def operator(
        *,
        settings: Optional[configuration.OperatorSettings] = None,
        namespace: Optional[str] = None,
        liveness_endpoint: Optional[str] = None,
        stop_flag: Optional[asyncio.Event] = None,
        context: Optional[auth.APIContext] = None,
        store: Optional[stores.ObjectStore] = None,
) -> None:
    """
    Run the whole operator asynchronously.

    If the API context is not passed explicitly, the operator logs in itself,
    and closes the context on exit. The explicitly passed context is left open.
    """
    settings = settings if settings is not None else configuration.OperatorSettings()
    operating_namespace = references.NamespaceName(settings.resolve_namespace(namespace))
    logger.info(f"Operating in the namespace {operating_namespace!r}.")

    own_context = context is None
    if context is None:
        context = auth.APIContext(piggybacking.login(logger=logger))
    auth.context_var.set(context)

    try:
        store = store if store is not None else stores.APIObjectStore(settings=settings, logger=logger)
        tasks = spawn_tasks(
            settings=settings,
            namespace=operating_namespace,
            liveness_endpoint=liveness_endpoint,
            stop_flag=stop_flag,
            store=store,
        )
        await run_tasks(tasks)
    finally:
        if own_context:
            await context.close()


def spawn_tasks(
        *,
        settings: configuration.OperatorSettings,
        namespace: references.NamespaceName,
        store: stores.ObjectStore,
        liveness_endpoint: Optional[str] = None,
        stop_flag: Optional[asyncio.Event] = None,
) -> Collection[asyncio.Task]:
    """
    Spawn all the tasks needed to run the operator, inter-connected via the queue.
    """
    loop = asyncio.get_running_loop()
    signal_flag: asyncio.Future = loop.create_future()
    known = KnownRecords()
    queue = queueing.WorkQueue(
        settings=settings,
        processor=functools.partial(reconciling.reconcile, store=store, settings=settings),
    )
    predicate = filters.namespace_filter(namespace)
    tasks: MutableSequence[asyncio.Task] = []

    tasks.append(asyncio.create_task(
        name="stop-flag checker",
        coro=_stop_flag_checker(signal_flag=signal_flag, stop_flag=stop_flag)))
    tasks.append(asyncio.create_task(
        name="work queue",
        coro=queue.run()))
    tasks.append(asyncio.create_task(
        name=f"watcher of {references.KBSCONFIGS}",
        coro=primary_watcher(settings=settings, namespace=namespace, queue=queue, known=known)))
    for resource in [references.CONFIGMAPS, references.SECRETS]:
        tasks.append(asyncio.create_task(
            name=f"watcher of {resource}",
            coro=secondary_watcher(settings=settings, resource=resource, queue=queue,
                                   known=known, predicate=predicate)))

    # Liveness probing -- so that Kubernetes would know that the operator is alive.
    if liveness_endpoint:
        tasks.append(asyncio.create_task(
            name="health reporter",
            coro=probing.health_reporter(endpoint=liveness_endpoint)))

    # On Ctrl+C or pod termination, cancel all tasks gracefully.
    if threading.current_thread() is threading.main_thread():
        try:
            loop.add_signal_handler(signal.SIGINT, _set_once, signal_flag, signal.SIGINT)
            loop.add_signal_handler(signal.SIGTERM, _set_once, signal_flag, signal.SIGTERM)
        except NotImplementedError:
            logger.warning("OS signals are ignored: can't add signal handler in Windows.")
    else:
        logger.warning("OS signals are ignored: running not in the main thread.")

    return tasks


async def run_tasks(root_tasks: Collection[asyncio.Task]) -> None:
    """
    Run the root tasks until any of them exits, then stop all of them.

    The root tasks are expected to run forever. Once any of them exits
    (successfully or not), all other root tasks are cancelled and awaited.
    The first error of the exited tasks (if any) is re-raised.
    """
    try:
        done, pending = await asyncio.wait(root_tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in root_tasks:
            task.cancel()
        await asyncio.gather(*root_tasks, return_exceptions=True)

    for task in done:
        if not task.cancelled() and task.exception() is not None:
            raise task.exception()  # type: ignore


def _set_once(future: asyncio.Future, value: signal.Signals) -> None:
    if not future.done():
        future.set_result(value)


async def _stop_flag_checker(
        *,
        signal_flag: asyncio.Future,
        stop_flag: Optional[asyncio.Event],
) -> None:
    """
    A top-level task for external stopping by a signal or a stop-flag.

    Once set, this task exits, and thus all other top-level tasks are cancelled.
    """
    flags: List[asyncio.Future] = [signal_flag]
    if stop_flag is not None:
        flags.append(asyncio.ensure_future(stop_flag.wait()))
    try:
        done, pending = await asyncio.wait(flags, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for flag in flags:
            if flag is not signal_flag and not flag.done():
                flag.cancel()

    if signal_flag in done:
        logger.info(f"Signal {signal_flag.result().name} is received. Operator is stopping.")
    else:
        logger.info("Stop-flag is raised. Operator is stopping.")
