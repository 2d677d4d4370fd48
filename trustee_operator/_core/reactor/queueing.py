"""
The work queue of the record keys and the workers draining it.

The watchers do not process the events themselves. Instead, every event
is converted into a key of the affected record (or several records),
and the key is added to the queue. The queue de-duplicates the keys:
a key that is already pending is not added again, so a burst of events
for the same record results in a single reconciliation.

One key is never processed by two workers at the same time. If a key is
added while it is being processed, it is marked as "dirty" and re-queued
once the current processing is over: the new event could have been missed
by the current processing, which might have read the state before it.

A failed key is re-queued after a delay, which grows with every consecutive
failure of that key and is reset by its first success. The failures do not
stop the workers: they are logged and retried, but never escalated.
"""
import asyncio
import contextlib
import logging
from typing import Any, Awaitable, Callable, Dict, Set

from trustee_operator._cogs.configs import configuration
from trustee_operator._cogs.structs import references
from trustee_operator._core.actions import loggers
from trustee_operator._core.engines import volumes

logger = logging.getLogger(__name__)

# Called with the key as a keyword argument: `processor(key=key)`.
Processor = Callable[..., Awaitable[Any]]


class WorkQueue:

    def __init__(
            self,
            *,
            processor: Processor,
            settings: configuration.OperatorSettings,
    ) -> None:
        super().__init__()
        self.processor = processor
        self.settings = settings
        self._backlog: asyncio.Queue[references.ObjectKey] = asyncio.Queue()
        self._pending: Set[references.ObjectKey] = set()
        self._active: Set[references.ObjectKey] = set()
        self._dirty: Set[references.ObjectKey] = set()
        self._failures: Dict[references.ObjectKey, int] = {}
        self._retries: Dict[references.ObjectKey, asyncio.TimerHandle] = {}
        self._changed = asyncio.Condition()
        self._closing = False

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, key: object) -> bool:
        return key in self._pending or key in self._active

    def add(self, key: references.ObjectKey) -> None:
        """ Request the processing of the key as soon as possible. """
        if self._closing:
            return
        timer = self._retries.pop(key, None)
        if timer is not None:
            timer.cancel()
        if key in self._active:
            self._dirty.add(key)
        elif key not in self._pending:
            self._pending.add(key)
            self._backlog.put_nowait(key)

    def add_after(self, key: references.ObjectKey, delay: float) -> None:
        """ Request the processing of the key after a delay, unless requested earlier. """
        if self._closing:
            return
        loop = asyncio.get_running_loop()
        timer = self._retries.pop(key, None)
        if timer is not None:
            timer.cancel()
        self._retries[key] = loop.call_later(delay, self._retry, key)

    def _retry(self, key: references.ObjectKey) -> None:
        self._retries.pop(key, None)
        self.add(key)

    def get_delay(self, key: references.ObjectKey) -> float:
        delays = list(self.settings.queueing.error_delays) or [0]
        failures = self._failures.get(key, 0)
        return delays[min(failures, len(delays)) - 1] if failures else 0

    async def wait_idle(self, *, include_retries: bool = True) -> None:
        """ Wait until there is nothing pending or being processed (used in tests). """
        async with self._changed:
            await self._changed.wait_for(
                lambda: not self._pending and not self._active and
                        (not include_retries or not self._retries))

    async def run(self) -> None:
        """
        Run the workers forever, until cancelled; then let them finish gracefully.

        On exit, the keys already being processed get some time to finish
        (``settings.queueing.exit_timeout``); the pending keys are abandoned.
        """
        workers = [
            asyncio.create_task(self._worker(), name=f'worker #{idx}')
            for idx in range(max(1, self.settings.queueing.worker_limit))
        ]
        try:
            # Not gather(): its cancellation would cancel the workers before the depletion.
            await asyncio.wait(workers, return_when=asyncio.FIRST_EXCEPTION)
        finally:
            self._closing = True
            for timer in self._retries.values():
                timer.cancel()
            self._retries.clear()

            # Ensure the depletion is done even if the queue is double-cancelled (e.g. in tests).
            depletion_task = asyncio.create_task(self._wait_for_depletion())
            while not depletion_task.done():
                with contextlib.suppress(asyncio.CancelledError):
                    await asyncio.shield(depletion_task)

            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)

    async def _wait_for_depletion(self) -> None:
        async with self._changed:
            try:
                await asyncio.wait_for(self._changed.wait_for(lambda: not self._active),
                                       timeout=self.settings.queueing.exit_timeout)
            except asyncio.TimeoutError:
                pass  # if not depleted as configured, proceed with what's left and cancel it
        if self._active:
            logger.warning(f"Unfinished keys left: {sorted(map(str, self._active))!r}.")

    async def _worker(self) -> None:
        while True:
            key = await self._backlog.get()
            self._pending.discard(key)
            if self._closing:
                continue
            self._active.add(key)
            try:
                await self._process(key)
            finally:
                self._active.discard(key)
                if key in self._dirty:
                    self._dirty.discard(key)
                    self.add(key)
                async with self._changed:
                    self._changed.notify_all()

    async def _process(self, key: references.ObjectKey) -> None:
        try:
            await self.processor(key=key)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._failures[key] = self._failures.get(key, 0) + 1
            delay = self.get_delay(key)
            object_logger = loggers.make_object_logger(namespace=key.namespace, name=key.name)
            object_logger.error(f"Reconciliation has failed; will retry in {delay} seconds: {e}",
                                exc_info=not isinstance(e, volumes.ReconciliationError))
            self.add_after(key, delay)
        else:
            self._failures.pop(key, None)

