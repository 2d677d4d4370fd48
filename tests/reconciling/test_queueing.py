import asyncio
import logging

import pytest

from trustee_operator._cogs.structs.references import CONFIGMAPS, ObjectKey
from trustee_operator._core.engines.volumes import MissingArtifactError
from trustee_operator._core.reactor.queueing import WorkQueue

KEY1 = ObjectKey(namespace='ns', name='name1')
KEY2 = ObjectKey(namespace='ns', name='name2')


@pytest.fixture()
def settings(settings):
    settings.queueing.error_delays = [0.01, 0.02, 0.05]
    settings.queueing.exit_timeout = 0.5
    return settings


@pytest.fixture()
async def running():
    """ Run the queue in the background for the duration of the test. """
    tasks = []

    async def start(queue):
        tasks.append(asyncio.create_task(queue.run()))
        await asyncio.sleep(0)

    try:
        yield start
    finally:
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.wait(tasks)


async def test_pending_keys_are_deduplicated(settings, running):
    processed = []

    async def processor(key):
        processed.append(key)

    queue = WorkQueue(processor=processor, settings=settings)
    queue.add(KEY1)
    queue.add(KEY1)
    queue.add(KEY2)
    queue.add(KEY1)
    assert len(queue) == 2

    await running(queue)
    await asyncio.wait_for(queue.wait_idle(), timeout=1)
    assert sorted(processed) == [KEY1, KEY2]


async def test_one_key_is_never_processed_concurrently(settings, running):
    active = set()
    overlaps = []
    processed = []
    release = asyncio.Event()

    async def processor(key):
        if key in active:
            overlaps.append(key)
        active.add(key)
        await release.wait()
        active.discard(key)
        processed.append(key)

    queue = WorkQueue(processor=processor, settings=settings)
    queue.add(KEY1)
    await running(queue)
    await asyncio.sleep(0.01)
    assert KEY1 in active

    queue.add(KEY1)  # while being processed.
    queue.add(KEY1)
    await asyncio.sleep(0.01)
    release.set()
    await asyncio.wait_for(queue.wait_idle(), timeout=1)

    assert overlaps == []
    assert processed == [KEY1, KEY1]  # re-run once after the current run, not twice.


async def test_different_keys_are_processed_concurrently(settings, running):
    started = []
    release = asyncio.Event()

    async def processor(key):
        started.append(key)
        await release.wait()

    queue = WorkQueue(processor=processor, settings=settings)
    queue.add(KEY1)
    queue.add(KEY2)
    await running(queue)
    await asyncio.sleep(0.01)
    assert sorted(started) == [KEY1, KEY2]
    release.set()
    await asyncio.wait_for(queue.wait_idle(), timeout=1)


async def test_worker_limit_bounds_the_concurrency(settings, running):
    settings.queueing.worker_limit = 1
    started = []
    release = asyncio.Event()

    async def processor(key):
        started.append(key)
        await release.wait()

    queue = WorkQueue(processor=processor, settings=settings)
    queue.add(KEY1)
    queue.add(KEY2)
    await running(queue)
    await asyncio.sleep(0.01)
    assert started == [KEY1]
    release.set()
    await asyncio.wait_for(queue.wait_idle(), timeout=1)
    assert started == [KEY1, KEY2]


async def test_failures_are_retried_until_success(settings, running, caplog):
    caplog.set_level(logging.DEBUG)
    attempts = []

    async def processor(key):
        attempts.append(key)
        if len(attempts) < 3:
            raise MissingArtifactError(resource=CONFIGMAPS, namespace='ns', name='cm',
                                       field='kbsConfigMapName')

    queue = WorkQueue(processor=processor, settings=settings)
    queue.add(KEY1)
    await running(queue)
    await asyncio.wait_for(queue.wait_idle(), timeout=1)

    assert attempts == [KEY1, KEY1, KEY1]
    assert queue.get_delay(KEY1) == 0  # reset by the success.
    messages = [m for m in caplog.messages if 'will retry' in m]
    assert len(messages) == 2
    assert 'will retry in 0.01 seconds' in messages[0]
    assert 'will retry in 0.02 seconds' in messages[1]


async def test_backoff_grows_and_saturates(settings):
    async def processor(key):
        raise RuntimeError("boom")

    queue = WorkQueue(processor=processor, settings=settings)
    delays = []
    for _ in range(5):
        queue._failures[KEY1] = queue._failures.get(KEY1, 0) + 1
        delays.append(queue.get_delay(KEY1))
    assert delays == [0.01, 0.02, 0.05, 0.05, 0.05]


async def test_unexpected_errors_are_logged_with_tracebacks(settings, running, caplog):
    caplog.set_level(logging.DEBUG)
    calls = []

    async def processor(key):
        calls.append(key)
        if len(calls) == 1:
            raise RuntimeError("boom")

    queue = WorkQueue(processor=processor, settings=settings)
    queue.add(KEY1)
    await running(queue)
    await asyncio.wait_for(queue.wait_idle(), timeout=1)

    [record] = [r for r in caplog.records if 'will retry' in r.getMessage()]
    assert record.exc_info is not None
    assert record.k8s_ref['name'] == 'name1'


async def test_new_event_cancels_the_pending_backoff(settings, running):
    settings.queueing.error_delays = [100]
    calls = []

    async def processor(key):
        calls.append(key)
        if len(calls) == 1:
            raise RuntimeError("boom")

    queue = WorkQueue(processor=processor, settings=settings)
    queue.add(KEY1)
    await running(queue)
    await asyncio.wait_for(queue.wait_idle(include_retries=False), timeout=1)
    assert calls == [KEY1]

    queue.add(KEY1)
    await asyncio.wait_for(queue.wait_idle(), timeout=1)
    assert calls == [KEY1, KEY1]


async def test_exit_lets_the_current_processing_finish(settings):
    finished = []

    async def processor(key):
        await asyncio.sleep(0.05)
        finished.append(key)

    queue = WorkQueue(processor=processor, settings=settings)
    queue.add(KEY1)
    task = asyncio.create_task(queue.run())
    await asyncio.sleep(0.01)
    task.cancel()
    await asyncio.wait([task])
    assert finished == [KEY1]


async def test_exit_cancels_the_hung_processing(settings, caplog):
    settings.queueing.exit_timeout = 0.05

    async def processor(key):
        await asyncio.Event().wait()

    queue = WorkQueue(processor=processor, settings=settings)
    queue.add(KEY1)
    task = asyncio.create_task(queue.run())
    await asyncio.sleep(0.01)
    task.cancel()
    await asyncio.wait([task])
    assert "Unfinished keys left: ['ns/name1']" in caplog.text


async def test_keys_are_ignored_after_closing(settings):
    async def processor(key):
        pass

    queue = WorkQueue(processor=processor, settings=settings)
    task = asyncio.create_task(queue.run())
    await asyncio.sleep(0)
    task.cancel()
    await asyncio.wait([task])
    queue.add(KEY1)
    assert KEY1 not in queue
