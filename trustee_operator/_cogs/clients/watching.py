"""
Watching and streaming the watch-events.

The watch-stream is a combination of an initial listing and the actual
watching since the listing's resource version. The listing is simulated
as a series of pseudo-events with ``type=None``. The stream continues
from the last seen resource version when the server closes the connection
(which happens every few minutes), and restarts from a fresh listing
when the last seen resource version is gone (HTTP 410 in the stream),
or after a backoff when the connection breaks.

The stream is level-triggered from the consumer's point of view:
an event says "something has changed in this object", and the consumer
is expected to re-read the state, not to rely on the event's content.
"""
import asyncio
import logging
from typing import AsyncIterator, Dict, Optional

import aiohttp

from trustee_operator._cogs.clients import api, errors, fetching
from trustee_operator._cogs.configs import configuration
from trustee_operator._cogs.structs import bodies, references

logger = logging.getLogger(__name__)

HTTP_GONE_CODE = 410
HTTP_TOO_MANY_REQUESTS_CODE = 429
DEFAULT_RETRY_DELAY_SECONDS = 1

# Network-level failures: the stream is restarted after a backoff, not escalated.
DISCONNECTION_ERRORS = (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError, asyncio.TimeoutError)


class WatchingError(Exception):
    """
    Raised when an unexpected error happens in the watch-stream API.
    """


async def infinite_watch(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        _iterations: Optional[int] = None,  # used in tests/mocks/fixtures
) -> AsyncIterator[bodies.RawEvent]:
    """
    Stream the watch-events infinitely.

    This routine never ends gracefully. If a watcher's stream fails,
    a new one is recreated, and the stream continues.
    It only exits with unrecoverable exceptions.
    """
    where = f'in {namespace!r}' if namespace is not None else 'cluster-wide'
    logger.debug(f"Starting the watch-stream for {resource} {where}.")
    try:
        while _iterations is None or _iterations > 0:  # equivalent to `while True` in non-test mode
            _iterations = None if _iterations is None else _iterations - 1
            try:
                async for raw_event in continuous_watch(
                    settings=settings,
                    resource=resource,
                    namespace=namespace,
                ):
                    yield raw_event
            except errors.APIClientError as ex:
                if ex.status != HTTP_TOO_MANY_REQUESTS_CODE:
                    raise

                retry_after = ex.details.get("retryAfterSeconds") if ex.details else None
                retry_wait = retry_after or DEFAULT_RETRY_DELAY_SECONDS
                logger.warning(
                    f"Receiving `too many requests` error from server, will retry after "
                    f"{retry_wait} seconds. Error details: {ex}"
                )
                await asyncio.sleep(retry_wait)
            await asyncio.sleep(settings.watching.reconnect_backoff)
    finally:
        logger.debug(f"Stopping the watch-stream for {resource} {where}.")


async def continuous_watch(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
) -> AsyncIterator[bodies.RawEvent]:
    """
    List the objects and then watch them until the resource version is gone.
    """

    # First, list the resources regularly, and get the list's resource version.
    # Simulate the events with type "None" event - used in detection of causes.
    try:
        objs, resource_version = await fetching.list_objs(
            settings=settings,
            resource=resource,
            namespace=namespace,
            logger=logger,
        )
        for obj in objs:
            yield {'type': None, 'object': obj}
    except DISCONNECTION_ERRORS as e:
        logger.debug(f"Listing of {resource} is interrupted: {e!r}")
        return

    # Then, watch the resources starting from the list's resource version.
    # The server closes the stream every few minutes; continue from the last known version.
    while True:
        stream = watch_objs(
            settings=settings,
            resource=resource,
            namespace=namespace,
            since=resource_version,
        )
        try:
            async for raw_input in stream:
                raw_type = raw_input['type']
                raw_object = raw_input['object']

                # "410 Gone" is for the "resource version too old" error, we must restart watching.
                # The resource versions are lost by k8s after few minutes (5, as per the official doc).
                # The error occurs when there is nothing happening for few minutes. This is normal.
                if raw_type == 'ERROR' and raw_object.get('code') == HTTP_GONE_CODE:
                    where = f'in {namespace!r}' if namespace is not None else 'cluster-wide'
                    logger.debug(f"Restarting the watch-stream for {resource} {where}.")
                    return  # out of the regular stream, to the infinite stream.

                # Other watch errors should be fatal for the operator.
                if raw_type == 'ERROR':
                    raise WatchingError(f"Error in the watch-stream: {raw_object}")

                # Bookmarks only move the resource version forward, they are not real changes.
                new_version = raw_object.get('metadata', {}).get('resourceVersion')
                if new_version is not None:
                    resource_version = new_version
                if raw_type == 'BOOKMARK':
                    continue

                yield {'type': raw_type, 'object': raw_object}
        except DISCONNECTION_ERRORS as e:
            logger.debug(f"Watching of {resource} is interrupted: {e!r}")
            return


async def watch_objs(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        since: Optional[str] = None,
) -> AsyncIterator[bodies.RawInput]:
    """
    Watch objects of a specific resource type.

    With no namespace, the objects are watched cluster-wide.
    """
    params: Dict[str, str] = {}
    params['watch'] = 'true'
    params['allowWatchBookmarks'] = 'true'
    if since is not None:
        params['resourceVersion'] = since
    if settings.watching.server_timeout is not None:
        params['timeoutSeconds'] = str(settings.watching.server_timeout)

    async for raw_input in api.stream(
        url=resource.get_url(namespace=namespace, params=params),
        timeout=aiohttp.ClientTimeout(
            total=settings.watching.client_timeout,
            sock_connect=settings.watching.connect_timeout,
        ),
        settings=settings,
        logger=logger,
    ):
        yield raw_input
