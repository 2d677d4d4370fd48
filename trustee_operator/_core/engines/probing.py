import asyncio
import logging
import urllib.parse
from typing import Optional

import aiohttp.web

logger = logging.getLogger(__name__)

LOCALHOST: str = 'localhost'
HTTP_PORT: int = 80


def parse_endpoint(endpoint: str) -> urllib.parse.SplitResult:
    parts = urllib.parse.urlsplit(endpoint)
    if parts.scheme != 'http':
        raise ValueError(f"Unsupported scheme: {endpoint}")
    return parts


async def health_reporter(
        endpoint: str,
        *,
        ready_flag: Optional[asyncio.Event] = None,  # used for testing
) -> None:
    """
    Simple HTTP server to report the operator's liveness to K8s probes.

    Runs forever until cancelled (which happens if any other root task
    is cancelled or failed). Once it stops responding for any reason,
    Kubernetes will assume the pod is not alive anymore, and will restart it.
    """
    async def get_health(
            request: aiohttp.web.Request,
    ) -> aiohttp.web.Response:
        return aiohttp.web.json_response({})

    parts = parse_endpoint(endpoint)
    host = parts.hostname or LOCALHOST
    port = parts.port or HTTP_PORT
    path = parts.path or '/'

    app = aiohttp.web.Application()
    app.add_routes([aiohttp.web.get(path, get_health)])

    runner = aiohttp.web.AppRunner(app, handle_signals=False, shutdown_timeout=1.0)
    await runner.setup()

    site = aiohttp.web.TCPSite(runner, host, port)
    await site.start()

    # Log with the actual URL: normalised, with hostname/port set.
    url = urllib.parse.urlunsplit([parts.scheme, f'{host}:{port}', path, '', ''])
    logger.debug(f"Serving health status at {url}")
    if ready_flag is not None:
        ready_flag.set()

    try:
        await asyncio.Event().wait()
    finally:
        await asyncio.shield(runner.cleanup())
