import json
import logging
import re
from unittest.mock import AsyncMock, MagicMock

import pytest

from trustee_operator._cogs.clients import auth
from trustee_operator._cogs.clients.auth import APIContext
from trustee_operator._cogs.configs.configuration import OperatorSettings
from trustee_operator._cogs.structs import references
from trustee_operator._cogs.structs.credentials import ConnectionInfo
from trustee_operator.testing import MemoryObjectStore


@pytest.fixture(autouse=True)
def clean_image_env(monkeypatch):
    """ The tests must not depend on the images configured in the developer's environment. """
    for name in ['KBS_IMAGE_NAME', 'AS_IMAGE_NAME', 'RVPS_IMAGE_NAME', 'POD_NAMESPACE']:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def settings():
    settings = OperatorSettings()
    settings.networking.error_backoffs = []  # no sleeps & retries unless a test wants them.
    return settings


@pytest.fixture()
def namespace():
    return references.NamespaceName('trustee')


@pytest.fixture()
def logger():
    return logging.getLogger('trustee_operator.tests')


@pytest.fixture()
def store():
    return MemoryObjectStore()


@pytest.fixture()
def make_kbsconfig(namespace):
    """ A factory of the KbsConfig bodies, as if stored in the cluster. """
    def factory(spec=None, *, name='kbsconfig-sample', **metadata):
        return {
            'apiVersion': references.KBSCONFIGS.api_version,
            'kind': 'KbsConfig',
            'metadata': dict({'namespace': namespace, 'name': name}, **metadata),
            'spec': dict(spec or {}),
        }
    return factory


#
# Mocks for Kubernetes API clients (aiohttp-based).
# No external calls must be made under any circumstances:
# the responses are served by `aresponses` from the test-defined callbacks.
#

@pytest.fixture()
def hostname():
    """ A fake hostname to be used in all aiohttp/aresponses tests. """
    return 'fake-host'


@pytest.fixture()
async def fake_context(hostname):
    """
    A freshly created API context for every test, as if logged in by the operator.
    """
    info = ConnectionInfo(server=f'http://{hostname}')
    context = APIContext(info)
    token = auth.context_var.set(context)
    try:
        yield context
    finally:
        auth.context_var.reset(token)
        await context.close()


@pytest.fixture()
def resp_mocker(fake_context, aresponses):
    """
    A factory of server-side callbacks for `aresponses` with mocking/spying.

    The value of the fixture is a function, which return a coroutine mock.
    That coroutine mock should be passed to `aresponses.add` as a response
    callback function. When called, it calls the mock defined by the function's
    arguments (specifically, return_value or side_effects).

    The request's payload is preserved as ``request.data`` for later assertions::

        data = mock.call_args_list[0][0][0].data  # [callidx][args/kwargs][argidx]
    """
    def resp_maker(*args, **kwargs):
        actual_response = MagicMock(*args, **kwargs)

        async def resp_mock_effect(request):
            try:
                request.data = await request.json()
            except json.JSONDecodeError:
                request.data = await request.text()
            return actual_response()

        return AsyncMock(side_effect=resp_mock_effect)
    return resp_maker


#
# Helpers for the logging checks.
#

@pytest.fixture()
def assert_logs(caplog):
    """
    A function to assert the logs are present (by pattern).

    The listed message patterns MUST be present, in the order specified.
    Some other log messages can also be present, but they are ignored.
    """
    def assert_logs_fn(patterns, prohibited=[]):
        __traceback_hide__ = True
        remaining_patterns = list(patterns)
        for message in caplog.messages:
            if remaining_patterns and re.search(remaining_patterns[0], message):
                remaining_patterns[:1] = []
            for pattern in prohibited:
                if re.search(pattern, message):
                    raise AssertionError(f"Prohibited log pattern found: {message!r} ~ {pattern!r}")
        if remaining_patterns:
            raise AssertionError(f"Few patterns were missed: {remaining_patterns!r}")

    return assert_logs_fn
