import aiohttp.web
import pytest

from trustee_operator._cogs.clients.api import get, request
from trustee_operator._cogs.clients.errors import APIClientError, APIConflictError, APIError, \
                                                  APIForbiddenError, APINotFoundError, \
                                                  APIServerError, APIUnauthorizedError


async def test_error_with_payload():
    payload = {'kind': 'Status', 'code': 404, 'message': 'msg', 'details': {'name': 'n'}}
    error = APIError(payload, status=404)
    assert error.status == 404
    assert error.code == 404
    assert error.message == 'msg'
    assert error.details == {'name': 'n'}


async def test_error_without_payload():
    error = APIError(None, status=456)
    assert error.status == 456
    assert error.code is None
    assert error.message is None
    assert error.details is None


async def test_no_error_on_success(resp_mocker, aresponses, hostname, settings, logger):
    mock = resp_mocker(return_value=aiohttp.web.json_response({'x': 'y'}))
    aresponses.add(hostname, '/', 'get', mock)
    result = await get('/', settings=settings, logger=logger)
    assert result == {'x': 'y'}


@pytest.mark.parametrize('status_code, error_cls', [
    (400, APIClientError),
    (401, APIUnauthorizedError),
    (403, APIForbiddenError),
    (404, APINotFoundError),
    (409, APIConflictError),
    (410, APIClientError),
    (422, APIClientError),
    (500, APIServerError),
    (503, APIServerError),
])
async def test_errors_by_status(resp_mocker, aresponses, hostname, settings, logger, status,
                                status_code, error_cls):
    mock = resp_mocker(return_value=aiohttp.web.json_response(status(status_code), status=status_code))
    aresponses.add(hostname, '/', 'get', mock)
    with pytest.raises(error_cls) as err:
        await get('/', settings=settings, logger=logger)
    assert err.value.status == status_code
    assert err.value.code == status_code
    assert err.value.message == 'Message'


async def test_non_status_payloads_are_not_exposed(resp_mocker, aresponses, hostname, settings, logger):
    mock = resp_mocker(return_value=aiohttp.web.json_response({'secret': 'data'}, status=403))
    aresponses.add(hostname, '/', 'get', mock)
    with pytest.raises(APIForbiddenError) as err:
        await get('/', settings=settings, logger=logger)
    assert err.value.message is None
    assert 'secret' not in str(err.value)


async def test_server_errors_are_retried(resp_mocker, aresponses, hostname, settings, logger, status):
    settings.networking.error_backoffs = [0, 0]
    fail_mock = resp_mocker(side_effect=[aiohttp.web.json_response(status(503), status=503)
                                         for _ in range(2)])
    pass_mock = resp_mocker(return_value=aiohttp.web.json_response({'x': 'y'}))
    aresponses.add(hostname, '/', 'get', fail_mock)
    aresponses.add(hostname, '/', 'get', fail_mock)
    aresponses.add(hostname, '/', 'get', pass_mock)

    result = await get('/', settings=settings, logger=logger)
    assert result == {'x': 'y'}
    assert fail_mock.call_count == 2
    assert pass_mock.call_count == 1


async def test_server_errors_escalate_after_the_retries(resp_mocker, aresponses, hostname,
                                                        settings, logger, status, caplog):
    settings.networking.error_backoffs = [0]
    fail_mock = resp_mocker(side_effect=[aiohttp.web.json_response(status(500), status=500)
                                         for _ in range(2)])
    aresponses.add(hostname, '/', 'get', fail_mock)
    aresponses.add(hostname, '/', 'get', fail_mock)

    with pytest.raises(APIServerError):
        await get('/', settings=settings, logger=logger)
    assert fail_mock.call_count == 2
    assert 'Request attempt #2/2 failed; escalating' in caplog.text


async def test_client_errors_are_not_retried(resp_mocker, aresponses, hostname, settings, logger, status):
    settings.networking.error_backoffs = [0, 0]
    fail_mock = resp_mocker(return_value=aiohttp.web.json_response(status(404), status=404))
    aresponses.add(hostname, '/', 'get', fail_mock)
    with pytest.raises(APINotFoundError):
        await get('/', settings=settings, logger=logger)
    assert fail_mock.call_count == 1


async def test_user_agent_header(resp_mocker, aresponses, hostname, settings, logger):
    mock = resp_mocker(return_value=aiohttp.web.json_response({}))
    aresponses.add(hostname, '/', 'get', mock)
    response = await request('get', '/', settings=settings, logger=logger)
    response.close()
    request_seen = mock.call_args_list[0][0][0]
    assert request_seen.headers['User-Agent'].startswith('trustee-operator/')
