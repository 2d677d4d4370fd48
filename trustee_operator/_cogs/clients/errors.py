"""
Errors of the Kubernetes API, as seen by the operator.

The operator does not expose the ``aiohttp`` response errors to its callers:
every non-successful response becomes one of the classes below, with the
original ``aiohttp`` error chained as the cause. Networking and TLS failures
are not API errors and propagate from ``aiohttp`` unchanged.

Only the statuses that the reconciliation reacts to have dedicated classes:
an absent object (404), an outdated resource version (409), and the
authentication/authorization failures (401/403), which are fatal.
"""
import collections.abc
import json
from typing import Dict, Optional, Type

import aiohttp
from typing_extensions import Literal, TypedDict


class RawStatusDetails(TypedDict, total=False):
    name: str
    kind: str
    retryAfterSeconds: int


# https://kubernetes.io/docs/reference/kubernetes-api/common-definitions/status/
class RawStatus(TypedDict, total=False):
    apiVersion: str
    kind: Literal["Status"]
    code: int
    status: Literal["Success", "Failure"]
    reason: str
    message: str
    details: RawStatusDetails


class APIError(Exception):

    def __init__(self, payload: Optional[RawStatus], *, status: int) -> None:
        message = payload.get('message') if payload else None
        super().__init__(message, payload)
        self._status = status
        self._payload = payload

    @property
    def status(self) -> int:
        """ The HTTP status of the response, even if there was no ``Status`` payload. """
        return self._status

    @property
    def code(self) -> Optional[int]:
        return self._payload.get('code') if self._payload else None

    @property
    def message(self) -> Optional[str]:
        return self._payload.get('message') if self._payload else None

    @property
    def details(self) -> Optional[RawStatusDetails]:
        return self._payload.get('details') if self._payload else None


class APIClientError(APIError):
    pass


class APIServerError(APIError):
    pass


class APIUnauthorizedError(APIClientError):
    pass


class APIForbiddenError(APIClientError):
    pass


class APINotFoundError(APIClientError):
    pass


class APIConflictError(APIClientError):
    pass


_CLIENT_ERRORS: Dict[int, Type[APIClientError]] = {
    401: APIUnauthorizedError,
    403: APIForbiddenError,
    404: APINotFoundError,
    409: APIConflictError,
}


async def check_response(response: aiohttp.ClientResponse) -> None:
    """
    Raise an operator-level error for an unsuccessful response; do nothing otherwise.
    """
    if response.status < 400:
        return

    # The body must be read now: raise_for_status() releases the connection.
    payload: Optional[RawStatus]
    try:
        payload = await response.json()
    except (json.JSONDecodeError, aiohttp.ContentTypeError, aiohttp.ClientConnectionError):
        payload = None

    # Anything but a Status can carry the object's data (e.g. secrets); never expose it.
    if not isinstance(payload, collections.abc.Mapping) or payload.get('kind') != 'Status':
        payload = None

    cls: Type[APIError]
    if response.status >= 500:
        cls = APIServerError
    else:
        cls = _CLIENT_ERRORS.get(response.status, APIClientError)

    try:
        response.raise_for_status()
    except aiohttp.ClientResponseError as e:
        raise cls(payload, status=response.status) from e
