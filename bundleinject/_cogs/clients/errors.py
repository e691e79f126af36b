"""
Errors of the K8s API, as seen by the controllers.

Every failed response is raised as an :class:`APIError` of the class
of its HTTP status, with the server's ``Status`` document if there was one.
Networking and TLS failures are not wrapped: they come from aiohttp as is.

Only the statuses that the controllers treat differently get own classes:
the object (or its namespace) is gone, the server is throttling,
the authentication has failed, or the write has conflicted.
"""
import collections.abc
import json
from typing import Any

import aiohttp


class APIError(Exception):
    """ A failed response of the API, with the server's explanation if any. """

    def __init__(self, status_doc: collections.abc.Mapping[str, Any] | None, *, status: int) -> None:
        self.status = status
        self.status_doc = status_doc or {}
        super().__init__(self.message or f"HTTP {status}")

    @property
    def message(self) -> str | None:
        return self.status_doc.get('message')

    @property
    def reason(self) -> str | None:
        return self.status_doc.get('reason')

    @property
    def retry_after(self) -> float | None:
        return (self.status_doc.get('details') or {}).get('retryAfterSeconds')


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


class APITooManyRequestsError(APIClientError):
    pass


_ERRORS_BY_STATUS: dict[int, type[APIError]] = {
    401: APIUnauthorizedError,
    403: APIForbiddenError,
    404: APINotFoundError,
    409: APIConflictError,
    429: APITooManyRequestsError,
}


async def check_response(response: aiohttp.ClientResponse) -> None:
    """ Raise the status's error for a failed response; do nothing for others. """
    if response.status < 400:
        return

    # Anything but a Status document is not shown: it can carry the objects' data.
    status_doc: Any
    try:
        status_doc = await response.json(content_type=None)
    except (json.JSONDecodeError, aiohttp.ClientConnectionError):
        status_doc = None
    if not isinstance(status_doc, collections.abc.Mapping) or status_doc.get('kind') != 'Status':
        status_doc = None

    fallback = APIClientError if response.status < 500 else APIServerError
    error_cls = _ERRORS_BY_STATUS.get(response.status, fallback)
    response.release()
    raise error_cls(status_doc, status=response.status)
