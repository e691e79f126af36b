"""
The raw HTTP calls to the Kubernetes API, on top of the operator's session.

Every call is one attempt: nothing is retried here. The failed responses
are raised as :mod:`errors`; the networking errors of aiohttp are raised
as they are. Deciding what to retry and when is up to the dispatcher.
"""
import asyncio
import json
from collections.abc import AsyncIterator, Mapping
from typing import Any

import aiohttp

from bundleinject._cogs.clients import auth, errors
from bundleinject._cogs.configs import configuration
from bundleinject._cogs.helpers import typedefs


@auth.authenticated
async def request(
        method: str,
        url: str,  # either absolute, or relative to the server's root
        *,
        settings: configuration.OperatorSettings,
        payload: object | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: aiohttp.ClientTimeout | None = None,
        context: auth.APIContext | None = None,  # injected by the decorator
        logger: typedefs.Logger,
) -> aiohttp.ClientResponse:
    """
    Send one request and raise the API error of the response, if any.

    The response is returned unread: to be parsed or streamed by the caller.
    """
    if context is None:
        raise RuntimeError("API context is not injected by the decorator.")
    if '://' not in url:
        url = f"{context.server.rstrip('/')}/{url.lstrip('/')}"
    if timeout is None:
        timeout = aiohttp.ClientTimeout(
            total=settings.networking.request_timeout,
            sock_connect=settings.networking.connect_timeout,
        )

    try:
        response = await context.session.request(
            method, url, json=payload, headers=headers, timeout=timeout)
        await errors.check_response(response)
    except (aiohttp.ClientConnectionError, asyncio.TimeoutError, errors.APIServerError) as e:
        logger.debug(f"{method.upper()} {url} has failed: {e!r}")
        raise
    return response


async def _read_json(method: str, url: str, **kwargs: Any) -> Any:
    response = await request(method, url, **kwargs)
    async with response:
        return await response.json()


async def get(
        url: str,
        *,
        settings: configuration.OperatorSettings,
        logger: typedefs.Logger,
) -> Any:
    return await _read_json('get', url, settings=settings, logger=logger)


async def patch(
        url: str,
        *,
        settings: configuration.OperatorSettings,
        payload: object,
        headers: Mapping[str, str] | None = None,
        logger: typedefs.Logger,
) -> Any:
    return await _read_json('patch', url, settings=settings, payload=payload, headers=headers,
                            logger=logger)


async def stream(
        url: str,
        *,
        settings: configuration.OperatorSettings,
        timeout: aiohttp.ClientTimeout | None = None,
        logger: typedefs.Logger,
) -> AsyncIterator[Any]:
    """ Yield the JSON documents of a long-lived response, one per line, until it is closed. """
    response = await request('get', url, settings=settings, timeout=timeout, logger=logger)
    async with response:
        async for line in iter_jsonlines(response.content):
            yield json.loads(line.decode('utf-8'))


async def iter_jsonlines(
        content: aiohttp.StreamReader,
        chunk_size: int = 1024 * 1024,
) -> AsyncIterator[bytes]:
    """
    Split the content into non-empty lines of any length.

    aiohttp's own line iteration fails on the lines above its buffer limit
    (128 KiB by default), while a watch-event of a ConfigMap with a bundle
    is one line and can be a few MiB long.
    """
    tail = b''
    async for chunk in content.iter_chunked(chunk_size):
        *lines, tail = (tail + chunk).split(b'\n')
        for line in lines:
            if line:
                yield line
    if tail:
        yield tail
