"""
The endless stream of the objects' events, as consumed by one watcher.

Every round starts with listing the objects, which are yielded as events
of type ``None`` and followed by :attr:`Bookmark.LISTED`. Then, the changes
since the listing are watched, and the watch-requests are repeated from the
last seen resource version whenever the server closes them. A round ends
when that version has expired on the server ("410 Gone"), or when the
connection is lost, and the next round starts with a new listing.

Only the unexpected errors end the stream (and so the watcher).
"""
import asyncio
import enum
import logging
from collections.abc import AsyncIterator
from typing import cast

import aiohttp

from bundleinject._cogs.clients import api, errors, fetching
from bundleinject._cogs.configs import configuration
from bundleinject._cogs.structs import bodies, references

logger = logging.getLogger(__name__)

EVENT_TYPES = frozenset({'ADDED', 'MODIFIED', 'DELETED'})
CONNECTION_ERRORS = (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError, asyncio.TimeoutError)


class WatchingError(Exception):
    """ The watch-stream has reported an error other than the expired version. """


class Bookmark(enum.Enum):
    LISTED = enum.auto()  # all the existing objects are yielded; the changes follow.


async def infinite_watch(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        _rounds: int | None = None,  # for tests only; unlimited otherwise
) -> AsyncIterator[Bookmark | bodies.RawEvent]:
    """
    Yield the events of the objects round after round, never exiting normally.

    The rounds are paused by a short backoff, or by the server's advised delay
    if the server is throttling the requests.
    """
    where = 'cluster-wide' if namespace is None else f'in {namespace!r}'
    logger.debug(f"Starting the watch-stream for {resource} {where}.")
    try:
        while _rounds is None or _rounds > 0:
            if _rounds is not None:
                _rounds -= 1
            try:
                async for raw_event in continuous_watch(
                    settings=settings,
                    resource=resource,
                    namespace=namespace,
                ):
                    yield raw_event
            except errors.APITooManyRequestsError as e:
                delay = e.retry_after or settings.watching.reconnect_backoff
                logger.warning(f"The watch-stream is throttled; retrying in {delay} seconds: {e}")
                await asyncio.sleep(delay)
            else:
                await asyncio.sleep(settings.watching.reconnect_backoff)
    finally:
        logger.debug(f"Stopping the watch-stream for {resource} {where}.")


async def continuous_watch(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
) -> AsyncIterator[Bookmark | bodies.RawEvent]:
    """ One round: the listing, then the changes for as long as the version is valid. """
    try:
        objs, version = await fetching.list_objs(
            settings=settings,
            resource=resource,
            namespace=namespace,
            logger=logger,
        )
    except CONNECTION_ERRORS as e:
        logger.debug(f"Listing {resource} has failed and will be repeated: {e!r}")
        return

    for obj in objs:
        yield {'type': None, 'object': obj}
    yield Bookmark.LISTED

    while True:
        try:
            async for raw_input in watch_objs(
                settings=settings,
                resource=resource,
                namespace=namespace,
                since=version,
            ):
                if raw_input['type'] == 'ERROR':
                    status = raw_input['object']
                    if status.get('code') == 410:
                        logger.debug(f"The version {version} of {resource} has expired; re-listing.")
                        return
                    raise WatchingError(f"Error in the watch-stream: {status}")

                if raw_input['type'] not in EVENT_TYPES:
                    logger.warning(f"Ignoring an unsupported event type: {raw_input!r}")
                    continue

                body = cast(bodies.RawBody, raw_input['object'])
                version = body.get('metadata', {}).get('resourceVersion', version)
                yield cast(bodies.RawEvent, raw_input)

        except CONNECTION_ERRORS as e:
            logger.debug(f"Watching {resource} is disconnected and will be re-listed: {e!r}")
            return


async def watch_objs(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        since: str | None = None,
) -> AsyncIterator[bodies.RawInput]:
    """
    Yield the raw events of one watch-request until the server closes it.
    """
    params = {'watch': 'true'}
    if since is not None:
        params['resourceVersion'] = since
    if settings.watching.server_timeout is not None:
        params['timeoutSeconds'] = str(settings.watching.server_timeout)

    connect_timeout = settings.watching.connect_timeout
    if connect_timeout is None:
        connect_timeout = settings.networking.connect_timeout
    timeout = aiohttp.ClientTimeout(total=settings.watching.client_timeout,
                                    sock_connect=connect_timeout)

    async for raw_input in api.stream(
        url=resource.get_url(namespace=namespace, params=params),
        settings=settings,
        timeout=timeout,
        logger=logger,
    ):
        yield raw_input
