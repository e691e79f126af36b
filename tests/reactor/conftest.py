import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from bundleinject._core.actions.execution import Result
from bundleinject._core.intents.filters import has_label
from bundleinject._core.reactor.queueing import Controller, watcher

LABEL = 'trust-manager.io/inject-bundle'


@pytest.fixture()
def settings(settings):
    settings.queueing.idle_timeout = 0.2
    settings.queueing.exit_timeout = 0.2
    settings.reconciling.timeout = 1.0
    settings.reconciling.error_delays = (0.05,)
    return settings


@pytest.fixture()
def events():
    """ A feed of raw watch-events, as if streamed from the API. """
    return asyncio.Queue()


@pytest.fixture(autouse=True)
def fake_watch(mocker, events):
    """ Replace the real watching with the never-ending stream from the feed. """
    async def infinite_watch(*, settings, resource, namespace):
        while True:
            yield await events.get()
    return mocker.patch('bundleinject._cogs.clients.watching.infinite_watch', new=infinite_watch)


@pytest.fixture()
def reconciler():
    """ A mock for the reconciler -- to be checked if & how it has been called. """
    mock = Mock()
    mock.reconcile = AsyncMock(return_value=Result())
    return mock


@pytest.fixture()
def controller(reconciler):
    return Controller(name='test-controller', filter=has_label(LABEL), reconciler=reconciler)


@pytest.fixture()
async def watcher_in_background(settings, controller):

    # Spawn a watcher in the background.
    coro = watcher(
        namespace=None,
        settings=settings,
        controller=controller,
    )
    task = asyncio.create_task(coro)

    try:
        # Go for a test.
        yield task
    finally:
        # Terminate the watcher to cleanup the loop.
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass  # cancellations are expected at this point
        except RuntimeError:
            pass  # escalated worker errors are checked in the tests

