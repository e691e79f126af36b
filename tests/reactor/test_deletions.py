"""
Deleted objects must not be re-created by the injection.

The server-side apply creates the absent objects, so the reconcilers themselves
cannot tell "deleted" from "not yet created". The dispatcher must not invoke
them once the deletion is seen in the watch-stream: neither for the pending
events nor for the retries.
"""
import asyncio

import pytest

from bundleinject._cogs.clients import errors
from bundleinject._cogs.structs.references import ObjectRef
from bundleinject._core.engines.injection import Injector
from bundleinject._core.intents.filters import injector_filter
from bundleinject._core.intents.sources import StaticSource
from bundleinject._core.reactor.queueing import Controller, watcher

LABEL = 'trust-manager.io/inject-bundle'
REF = ObjectRef('ns1', 'cm-1')


def make_event(type_, body):
    return {'type': type_, 'object': body}


@pytest.fixture()
def attempts():
    return []


@pytest.fixture()
def flaky_merger(apiserver, attempts):
    """ Fails the first apply as the API would do when overloaded, then applies normally. """
    async def merger(**kwargs):
        attempts.append(kwargs['ref'])
        if len(attempts) == 1:
            raise errors.APIServerError(None, status=503)
        return await apiserver.apply(**kwargs)
    return merger


@pytest.fixture()
def injecting_controller(settings, flaky_merger):
    injector = Injector(settings=settings, merger=flaky_merger, source=StaticSource(b'bundle'))
    return Controller(name=injector.name, filter=injector_filter(settings), reconciler=injector)


@pytest.fixture()
async def injecting_watcher(settings, injecting_controller):
    task = asyncio.create_task(watcher(
        namespace=None,
        settings=settings,
        controller=injecting_controller,
    ))
    try:
        yield task
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


async def test_deletion_seen_before_reconciling_suppresses_it(
        injecting_watcher, events, apiserver, attempts):
    body = apiserver.create(REF, labels={LABEL: 'foo'})
    apiserver.delete(REF)

    # Both events are already queued, so the watcher sees them before the worker starts.
    await events.put(make_event('ADDED', body))
    await events.put(make_event('DELETED', body))
    await asyncio.sleep(0.2)

    assert attempts == []
    assert REF not in apiserver.objects


async def test_deletion_seen_during_backoff_cancels_the_retry(
        settings, injecting_watcher, events, apiserver, attempts):
    settings.reconciling.error_delays = (0.3,)
    body = apiserver.create(REF, labels={LABEL: 'foo'})
    await events.put(make_event('ADDED', body))
    for _ in range(100):
        if attempts:
            break
        await asyncio.sleep(0.01)
    assert len(attempts) == 1  # failed, and is now waiting for a retry.

    apiserver.delete(REF)
    await events.put(make_event('DELETED', body))
    await asyncio.sleep(0.5)

    assert len(attempts) == 1
    assert REF not in apiserver.objects


async def test_retry_proceeds_if_the_object_is_still_there(
        settings, injecting_watcher, events, apiserver, attempts):
    settings.reconciling.error_delays = (0.1,)
    body = apiserver.create(REF, labels={LABEL: 'foo'})
    await events.put(make_event('ADDED', body))
    await asyncio.sleep(0.3)

    assert len(attempts) == 2
    assert apiserver.get(REF)['data'] == {'ca.crt': 'bundle'}
