import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from bundleinject._cogs.clients import auth
from bundleinject._cogs.structs.credentials import ConnectionInfo
from bundleinject._core.engines.injection import Cleaner, Injector
from bundleinject._core.intents.sources import StaticSource
from bundleinject._core.reactor.running import make_controllers, operator, run, spawn_tasks

LABEL = 'trust-manager.io/inject-bundle'
ANNOTATION = 'trust.cert-manager.io/hash'


@pytest.fixture()
def source():
    return StaticSource(b'bundle')


@pytest.fixture()
async def context():
    context = auth.APIContext(ConnectionInfo(server='https://fake-host'))
    try:
        yield context
    finally:
        await context.close()


def test_controllers_are_composed_with_their_filters(settings, source, merger):
    injector, cleaner = make_controllers(settings=settings, source=source, merger=merger)

    assert injector.name == 'configmap-injector'
    assert isinstance(injector.reconciler, Injector)
    assert injector.reconciler.merger is merger
    assert injector.reconciler.source is source
    assert injector.filter({'metadata': {'labels': {LABEL: ''}}})
    assert not injector.filter({'metadata': {'annotations': {ANNOTATION: 'x'}}})

    assert cleaner.name == 'configmap-injector-cleaner'
    assert isinstance(cleaner.reconciler, Cleaner)
    assert cleaner.reconciler.merger is merger
    assert cleaner.filter({'metadata': {'annotations': {ANNOTATION: 'x'}}})
    assert not cleaner.filter({'metadata': {'labels': {LABEL: ''}, 'annotations': {ANNOTATION: 'x'}}})
    assert not cleaner.filter({'metadata': {}})


def test_controllers_are_named_by_settings(settings, source, merger):
    settings.injection.injector_name = 'inj'
    settings.injection.cleaner_name = 'cln'
    injector, cleaner = make_controllers(settings=settings, source=source, merger=merger)
    assert injector.name == 'inj'
    assert cleaner.name == 'cln'


def test_controllers_use_the_real_apply_by_default(mocker, settings, source):
    make_merger = mocker.patch('bundleinject._cogs.clients.patching.make_merger')
    injector, cleaner = make_controllers(settings=settings, source=source)
    assert make_merger.call_count == 1
    assert injector.reconciler.merger is make_merger.return_value
    assert cleaner.reconciler.merger is make_merger.return_value


@pytest.mark.parametrize('kwargs', [
    pytest.param(dict(), id='neither'),
    pytest.param(dict(clusterwide=True, namespaces=['ns1']), id='both'),
])
async def test_spawning_requires_exactly_one_scope(settings, source, merger, kwargs):
    with pytest.raises(TypeError):
        await spawn_tasks(source=source, settings=settings, merger=merger, **kwargs)


@pytest.mark.parametrize('kwargs, expected', [
    pytest.param(dict(clusterwide=True), {
        'watcher of configmap-injector cluster-wide',
        'watcher of configmap-injector-cleaner cluster-wide',
    }, id='clusterwide'),
    pytest.param(dict(namespaces=['ns1', 'ns2']), {
        "watcher of configmap-injector in 'ns1'",
        "watcher of configmap-injector in 'ns2'",
        "watcher of configmap-injector-cleaner in 'ns1'",
        "watcher of configmap-injector-cleaner in 'ns2'",
    }, id='namespaced'),
])
async def test_spawned_tasks(settings, source, merger, context, kwargs, expected):
    stop_flag = asyncio.Event()
    tasks = await spawn_tasks(source=source, settings=settings, merger=merger,
                              stop_flag=stop_flag, context=context, **kwargs)
    try:
        names = {task.get_name() for task in tasks}
        assert names == expected | {'stop-flag checker'}
        assert auth.context_var.get() is context
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.wait(tasks)


async def test_operator_exits_on_the_stop_flag(settings, source, merger, context, caplog):
    caplog.set_level(logging.DEBUG)
    stop_flag = asyncio.Event()
    stop_flag.set()
    await asyncio.wait_for(operator(
        source=source,
        settings=settings,
        merger=merger,
        clusterwide=True,
        stop_flag=stop_flag,
        context=context,
    ), timeout=2.0)
    assert "Stop-flag is raised. Operator is stopping." in caplog.text
    assert not context.session.closed  # not ours to close


async def test_operator_logs_in_when_no_context(mocker, settings, source, merger):
    login = mocker.patch('bundleinject._core.intents.piggybacking.login',
                         return_value=ConnectionInfo(server='https://fake-host'))
    close = mocker.spy(auth.APIContext, 'close')
    stop_flag = asyncio.Event()
    stop_flag.set()
    await asyncio.wait_for(operator(
        source=source,
        settings=settings,
        merger=merger,
        namespaces=['ns1'],
        stop_flag=stop_flag,
    ), timeout=2.0)
    assert login.call_count == 1
    assert close.call_count == 1


def test_run_executes_the_operator_synchronously(mocker, source):
    operator_mock = mocker.patch('bundleinject._core.reactor.running.operator', AsyncMock())
    run(source=source, clusterwide=True)
    assert operator_mock.await_count == 1
    assert operator_mock.call_args.kwargs['source'] is source
    assert operator_mock.call_args.kwargs['clusterwide'] is True
