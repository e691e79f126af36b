"""
Assembling the operator from its controllers, and running it until stopped.

The controllers are composed explicitly: the injector and the cleaner, each
with its own filter and the shared merge primitive. Every controller gets
a watcher task per served namespace (or one cluster-wide). These watchers,
plus a task waiting for the OS signals or the stop-flag, are the root tasks:
the operator runs until any of them exits, and then stops all the others.
"""
import asyncio
import logging
import signal
import threading
from collections.abc import Collection

from bundleinject._cogs.aiokits import aiotasks
from bundleinject._cogs.clients import auth, patching
from bundleinject._cogs.configs import configuration
from bundleinject._cogs.structs import references
from bundleinject._core.engines import injection
from bundleinject._core.intents import filters, piggybacking, sources
from bundleinject._core.reactor import queueing

logger = logging.getLogger(__name__)


def make_controllers(
        *,
        settings: configuration.OperatorSettings,
        source: sources.BundleSource,
        merger: patching.Merger | None = None,
) -> list[queueing.Controller]:
    """ The injector and the cleaner, with their filters and a shared merger. """
    merger = merger if merger is not None else patching.make_merger(settings=settings)
    injector = injection.Injector(settings=settings, merger=merger, source=source)
    cleaner = injection.Cleaner(settings=settings, merger=merger)
    return [
        queueing.Controller(
            name=injector.name,
            filter=filters.injector_filter(settings),
            reconciler=injector,
        ),
        queueing.Controller(
            name=cleaner.name,
            filter=filters.cleaner_filter(settings),
            reconciler=cleaner,
        ),
    ]


def run(
        *,
        source: sources.BundleSource,
        settings: configuration.OperatorSettings | None = None,
        clusterwide: bool = False,
        namespaces: Collection[str] = (),
        stop_flag: asyncio.Event | None = None,
        merger: patching.Merger | None = None,
        context: auth.APIContext | None = None,
) -> None:
    """
    Run the operator in a new event loop until it is stopped. See :func:`operator`.
    """
    try:
        asyncio.run(operator(
            source=source,
            settings=settings,
            clusterwide=clusterwide,
            namespaces=namespaces,
            stop_flag=stop_flag,
            merger=merger,
            context=context,
        ))
    except asyncio.CancelledError:
        pass


async def operator(
        *,
        source: sources.BundleSource,
        settings: configuration.OperatorSettings | None = None,
        clusterwide: bool = False,
        namespaces: Collection[str] = (),
        stop_flag: asyncio.Event | None = None,
        merger: patching.Merger | None = None,
        context: auth.APIContext | None = None,
) -> None:
    """
    Run the operator in the current event loop until it is stopped.

    Without an explicit API context, the credentials are taken from
    the environment, and the context is closed when the operator exits.
    An explicitly passed context is left open for its owner.
    """
    own_context = context is None
    if context is None:
        context = auth.APIContext(piggybacking.login(logger=logger))
    try:
        root_tasks = await spawn_tasks(
            source=source,
            settings=settings,
            clusterwide=clusterwide,
            namespaces=namespaces,
            stop_flag=stop_flag,
            merger=merger,
            context=context,
        )
        await run_tasks(root_tasks)
    finally:
        if own_context:
            await context.close()


async def spawn_tasks(
        *,
        source: sources.BundleSource,
        settings: configuration.OperatorSettings | None = None,
        clusterwide: bool = False,
        namespaces: Collection[str] = (),
        stop_flag: asyncio.Event | None = None,
        merger: patching.Merger | None = None,
        context: auth.APIContext | None = None,
) -> list[aiotasks.Task]:
    """
    Start the root tasks of the operator, but do not wait for them.

    Both the cluster-wide mode and the list of namespaces cannot be used at once;
    one of them is required.
    """
    if clusterwide and namespaces:
        raise TypeError("The operator can be either cluster-wide or namespaced, not both.")
    if not clusterwide and not namespaces:
        raise TypeError("Either namespaces or the cluster-wide mode must be specified.")

    settings = settings if settings is not None else configuration.OperatorSettings()

    # The tasks started below inherit the context; the API calls take it from there.
    if context is not None:
        auth.context_var.set(context)

    signal_flag: asyncio.Future[signal.Signals] = asyncio.Future()
    tasks: list[aiotasks.Task] = [
        asyncio.create_task(_stop_flag_checker(signal_flag=signal_flag, stop_flag=stop_flag),
                            name="stop-flag checker"),
    ]

    scopes: list[references.Namespace] = (
        [None] if clusterwide else [references.NamespaceName(ns) for ns in namespaces]
    )
    for controller in make_controllers(settings=settings, source=source, merger=merger):
        for namespace in scopes:
            scope = "cluster-wide" if namespace is None else f"in {namespace!r}"
            name = f"watcher of {controller.name} {scope}"
            tasks.append(aiotasks.create_guarded_task(
                queueing.watcher(namespace=namespace, settings=settings, controller=controller),
                name=name, logger=logger))

    # Signals can be handled only in the main thread, and not on Windows.
    if threading.current_thread() is not threading.main_thread():
        logger.warning("OS signals are ignored: running not in the main thread.")
    else:
        loop = asyncio.get_running_loop()
        try:
            for signum in (signal.SIGINT, signal.SIGTERM):
                loop.add_signal_handler(signum, _set_once, signal_flag, signum)
        except NotImplementedError:
            logger.warning("OS signals are ignored: the event loop does not support them.")

    # The guards must start before any cancellation, so that the watchers' coroutines are awaited.
    await asyncio.sleep(0)
    return tasks


async def run_tasks(root_tasks: Collection[aiotasks.Task]) -> None:
    """
    Wait until any root task exits, then stop the rest and re-raise the failures.

    If the operator itself is cancelled, the root tasks are stopped too.
    """
    try:
        done, pending = await asyncio.wait(root_tasks, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        await aiotasks.stop(root_tasks, title="root", logger=logger)
        raise

    stopped = await aiotasks.stop(pending, title="root", logger=logger)
    aiotasks.reraise(done | stopped)


def _set_once(future: asyncio.Future[signal.Signals], signum: signal.Signals) -> None:
    if not future.done():
        future.set_result(signum)


async def _stop_flag_checker(
        *,
        signal_flag: asyncio.Future[signal.Signals],
        stop_flag: asyncio.Event | None,
) -> None:
    """
    A root task that exits when an OS signal is received or the stop-flag is set.
    """
    waiters: list[asyncio.Future[object]] = [signal_flag]
    if stop_flag is not None:
        waiters.append(asyncio.ensure_future(stop_flag.wait()))
    try:
        done, _ = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        return  # the operator stops for another reason
    finally:
        for waiter in waiters[1:]:
            waiter.cancel()

    if signal_flag in done:
        logger.info(f"Signal {signal_flag.result().name} is received. Operator is stopping.")
    else:
        logger.info("Stop-flag is raised. Operator is stopping.")
