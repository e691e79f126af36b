"""
Dispatching of the watch-events to the per-object reconciliations.

Each controller has one watcher per served namespace (or one cluster-wide).
The watcher evaluates the controller's filter against every event's body
and wakes up the worker of that object, starting it if there is none yet.

The reconciliations are level-triggered: a worker gets only the object's
identity, never the event. All the events that arrive while a reconciliation
is in flight are coalesced into one more reconciliation after it. So, there is
at most one reconciliation per object per controller at any time, while
different objects are reconciled in parallel by their own workers.

The workers retry the temporary failures with a backoff and requeue
the successes if asked to, but only while the object stays in scope:
a deletion or a filtered-out body seen in the stream cancels them.
This matters for the server-side apply, which would re-create a deleted object.

A worker exits after idling for some time, and is started again on the next
event of its object. An exiting watcher gives its workers some time to finish
their ongoing reconciliations and then cancels them.
"""
import asyncio
import contextlib
import dataclasses
import logging
from collections.abc import Iterable, Iterator, MutableMapping

from bundleinject._cogs.aiokits import aiotasks
from bundleinject._cogs.clients import watching
from bundleinject._cogs.configs import configuration
from bundleinject._cogs.structs import bodies, references
from bundleinject._core.actions import execution, loggers
from bundleinject._core.intents import filters

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Controller:
    """
    A filter and a reconciler under one name, composed explicitly by the operator.
    """
    name: str
    filter: filters.Predicate
    reconciler: execution.Reconciler
    resource: references.Resource = references.CONFIGMAPS


@dataclasses.dataclass
class Stream:
    """ The requests from the watcher to one object's worker, and the worker's task. """
    pending: asyncio.Event = dataclasses.field(default_factory=asyncio.Event)
    relevant: bool = True  # as of the last seen body of the object
    stopping: bool = False  # the watcher is exiting
    task: aiotasks.Task | None = None


Streams = MutableMapping[references.ObjectRef, Stream]


def iter_delays(delays: Iterable[float]) -> Iterator[float]:
    """ Yield the configured backoff delays, then the last one forever (or 0 if none). """
    last: float = 0
    for last in delays:
        yield last
    while True:
        yield last


async def watcher(
        *,
        namespace: references.Namespace,
        settings: configuration.OperatorSettings,
        controller: Controller,
) -> None:
    """
    Watch the objects of one namespace (or all) and feed them to their workers.

    The watcher itself never calls the reconcilers and never waits for them.
    It runs until cancelled or until the watch-stream fails. If any worker
    fails unrecoverably, the watcher stops and escalates the error, so that
    the whole operator stops.
    """
    streams: Streams = {}
    failures: list[BaseException] = []
    watcher_task = asyncio.current_task()
    limit = settings.queueing.worker_limit
    limiter = asyncio.Semaphore(limit) if limit else None

    def worker_done(task: aiotasks.Task) -> None:
        if task.cancelled() or task.exception() is None:
            return
        if not failures and watcher_task is not None:
            watcher_task.cancel()
        failures.append(task.exception())

    try:
        async for raw_event in watching.infinite_watch(
            settings=settings,
            resource=controller.resource,
            namespace=namespace,
        ):
            if isinstance(raw_event, watching.Bookmark):
                continue

            body = raw_event['object']
            ref = bodies.ref_of(body)
            if not ref.namespace or not ref.name:
                logger.warning(f"Ignoring an event for an object with no identity: {raw_event!r}")
                continue

            # Only mark the known objects as out of scope: their pending retries are dropped.
            # No workers are started for them, so nothing is applied to the deleted objects.
            if raw_event['type'] == 'DELETED' or not controller.filter(body):
                if ref in streams:
                    streams[ref].relevant = False
                continue

            # No awaiting between the lookup and the wake-up: an idling worker must not exit
            # in the meantime with the stream still registered.
            stream = streams.get(ref)
            if stream is None:
                stream = streams[ref] = Stream()
                stream.task = asyncio.create_task(
                    worker(
                        stream=stream,
                        streams=streams,
                        key=ref,
                        controller=controller,
                        settings=settings,
                        limiter=limiter,
                    ),
                    name=f'worker of {controller.name} for {ref}',
                )
                stream.task.add_done_callback(worker_done)
            stream.relevant = True
            stream.pending.set()

    except asyncio.CancelledError:
        if not failures:
            raise
        raise RuntimeError("Reconciliation dispatching has failed with an unrecoverable error. "
                           "The operator will stop to prevent damage.") from failures[0]

    finally:
        # Even if cancelled again while waiting, the workers are not left running unattended.
        shutdown = asyncio.create_task(_stop_workers(streams=streams, settings=settings))
        while not shutdown.done():
            with contextlib.suppress(asyncio.CancelledError):
                await asyncio.shield(shutdown)


async def worker(
        *,
        stream: Stream,
        streams: Streams,
        key: references.ObjectRef,
        controller: Controller,
        settings: configuration.OperatorSettings,
        limiter: asyncio.Semaphore | None = None,
) -> None:
    """
    Reconcile one object for one controller, once per batch of requests.

    After a temporary failure, the next attempt is made after a backoff delay,
    or immediately if a new request arrives earlier. After a permanent or
    unexpected failure, nothing happens until a new request. The backoff
    starts from the first delay again after every success.
    """
    object_logger = loggers.ObjectLogger(ref=key, resource=controller.resource,
                                         controller=controller.name)
    delays = iter_delays(settings.reconciling.error_delays)
    try:
        while not stream.stopping:
            try:
                await asyncio.wait_for(stream.pending.wait(), timeout=settings.queueing.idle_timeout)
            except asyncio.TimeoutError:
                if not stream.pending.is_set():
                    break  # idle; no awaiting from here until the stream is unregistered.
            if stream.stopping:
                break

            stream.pending.clear()
            if not stream.relevant:
                continue

            async with limiter or contextlib.nullcontext():
                outcome = await execution.execute(controller.reconciler, key,
                                                  settings=settings, logger=object_logger)

            if outcome.exception is None:
                delays = iter_delays(settings.reconciling.error_delays)
            if outcome.final:
                continue

            delay = outcome.delay if outcome.delay is not None else next(delays)
            if outcome.exception is not None:
                object_logger.warning(f"Retrying the reconciliation in {delay} seconds.")
            try:
                await asyncio.wait_for(stream.pending.wait(), timeout=delay)
            except asyncio.TimeoutError:
                if stream.relevant and not stream.stopping:
                    stream.pending.set()
                else:
                    object_logger.debug("The object is out of scope; retrying is cancelled.")

    except Exception:
        # Several workers can fail at once, but only the first failure is escalated.
        logger.exception(f"Reconciliation dispatching has failed unrecoverably for {key}.")
        raise

    finally:
        if streams.get(key) is stream:
            del streams[key]


async def _stop_workers(
        *,
        streams: Streams,
        settings: configuration.OperatorSettings,
) -> None:
    """
    Wake up all workers to exit, and cancel those still running after the timeout.

    The ongoing reconciliations are not interrupted unless the timeout is reached.
    """
    tasks = {stream.task for stream in streams.values() if stream.task is not None}
    for stream in streams.values():
        stream.stopping = True
        stream.pending.set()
    if not tasks:
        return

    _, unfinished = await asyncio.wait(tasks, timeout=settings.queueing.exit_timeout)
    if unfinished:
        logger.warning(f"Unfinished reconciliations are cancelled for {list(streams)!r}.")
        await aiotasks.stop(unfinished, title="worker", logger=logger)
