"""
The root tasks of the operator: their supervision and their stopping.

Only the real tasks are supported, not arbitrary awaitables: the operator
not only waits for its tasks, but also cancels them on exit.
"""
import asyncio
from collections.abc import Collection, Coroutine, Iterable
from typing import Any

from bundleinject._cogs.helpers import typedefs

Task = asyncio.Task[Any]


async def guard(
        coro: Coroutine[Any, Any, Any],
        name: str,
        *,
        logger: typedefs.Logger,
) -> None:
    """
    Run a root task's coroutine and report how it has ended.

    The root tasks (e.g. the watchers) are expected to run until cancelled.
    If they fail, the failure is logged immediately with the traceback,
    not when (and if) the task's result is retrieved. If they return,
    it is a misbehaviour: the operator stops once any root task is done.
    """
    title = name[:1].upper() + name[1:]
    try:
        await coro
    except asyncio.CancelledError:
        logger.debug(f"{title} is cancelled.")
        raise
    except Exception as e:
        logger.exception(f"{title} has failed: {e}")
        raise
    logger.warning(f"{title} has exited while it was expected to run forever.")


def create_guarded_task(
        coro: Coroutine[Any, Any, Any],
        name: str,
        *,
        logger: typedefs.Logger,
) -> Task:
    """ Start a root task with its outcome reported. See :func:`guard`. """
    return asyncio.create_task(guard(coro, name, logger=logger), name=name)


async def stop(
        tasks: Iterable[Task],
        *,
        title: str,
        logger: typedefs.Logger,
) -> set[Task]:
    """
    Cancel the tasks and wait until all of them are done, whatever the outcome.

    The tasks are not waited if the stopping itself is cancelled.
    """
    stopped = set(tasks)
    if stopped:
        for task in stopped:
            task.cancel()
        await asyncio.wait(stopped)
        logger.debug(f"Stopped {len(stopped)} {title} task(s).")
    return stopped


def reraise(tasks: Collection[Task]) -> None:
    """ Raise the error of the first failed task; the succeeded & cancelled ones are fine. """
    for task in tasks:
        if task.done() and not task.cancelled():
            error = task.exception()
            if error is not None:
                raise error
