"""
Execution of a single reconciliation attempt, and the errors of reconcilers.

The reconcilers never retry anything themselves: every reconciliation
is a single request-response attempt. The outcome of the attempt tells
the dispatcher what to do next: nothing, retry later, or requeue later.
"""
import asyncio
import dataclasses
from typing import Protocol

from bundleinject._cogs.configs import configuration
from bundleinject._cogs.helpers import typedefs
from bundleinject._cogs.structs import references


class PermanentError(Exception):
    """ A fatal error of a reconciliation attempt, the retries are useless. """


class TemporaryError(Exception):
    """ A potentially recoverable error, should be retried by the dispatcher. """
    def __init__(
            self,
            __msg: str | None = None,
            delay: float | None = None,
    ) -> None:
        super().__init__(__msg)
        self.delay = delay


class ReconcileTimeoutError(TemporaryError):
    """ An error for the reconciliation's deadline (if set). """


@dataclasses.dataclass(frozen=True)
class Result:
    """ A successful result of a reconciliation; optionally, a request to repeat it. """
    requeue_after: float | None = None


class Reconciler(Protocol):
    async def reconcile(
            self,
            ref: references.ObjectRef,
            *,
            logger: typedefs.Logger,
    ) -> Result: ...


@dataclasses.dataclass(frozen=True)
class Outcome:
    """
    An in-memory outcome of one single reconciliation attempt.

    A final outcome needs no retries: either it has succeeded,
    or it has failed permanently. A non-final outcome must be retried.
    The delay is either the requested re-queueing of a success,
    or a suggested delay of a temporary error (``None`` for the defaults).
    """
    final: bool
    delay: float | None = None
    exception: Exception | None = None


async def execute(
        reconciler: Reconciler,
        ref: references.ObjectRef,
        *,
        settings: configuration.OperatorSettings,
        logger: typedefs.Logger,
) -> Outcome:
    """
    Execute one reconciliation attempt under a deadline, and interpret the results.

    The cancellation of the caller is propagated as is: the attempt is aborted
    wherever it is now (usually in the I/O), and nothing is reported.
    """
    timeout = settings.reconciling.timeout
    try:
        try:
            result = await asyncio.wait_for(reconciler.reconcile(ref, logger=logger), timeout)
        except asyncio.TimeoutError as e:
            raise ReconcileTimeoutError(f"Reconciliation has timed out after {timeout}s.") from e

    except TemporaryError as e:
        logger.error(f"Reconciliation has failed temporarily: {str(e) or repr(e)}")
        return Outcome(final=False, delay=e.delay, exception=e)

    except PermanentError as e:
        logger.error(f"Reconciliation has failed permanently: {str(e) or repr(e)}")
        return Outcome(final=True, exception=e)

    except Exception as e:
        logger.exception(f"Reconciliation has failed with an unexpected error: {e!r}")
        return Outcome(final=True, exception=e)

    else:
        if result.requeue_after is not None:
            logger.debug(f"Reconciliation has succeeded; requeued in {result.requeue_after}s.")
            return Outcome(final=False, delay=result.requeue_after)
        logger.debug("Reconciliation has succeeded.")
        return Outcome(final=True)
