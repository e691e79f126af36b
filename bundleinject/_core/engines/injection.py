"""
The two controllers of the bundle projection: the injector and the cleaner.

Both are level-triggered: they get only the identity of an object, never its
body, and they never read the object before patching. Instead, they submit
their full desired state (a partial object of their own fields only) every
time, and the server-side apply merges it against the live state.
This makes redundant and out-of-order reconciliations safe: the end state
depends only on the last applied desired state, not on the history.

The injector claims the data key and the hash annotation; the cleaner claims
nothing, so that the server releases & removes everything previously owned
by our field manager, and leaves the fields of other managers untouched.

Neither controller retries anything. The errors are classified and raised
to the dispatcher: temporary ones are retried there, permanent ones are not.
"""
import asyncio
import json

import aiohttp

from bundleinject._cogs.clients import errors, patching
from bundleinject._cogs.configs import configuration
from bundleinject._cogs.helpers import typedefs
from bundleinject._cogs.structs import patches, references
from bundleinject._core.actions import execution, projection
from bundleinject._core.intents import sources


class _ApplyingController:
    """ The common part of both controllers: submitting a patch. """

    def __init__(
            self,
            *,
            settings: configuration.OperatorSettings,
            merger: patching.Merger,
    ) -> None:
        super().__init__()
        self.settings = settings
        self.merger = merger

    def __repr__(self) -> str:
        return f'<{self.__class__.__name__}: {self.name}>'

    @property
    def name(self) -> str:
        raise NotImplementedError

    async def _apply(
            self,
            ref: references.ObjectRef,
            patch: patches.ApplyPatch,
            *,
            logger: typedefs.Logger,
    ) -> bool:
        field_manager = self.settings.injection.field_manager
        try:
            applied = await self.merger(
                ref=ref,
                patch=patch,
                field_manager=field_manager,
                force=True,
                logger=logger,
            )
        except patching.InvalidPatchError as e:
            raise execution.PermanentError(f"The patch is rejected before submitting: {e}") from e
        except errors.APITooManyRequestsError as e:
            raise execution.TemporaryError(f"The API is throttling: {e}", delay=e.retry_after) from e
        except (errors.APIUnauthorizedError, errors.APIForbiddenError) as e:
            raise execution.TemporaryError(f"The API denies the patch: {e}") from e
        except errors.APIError as e:
            raise execution.TemporaryError(f"The API has failed to apply the patch: {e}") from e
        except (aiohttp.ClientConnectionError, aiohttp.ClientPayloadError) as e:
            raise execution.TemporaryError(f"The API is not reachable: {e!r}") from e
        except (aiohttp.ContentTypeError, json.JSONDecodeError) as e:
            raise execution.TemporaryError(f"The API response is unreadable: {e!r}") from e
        except asyncio.TimeoutError as e:
            raise execution.TemporaryError(f"The API request has timed out: {e!r}") from e

        if applied is None:
            logger.info("The object is gone; nothing to converge.")
            return False
        logger.debug(f"Applied as {field_manager!r}: {dict(patch)!r}")
        return True


class Injector(_ApplyingController):
    """
    Projects the bundle into the objects requesting it with the inject-label.
    """

    def __init__(
            self,
            *,
            settings: configuration.OperatorSettings,
            merger: patching.Merger,
            source: sources.BundleSource,
    ) -> None:
        super().__init__(settings=settings, merger=merger)
        self.source = source

    @property
    def name(self) -> str:
        return self.settings.injection.injector_name

    async def reconcile(
            self,
            ref: references.ObjectRef,
            *,
            logger: typedefs.Logger,
    ) -> execution.Result:
        try:
            content = await self.source.resolve(ref, logger=logger)
        except sources.SourceError as e:
            raise execution.TemporaryError(f"Cannot resolve the bundle: {e}") from e

        patch = projection.build_inject_patch(ref, content, settings=self.settings)
        if await self._apply(ref, patch, logger=logger):
            digest = patch.annotations[self.settings.injection.hash_annotation]
            logger.info(f"The bundle is injected with hash {digest}.")
        return execution.Result()


class Cleaner(_ApplyingController):
    """
    Retracts the bundle from the previously injected objects not requesting it anymore.
    """

    @property
    def name(self) -> str:
        return self.settings.injection.cleaner_name

    async def reconcile(
            self,
            ref: references.ObjectRef,
            *,
            logger: typedefs.Logger,
    ) -> execution.Result:
        patch = projection.build_retract_patch(ref)
        if await self._apply(ref, patch, logger=logger):
            logger.info("The bundle is retracted.")
        return execution.Result()
