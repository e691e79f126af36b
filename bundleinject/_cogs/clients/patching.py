"""
Server-side applying of the desired state to the objects.

The apply-patches are merged by the API server against the live state,
with the ownership of every field tracked per field manager. This makes
the patching race-free against other writers of the same object:

* The fields claimed in the patch are set and owned by our field manager.
* The fields previously owned by our field manager but absent from the patch
  are released and removed (unless someone else also owns them).
* The fields owned by other managers are never touched.

With ``force=True``, the conflicts (other managers owning our fields
with different values) are resolved in our favour instead of HTTP 409.
"""
import functools
from typing import Protocol

from bundleinject._cogs.clients import api, errors
from bundleinject._cogs.configs import configuration
from bundleinject._cogs.helpers import typedefs
from bundleinject._cogs.structs import bodies, patches, references

APPLY_PATCH_CONTENT_TYPE = 'application/apply-patch+yaml'


class InvalidPatchError(Exception):
    """ The patch or its field manager cannot be applied to the object at all. """


class Merger(Protocol):
    """
    A declarative merge primitive as used by the reconcilers.

    Returns the applied body, or ``None`` if the object does not exist.
    Raises :class:`InvalidPatchError` if the arguments are unusable,
    and the API errors for all other failures.
    """
    async def __call__(
            self,
            *,
            ref: references.ObjectRef,
            patch: patches.ApplyPatch,
            field_manager: str,
            force: bool,
            logger: typedefs.Logger,
    ) -> bodies.RawBody | None: ...


async def apply_obj(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        ref: references.ObjectRef,
        patch: patches.ApplyPatch,
        field_manager: str,
        force: bool,
        logger: typedefs.Logger,
) -> bodies.RawBody | None:
    """
    Apply the desired partial state to an object of specific kind.

    The whole patch goes in one single request: it is either applied fully
    or not applied at all; there are no partially applied states.

    Returns the applied body as reported by the server.

    Returns ``None`` on HTTP 404, e.g. if the namespace is already gone.

    Note that the server-side apply is an upsert: for an absent object in
    an existing namespace, the server creates it from the patch (HTTP 201)
    instead of failing. There is no existence precondition in the request.
    Not applying to the deleted objects is the dispatcher's job: it drops
    the objects from reconciling once their deletion is seen. An object
    deleted while its request is already in flight can still be re-created.
    """
    if not field_manager:
        raise InvalidPatchError("The field manager is required for applying.")
    if patch.ref != ref:
        raise InvalidPatchError(f"The patch is built for {patch.ref}, but is applied to {ref}.")

    params = {'fieldManager': field_manager}
    if force:
        params['force'] = 'true'

    # JSON is a subset of YAML, so the apply-patch can be sent as a usual JSON payload.
    try:
        return await api.patch(
            url=resource.get_url(namespace=ref.namespace, name=ref.name, params=params),
            headers={'Content-Type': APPLY_PATCH_CONTENT_TYPE},
            payload=dict(patch),
            settings=settings,
            logger=logger,
        )
    except errors.APINotFoundError:
        return None


def make_merger(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource = references.CONFIGMAPS,
) -> Merger:
    return functools.partial(apply_obj, settings=settings, resource=resource)
