"""
Building the desired state of the objects: the projection of the bundle.

Both builders are pure: they depend only on their arguments, never on the
live state of the objects or on any ambient state. They claim only the fields
owned by this project (the data key and the hash annotation) and nothing else.
"""
import hashlib

from bundleinject._cogs.configs import configuration
from bundleinject._cogs.structs import patches, references
from bundleinject._core.actions import execution


def hash_content(content: bytes) -> str:
    """ A content-addressed digest: SHA-256 in lower-case hex (64 chars). """
    return hashlib.sha256(content).hexdigest()


def _check_ref(ref: references.ObjectRef) -> None:
    if not ref.namespace or not ref.name:
        raise execution.PermanentError(f"Incomplete object identity: {ref!r}")


def build_inject_patch(
        ref: references.ObjectRef,
        content: bytes,
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource = references.CONFIGMAPS,
) -> patches.ApplyPatch:
    _check_ref(ref)
    try:
        text = content.decode('utf-8')
    except UnicodeDecodeError as e:
        raise execution.PermanentError(f"The bundle content is not a UTF-8 text: {e}") from e
    return patches.ApplyPatch(
        resource=resource,
        ref=ref,
        annotations={settings.injection.hash_annotation: hash_content(content)},
        data={settings.injection.data_key: text},
    )


def build_retract_patch(
        ref: references.ObjectRef,
        *,
        resource: references.Resource = references.CONFIGMAPS,
) -> patches.ApplyPatch:
    """
    An empty claim: everything previously owned is released by the server.
    """
    _check_ref(ref)
    return patches.ApplyPatch(resource=resource, ref=ref)
