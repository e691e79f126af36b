"""
All the structures needed for Kubernetes server-side applying.

Unlike a JSON merge-patch (RFC 7386), an apply-patch is a declarative partial
object: it contains only the fields its field manager wants to own, and the
absence of a previously owned field means "release & remove" that field.
There are no ``None`` values for deletions: the omission is the deletion.

The patch must always carry the identity of the object (api version, kind,
name, namespace) even if there is nothing else to claim.
"""
from collections.abc import Mapping
from typing import Any, Dict

from bundleinject._cogs.structs import references


class ApplyPatch(Dict[str, Any]):
    """
    A desired-state partial object for one specific object.

    It is built fresh for every reconciliation and is never persisted.
    """

    def __init__(
            self,
            *,
            resource: references.Resource,
            ref: references.ObjectRef,
            annotations: Mapping[str, str] | None = None,
            data: Mapping[str, str] | None = None,
    ) -> None:
        metadata: Dict[str, Any] = {'name': ref.name, 'namespace': ref.namespace}
        if annotations:
            metadata['annotations'] = dict(annotations)
        super().__init__(apiVersion=resource.api_version, kind=resource.kind, metadata=metadata)
        if data:
            self['data'] = dict(data)

    @property
    def ref(self) -> references.ObjectRef:
        return references.ObjectRef(self['metadata']['namespace'], self['metadata']['name'])

    @property
    def annotations(self) -> Mapping[str, str]:
        return self['metadata'].get('annotations', {})

    @property
    def data(self) -> Mapping[str, str]:
        return self.get('data', {})
