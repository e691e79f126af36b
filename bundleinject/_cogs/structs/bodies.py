"""
The JSON documents of the API, typed only as deep as they are read.

The bodies never leave the watchers: they are read to filter the events
and to extract the objects' identities, and are never modified.
"""
from collections.abc import Mapping
from typing import Any

from typing_extensions import Literal, TypedDict

from bundleinject._cogs.structs import references

# ``None`` marks the objects of the initial listing.
RawEventType = Literal[None, 'ADDED', 'MODIFIED', 'DELETED']


class RawBody(TypedDict, total=False):
    apiVersion: str
    kind: str
    metadata: Mapping[str, Any]
    data: Mapping[str, str]


class RawEvent(TypedDict):
    type: RawEventType
    object: RawBody


# A watch-stream's line before its ``ERROR`` entries are sorted out.
RawInput = Mapping[str, Any]


def labels_of(body: Mapping[str, Any]) -> Mapping[str, str]:
    return (body.get('metadata') or {}).get('labels') or {}


def annotations_of(body: Mapping[str, Any]) -> Mapping[str, str]:
    return (body.get('metadata') or {}).get('annotations') or {}


def ref_of(body: Mapping[str, Any]) -> references.ObjectRef:
    metadata = body.get('metadata') or {}
    return references.ObjectRef(references.NamespaceName(metadata.get('namespace') or ''),
                                metadata.get('name') or '')
