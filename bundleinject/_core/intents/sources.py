"""
Sources of the bundle content to be injected.

The content itself is opaque: the injection neither parses nor validates
the certificates in it, and has no fallback content of its own. A failed
resolution is always a temporary error: the source can get fixed later.
"""
import asyncio
import pathlib
from typing import Protocol

import aiohttp

from bundleinject._cogs.clients import errors, fetching
from bundleinject._cogs.configs import configuration
from bundleinject._cogs.helpers import typedefs
from bundleinject._cogs.structs import references


class SourceError(Exception):
    """ Raised when the bundle content cannot be resolved. """


class BundleSource(Protocol):
    async def resolve(
            self,
            ref: references.ObjectRef,
            *,
            logger: typedefs.Logger,
    ) -> bytes: ...


def _ensure_text(content: bytes, origin: str) -> bytes:
    if not content:
        raise SourceError(f"The bundle is empty in {origin}.")
    try:
        content.decode('utf-8')
    except UnicodeDecodeError as e:
        raise SourceError(f"The bundle is not a UTF-8 text in {origin}: {e}") from e
    return content


class StaticSource:
    """ The same content for every object; mostly for embedding and testing. """

    def __init__(self, content: bytes) -> None:
        super().__init__()
        self._content = content

    async def resolve(self, ref: references.ObjectRef, *, logger: typedefs.Logger) -> bytes:
        return _ensure_text(self._content, 'the static source')


class FileSource:
    """
    The content of a local file, e.g. of a mounted secret or configmap volume.

    The file is re-read on every resolution, so that the rotated content
    is projected on the next reconciliation without restarting the operator.
    """

    def __init__(self, path: str | pathlib.Path) -> None:
        super().__init__()
        self._path = pathlib.Path(path)

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({str(self._path)!r})'

    async def resolve(self, ref: references.ObjectRef, *, logger: typedefs.Logger) -> bytes:
        loop = asyncio.get_running_loop()
        try:
            content = await loop.run_in_executor(None, self._path.read_bytes)
        except OSError as e:
            raise SourceError(f"Cannot read the bundle from {str(self._path)!r}: {e}") from e
        return _ensure_text(content, repr(str(self._path)))


class ConfigMapSource:
    """
    The content of a key in a source ConfigMap in the cluster.
    """

    def __init__(
            self,
            ref: references.ObjectRef,
            key: str,
            *,
            settings: configuration.OperatorSettings,
    ) -> None:
        super().__init__()
        self._ref = ref
        self._key = key
        self._settings = settings

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({str(self._ref)!r}, {self._key!r})'

    async def resolve(self, ref: references.ObjectRef, *, logger: typedefs.Logger) -> bytes:
        origin = f"{self._ref}:{self._key}"
        try:
            body = await fetching.read_obj(
                settings=self._settings,
                resource=references.CONFIGMAPS,
                ref=self._ref,
                logger=logger,
            )
        except (errors.APIError, aiohttp.ClientConnectionError, aiohttp.ClientPayloadError,
                asyncio.TimeoutError) as e:
            raise SourceError(f"Cannot read the bundle from {origin}: {e!r}") from e
        if body is None:
            raise SourceError(f"The bundle source {self._ref} does not exist.")
        data = body.get('data') or {}
        if self._key not in data:
            raise SourceError(f"The bundle source {self._ref} has no key {self._key!r}.")
        return _ensure_text(data[self._key].encode('utf-8'), origin)
