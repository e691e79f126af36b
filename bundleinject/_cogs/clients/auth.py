"""
The authenticated HTTP session of the operator.

One :class:`APIContext` is created per operator and shared by all its tasks
via a context variable, which is set when the operator's tasks are spawned.
The API calls get it injected by the :func:`authenticated` decorator.
There is no re-authentication: expired or revoked credentials surface
as the usual API errors (401/403) and are retried as such.
"""
import base64
import contextlib
import functools
import ssl
import tempfile
from collections.abc import Callable
from contextvars import ContextVar
from typing import Any, TypeVar, cast

import aiohttp

from bundleinject._cogs.helpers import versions
from bundleinject._cogs.structs import credentials

context_var: ContextVar['APIContext'] = ContextVar('context_var')

_F = TypeVar('_F', bound=Callable[..., Any])


def authenticated(fn: _F) -> _F:
    """
    Pass the operator's API context to the decorated coroutine as ``context=``.

    An explicitly passed context takes precedence over the operator's one.
    """
    @functools.wraps(fn)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        if kwargs.get('context') is None:
            try:
                kwargs['context'] = context_var.get()
            except LookupError:
                raise RuntimeError("API context is not set; is the operator logged in?") from None
        return await fn(*args, **kwargs)
    return cast(_F, wrapper)


class APIContext:
    """
    The server's URL and an aiohttp session with the credentials applied.
    """
    server: str
    session: aiohttp.ClientSession

    def __init__(self, info: credentials.ConnectionInfo) -> None:
        super().__init__()
        self.server = info.server

        headers = {'User-Agent': f'bundleinject/{versions.version or "unknown"}'}
        if info.token:
            headers['Authorization'] = f'Bearer {info.token}'
        basic_auth = None
        if info.username and info.password:
            basic_auth = aiohttp.BasicAuth(info.username, info.password)

        self.session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=0, ssl=_make_ssl_context(info)),
            headers=headers,
            auth=basic_auth,
        )

    async def close(self) -> None:
        await self.session.close()


def _make_ssl_context(info: credentials.ConnectionInfo) -> ssl.SSLContext:
    context = ssl.create_default_context(
        purpose=ssl.Purpose.SERVER_AUTH,
        cafile=info.ca_path,
        cadata=decode_to_pem(info.ca_data) if info.ca_data else None,
    )
    if info.insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    # The client certificate can be loaded from files only. The inline data are put
    # into temporary files, which are deleted as soon as they are loaded.
    with contextlib.ExitStack() as stack:
        def as_path(path: str | None, data: str | bytes | None) -> str | None:
            if path or not data:
                return path
            file = stack.enter_context(tempfile.NamedTemporaryFile(buffering=0))
            file.write(decode_to_pem(data).encode('ascii'))
            return file.name

        certfile = as_path(info.certificate_path, info.certificate_data)
        keyfile = as_path(info.private_key_path, info.private_key_data)
        if certfile and keyfile:
            context.load_cert_chain(certfile=certfile, keyfile=keyfile)

    return context


def decode_to_pem(data: str | bytes) -> str:
    """ Accept PEM as is, or decode it from base64 as embedded in kubeconfigs. """
    text = data.decode('ascii') if isinstance(data, bytes) else data
    if text.startswith('-----BEGIN '):
        return text
    return base64.b64decode(text).decode('ascii')
