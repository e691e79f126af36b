import asyncio
import copy
import io
import json
import logging
import re
from unittest.mock import AsyncMock, MagicMock

import pytest

from bundleinject._cogs.clients import auth, errors
from bundleinject._cogs.clients.patching import InvalidPatchError
from bundleinject._cogs.configs.configuration import OperatorSettings
from bundleinject._cogs.structs.credentials import ConnectionInfo
from bundleinject._cogs.structs.references import CONFIGMAPS, NamespaceName, ObjectRef
from bundleinject._core.actions.loggers import ObjectPrefixingTextFormatter, configure


@pytest.fixture()
def settings():
    return OperatorSettings()


@pytest.fixture()
def ref():
    return ObjectRef(NamespaceName('ns1'), 'cm-1')


@pytest.fixture()
def resource():
    return CONFIGMAPS


@pytest.fixture()
def logger():
    return logging.getLogger('bundleinject.tests')


#
# The API is never reached: aresponses serves the fake host,
# and the reconcilers get an in-memory apply server instead of the HTTP one.
#

@pytest.fixture()
def hostname():
    return 'fake-host'


@pytest.fixture()
async def api_context(hostname):
    """ The API context of the fake host, as set by the operator when running. """
    context = auth.APIContext(ConnectionInfo(server=f'https://{hostname}'))
    token = auth.context_var.set(context)
    try:
        yield context
    finally:
        auth.context_var.reset(token)
        await context.close()


@pytest.fixture()
def resp_mocker(api_context, aresponses):
    """
    Make an aresponses handler that records the requests and responds as the mock does.

    The handler is an ``AsyncMock``: its calls are the requests, each with
    the request's body as ``.data`` (JSON if parseable, text otherwise)::

        handler = resp_mocker(return_value=aiohttp.web.json_response({}))
        aresponses.add(hostname, '/api/v1/configmaps', 'get', handler)
        assert handler.call_args[0][0].data == ...
    """
    def make_handler(*args, **kwargs):
        responder = MagicMock(*args, **kwargs)

        async def respond(request):
            text = await request.text()
            try:
                request.data = json.loads(text)
            except json.JSONDecodeError:
                request.data = text
            return responder()

        return AsyncMock(side_effect=respond)
    return make_handler


#
# An in-memory fake of the API server's server-side apply with per-manager field ownership.
#

class FakeApplyServer:
    """
    Objects with labels, annotations, data, and an owner for every field.

    Only the fields of the data & annotations are tracked individually;
    one field has one owner at a time. Applying a patch by a field manager:

    * sets & owns all the fields in the patch,
    * releases & removes the fields owned by this manager but absent in the patch,
    * never touches the fields of other managers (unless forced to take them over).

    As with the real API, applying to an absent object creates it from the patch.
    Only the objects in the removed namespaces are not found (HTTP 404).
    """

    def __init__(self) -> None:
        super().__init__()
        self.objects: dict[ObjectRef, dict] = {}
        self.owners: dict[ObjectRef, dict[tuple[str, str], str]] = {}
        self.calls: list[dict] = []
        self.removed_namespaces: set[str] = set()

    def create(self, ref, *, labels=None, annotations=None, data=None, manager='kubectl'):
        self.objects[ref] = {
            'apiVersion': 'v1',
            'kind': 'ConfigMap',
            'metadata': {
                'namespace': ref.namespace,
                'name': ref.name,
                'labels': dict(labels or {}),
                'annotations': dict(annotations or {}),
            },
            'data': dict(data or {}),
        }
        self.owners[ref] = {}
        for key in (annotations or {}):
            self.owners[ref][('annotations', key)] = manager
        for key in (data or {}):
            self.owners[ref][('data', key)] = manager
        return self.get(ref)

    def delete(self, ref):
        del self.objects[ref]
        del self.owners[ref]

    def remove_namespace(self, namespace):
        self.removed_namespaces.add(namespace)
        for ref in [ref for ref in self.objects if ref.namespace == namespace]:
            self.delete(ref)

    def get(self, ref):
        return copy.deepcopy(self.objects[ref])

    def set_label(self, ref, key, value):
        self.objects[ref]['metadata']['labels'][key] = value

    def remove_label(self, ref, key):
        del self.objects[ref]['metadata']['labels'][key]

    def _section(self, ref, name):
        obj = self.objects[ref]
        return obj['metadata'][name] if name == 'annotations' else obj[name]

    async def apply(self, *, ref, patch, field_manager, force, logger):
        self.calls.append(dict(ref=ref, patch=copy.deepcopy(dict(patch)),
                               field_manager=field_manager, force=force))
        await asyncio.sleep(0)  # the request-response i/o, as a point of suspension.

        if not field_manager:
            raise InvalidPatchError("The field manager is required for applying.")
        if patch.ref != ref:
            raise InvalidPatchError("The patch is for another object.")
        if ref.namespace in self.removed_namespaces:
            return None
        if ref not in self.objects:
            self.create(ref, manager=field_manager)

        owners = self.owners[ref]
        claimed = {('annotations', key): value for key, value in patch.annotations.items()}
        claimed |= {('data', key): value for key, value in patch.data.items()}

        for field, value in claimed.items():
            owner = owners.get(field)
            current = self._section(ref, field[0]).get(field[1])
            if owner is not None and owner != field_manager and current != value and not force:
                raise errors.APIConflictError(None, status=409)

        for field, owner in list(owners.items()):
            if owner == field_manager and field not in claimed:
                del self._section(ref, field[0])[field[1]]
                del owners[field]

        for field, value in claimed.items():
            self._section(ref, field[0])[field[1]] = value
            owners[field] = field_manager

        return self.get(ref)


@pytest.fixture()
def apiserver():
    return FakeApplyServer()


@pytest.fixture()
def merger(apiserver):
    return apiserver.apply


#
# Helpers for the logging checks.
#

@pytest.fixture()
def logstream(caplog):
    """ The root logger's output as rendered by a prefixing formatter. """
    root = logging.getLogger()
    saved_handlers = list(root.handlers)
    configure(verbose=True)
    root.handlers[:] = [h for h in root.handlers if type(h).__name__ != '_RootHandler']

    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(ObjectPrefixingTextFormatter('prefix %(message)s'))
    root.addHandler(handler)
    try:
        with caplog.at_level(logging.DEBUG):
            yield stream
    finally:
        root.handlers[:] = saved_handlers


@pytest.fixture()
def assert_logs(caplog):
    """
    Check that the messages matching the patterns were logged in that order,
    maybe with other messages in between, and none matching the prohibited ones.
    """
    def check(patterns, prohibited=()):
        __tracebackhide__ = True
        expected = list(patterns)
        for message in caplog.messages:
            for pattern in prohibited:
                if re.search(pattern, message):
                    raise AssertionError(f"Prohibited message is logged: {message!r} ~ {pattern!r}")
            if expected and re.search(expected[0], message):
                expected.pop(0)
            elif any(re.search(pattern, message) for pattern in expected[1:]):
                raise AssertionError(f"Message {message!r} is logged before {expected[0]!r}")
        if expected:
            raise AssertionError(f"Messages are not logged: {expected!r}")
    return check
