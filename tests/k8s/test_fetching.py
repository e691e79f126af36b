import aiohttp.web
import pytest

from bundleinject._cogs.clients.errors import APIError
from bundleinject._cogs.clients.fetching import list_objs, read_obj


async def test_reading_an_object(
        resp_mocker, aresponses, hostname, resource, settings, ref, logger):
    body = {'metadata': {'namespace': 'ns1', 'name': 'cm-1'}, 'data': {'a': 'b'}}
    get_mock = resp_mocker(return_value=aiohttp.web.json_response(body))
    aresponses.add(hostname, resource.get_url(namespace='ns1', name='cm-1'), 'get', get_mock)

    result = await read_obj(settings=settings, resource=resource, ref=ref, logger=logger)

    assert result == body
    assert get_mock.call_count == 1


async def test_reading_an_absent_object(
        resp_mocker, aresponses, hostname, resource, settings, ref, logger):
    get_mock = resp_mocker(return_value=aresponses.Response(status=404))
    aresponses.add(hostname, resource.get_url(namespace='ns1', name='cm-1'), 'get', get_mock)

    result = await read_obj(settings=settings, resource=resource, ref=ref, logger=logger)

    assert result is None


@pytest.mark.parametrize('status', [400, 401, 403, 500, 666])
async def test_reading_fails_on_other_errors(
        resp_mocker, aresponses, hostname, resource, settings, ref, logger, status):
    get_mock = resp_mocker(return_value=aresponses.Response(status=status))
    aresponses.add(hostname, resource.get_url(namespace='ns1', name='cm-1'), 'get', get_mock)

    with pytest.raises(APIError) as err:
        await read_obj(settings=settings, resource=resource, ref=ref, logger=logger)

    assert err.value.status == status


@pytest.mark.parametrize('namespace', [None, 'ns1'])
async def test_listing_objects(
        resp_mocker, aresponses, hostname, resource, settings, logger, namespace):
    result = {'apiVersion': 'v1', 'kind': 'ConfigMapList',
              'metadata': {'resourceVersion': '123'},
              'items': [{'metadata': {'name': 'cm-1'}},
                        {'metadata': {'name': 'cm-2'}, 'kind': 'Custom'}]}
    list_mock = resp_mocker(return_value=aiohttp.web.json_response(result))
    aresponses.add(hostname, resource.get_url(namespace=namespace), 'get', list_mock)

    items, resource_version = await list_objs(settings=settings, resource=resource,
                                              namespace=namespace, logger=logger)

    assert resource_version == '123'
    assert items == [
        {'apiVersion': 'v1', 'kind': 'ConfigMap', 'metadata': {'name': 'cm-1'}},
        {'apiVersion': 'v1', 'kind': 'Custom', 'metadata': {'name': 'cm-2'}},
    ]
