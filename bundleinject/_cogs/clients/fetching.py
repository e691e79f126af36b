from collections.abc import Collection

from bundleinject._cogs.clients import api, errors
from bundleinject._cogs.configs import configuration
from bundleinject._cogs.helpers import typedefs
from bundleinject._cogs.structs import bodies, references


async def read_obj(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        ref: references.ObjectRef,
        logger: typedefs.Logger,
) -> bodies.RawBody | None:
    """
    Get one object, or ``None`` if it does not exist.

    Only the bundle's source object is read this way. The injection targets
    are never read: the reconcilers only apply their desired state to them.
    """
    url = resource.get_url(namespace=ref.namespace, name=ref.name)
    try:
        return await api.get(url, settings=settings, logger=logger)
    except errors.APINotFoundError:
        return None


async def list_objs(
        *,
        settings: configuration.OperatorSettings,
        resource: references.Resource,
        namespace: references.Namespace,
        logger: typedefs.Logger,
) -> tuple[Collection[bodies.RawBody], str | None]:
    """
    Get all objects of one namespace (or all), and the list's resource version.

    The items of a list have no kind and api version of their own,
    so they are taken from the list (``ConfigMapList`` gives ``ConfigMap``).
    """
    rsp = await api.get(resource.get_url(namespace=namespace), settings=settings, logger=logger)
    kind = rsp.get('kind', '').removesuffix('List')
    api_version = rsp.get('apiVersion')

    items: list[bodies.RawBody] = []
    for item in rsp.get('items') or []:
        if kind:
            item.setdefault('kind', kind)
        if api_version:
            item.setdefault('apiVersion', api_version)
        items.append(item)
    return items, rsp.get('metadata', {}).get('resourceVersion')
