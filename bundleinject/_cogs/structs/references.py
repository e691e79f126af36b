import dataclasses
import urllib.parse
from collections.abc import Mapping
from typing import NamedTuple, NewType, Optional

NamespaceName = NewType('NamespaceName', str)

# `None` stands for the cluster-wide listing and watching.
Namespace = Optional[NamespaceName]


class ObjectRef(NamedTuple):
    """
    The identity of one object: the only thing the reconcilers get.

    The bodies stay in the watcher; by the time a reconciliation starts,
    a body can be outdated, while the identity cannot.
    """
    namespace: NamespaceName
    name: str

    def __str__(self) -> str:
        return f'{self.namespace}/{self.name}'


def parse_ref(text: str) -> ObjectRef:
    """ Parse a ``namespace/name`` reference, as given on the command line. """
    namespace, _, name = text.partition('/')
    if not namespace or not name or '/' in name:
        raise ValueError(f"Object references must be in the form NAMESPACE/NAME; got {text!r}.")
    return ObjectRef(NamespaceName(namespace), name)


@dataclasses.dataclass(frozen=True)
class Resource:
    """
    A namespaced resource kind, as addressed in the API's URLs.

    The kind is only used in the apply-patches and in the logs;
    two resources with the same URLs are the same resource.
    """
    group: str  # "" for the core API
    version: str
    plural: str
    kind: str | None = dataclasses.field(default=None, compare=False)

    def __repr__(self) -> str:
        return '.'.join(part for part in (self.plural, self.version, self.group) if part)

    @property
    def api_version(self) -> str:
        return f'{self.group}/{self.version}' if self.group else self.version

    def get_url(
            self,
            *,
            namespace: Namespace = None,
            name: str | None = None,
            params: Mapping[str, str] | None = None,
    ) -> str:
        """
        The server-relative URL of one object, or of a list in one namespace or cluster-wide.
        """
        if name is not None and namespace is None:
            raise ValueError("Specific namespaces are required for specific namespaced resources.")

        path = '/api' if not self.group else f'/apis/{self.group}'
        path += f'/{self.version}'
        if namespace is not None:
            path += f'/namespaces/{namespace}'
        path += f'/{self.plural}'
        if name is not None:
            path += f'/{name}'
        if params:
            path += '?' + urllib.parse.urlencode(params)
        return path


CONFIGMAPS = Resource('', 'v1', 'configmaps', kind='ConfigMap')
