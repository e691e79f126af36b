"""
Credentials from the operator's environment.

When running in a cluster, the pod's service account is used. Otherwise,
the current context of the kubeconfig file(s) is used, as ``kubectl`` does.
Nothing is executed and nothing is refreshed: the tokens are used as found.

.. seealso::
    :mod:`credentials` and :mod:`auth`.
"""
import os
from typing import Any

import yaml

from bundleinject._cogs.helpers import typedefs
from bundleinject._cogs.structs import credentials

# https://kubernetes.io/docs/tasks/run-application/access-api-from-pod/
SERVICE_ACCOUNT_DIR = '/var/run/secrets/kubernetes.io/serviceaccount'
IN_CLUSTER_SERVER = 'https://kubernetes.default.svc'
DEFAULT_KUBECONFIG = '~/.kube/config'


def login_with_service_account() -> credentials.ConnectionInfo | None:
    """ Use the mounted service account token, if any; ``None`` if not in a cluster. """
    token_path = os.path.join(SERVICE_ACCOUNT_DIR, 'token')
    ca_path = os.path.join(SERVICE_ACCOUNT_DIR, 'ca.crt')
    if not os.path.exists(token_path):
        return None
    with open(token_path, encoding='utf-8') as f:
        token = f.read().strip()
    return credentials.ConnectionInfo(
        server=IN_CLUSTER_SERVER,
        ca_path=ca_path if os.path.exists(ca_path) else None,
        token=token or None,
    )


def login_with_kubeconfig() -> credentials.ConnectionInfo | None:
    """
    Use the current context of the kubeconfig; ``None`` if there is no kubeconfig.

    ``$KUBECONFIG`` can list several files; they are merged so that the first
    file that defines a context, a cluster, or a user wins for that name.
    The missing or malformed files fail the login instead of being skipped.
    """
    paths = [os.path.expanduser(path.strip())
             for path in os.environ.get('KUBECONFIG', '').split(os.pathsep) if path.strip()]
    if not paths and os.path.exists(os.path.expanduser(DEFAULT_KUBECONFIG)):
        paths = [os.path.expanduser(DEFAULT_KUBECONFIG)]
    if not paths:
        return None

    current: str | None = None
    sections: dict[str, dict[str, Any]] = {'contexts': {}, 'clusters': {}, 'users': {}}
    for path in paths:
        with open(path, encoding='utf-8') as f:
            config = yaml.safe_load(f) or {}
        current = current or config.get('current-context')
        for section, entries in sections.items():
            field = section[:-1]  # "contexts" have "context", etc.
            for entry in config.get(section) or []:
                entries.setdefault(entry['name'], entry.get(field) or {})

    if current is None:
        raise credentials.LoginError("Current context is not set in kubeconfigs.")
    try:
        context = sections['contexts'][current]
        cluster = sections['clusters'][context['cluster']]
        user = sections['users'][context['user']] if context.get('user') else {}
    except KeyError as e:
        raise credentials.LoginError(f"Kubeconfig refers to an absent entry: {e}") from e

    provider = user.get('auth-provider') or {}
    return credentials.ConnectionInfo(
        server=cluster.get('server'),
        ca_path=cluster.get('certificate-authority'),
        ca_data=cluster.get('certificate-authority-data'),
        insecure=cluster.get('insecure-skip-tls-verify'),
        certificate_path=user.get('client-certificate'),
        certificate_data=user.get('client-certificate-data'),
        private_key_path=user.get('client-key'),
        private_key_data=user.get('client-key-data'),
        username=user.get('username'),
        password=user.get('password'),
        token=user.get('token') or (provider.get('config') or {}).get('access-token'),
    )


def login(*, logger: typedefs.Logger) -> credentials.ConnectionInfo:
    """ The in-cluster service account if present, otherwise the kubeconfig. """
    info = login_with_service_account()
    if info is not None:
        logger.debug("Logged in with the in-cluster service account.")
        return info
    info = login_with_kubeconfig()
    if info is not None:
        logger.debug("Logged in with the kubeconfig file.")
        return info
    raise credentials.LoginError("Cannot authenticate neither in-cluster, nor via kubeconfig.")
