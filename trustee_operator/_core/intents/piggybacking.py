"""
Rudimentary login to the Kubernetes API without any client libraries.

The operator runs in-cluster in production, where the service account's
token is mounted into the pod. For the local development, the kubeconfig
files are parsed directly, with the current context only. The complex
auth-providers and exec-plugins are not supported: only the static tokens,
the basic auth and the client certificates.

.. seealso::
    :mod:`trustee_operator._cogs.structs.credentials`.
"""
import os
from typing import Any, Dict, List, Optional

import yaml

from trustee_operator._cogs.helpers import typedefs
from trustee_operator._cogs.structs import credentials

# As per https://kubernetes.io/docs/tasks/run-application/access-api-from-pod/
SERVICE_ACCOUNT_DIR = '/var/run/secrets/kubernetes.io/serviceaccount'
IN_CLUSTER_SERVER = 'https://kubernetes.default.svc'
DEFAULT_KUBECONFIG = '~/.kube/config'


def login(*, logger: typedefs.Logger) -> credentials.ConnectionInfo:
    """
    Login via the service account if in a cluster, or via kubeconfig otherwise.
    """
    info = login_with_service_account()
    if info is not None:
        logger.debug("Logged in with the service account.")
        return info

    info = login_with_kubeconfig()
    if info is not None:
        logger.debug("Logged in with the kubeconfig file.")
        return info

    raise credentials.LoginError("Cannot authenticate neither in-cluster, nor via kubeconfig.")


def login_with_service_account(
        directory: str = SERVICE_ACCOUNT_DIR,
) -> Optional[credentials.ConnectionInfo]:
    token_path = os.path.join(directory, 'token')
    ns_path = os.path.join(directory, 'namespace')
    ca_path = os.path.join(directory, 'ca.crt')

    if not os.path.exists(token_path):
        return None

    with open(token_path, encoding='utf-8') as f:
        token = f.read().strip()

    namespace: Optional[str] = None
    if os.path.exists(ns_path):
        with open(ns_path, encoding='utf-8') as f:
            namespace = f.read().strip()

    return credentials.ConnectionInfo(
        server=IN_CLUSTER_SERVER,
        ca_path=ca_path if os.path.exists(ca_path) else None,
        token=token or None,
        default_namespace=namespace or None,
    )


def get_kubeconfig_paths() -> List[str]:
    kubeconfig = os.environ.get('KUBECONFIG')
    if not kubeconfig and os.path.exists(os.path.expanduser(DEFAULT_KUBECONFIG)):
        kubeconfig = DEFAULT_KUBECONFIG
    if not kubeconfig:
        return []
    paths = [path.strip() for path in kubeconfig.split(os.pathsep)]
    return [os.path.expanduser(path) for path in paths if path]


def login_with_kubeconfig(
        paths: Optional[List[str]] = None,
) -> Optional[credentials.ConnectionInfo]:
    """
    Extract the credentials of the current context from the kubeconfig files.

    The files are merged as kubectl does: the first file to define a value wins.
    A listed but absent or malformed file fails the login; no files at all is
    just no login.
    """
    paths = get_kubeconfig_paths() if paths is None else paths
    if not paths:
        return None

    current_context: Optional[str] = None
    contexts: Dict[str, Any] = {}
    clusters: Dict[str, Any] = {}
    users: Dict[str, Any] = {}
    for path in paths:
        with open(path, encoding='utf-8') as f:
            config = yaml.safe_load(f.read()) or {}

        if current_context is None:
            current_context = config.get('current-context')
        for section, target, key in [('contexts', contexts, 'context'),
                                     ('clusters', clusters, 'cluster'),
                                     ('users', users, 'user')]:
            for item in config.get(section) or []:
                target.setdefault(item['name'], item.get(key) or {})

    if current_context is None:
        raise credentials.LoginError("Current context is not set in kubeconfigs.")
    try:
        context = contexts[current_context]
        cluster = clusters[context['cluster']]
        user = users.get(context.get('user'), {})
    except KeyError as e:
        raise credentials.LoginError(f"Kubeconfig is incomplete for the context {current_context!r}: {e}")

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
        token=user.get('token'),
        default_namespace=context.get('namespace'),
    )
