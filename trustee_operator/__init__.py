"""
The main module of the Trustee operator for all the exported functions & classes.
"""
# isort: skip_file

# Unlike all other places, where we import other modules and refer
# the functions via the modules, this is the operator's top-level interface,
# as it is seen by the embedding applications & tests. So, we export the names.

from trustee_operator._cogs.configs.configuration import (
    OperatorSettings,
)
from trustee_operator._cogs.clients.errors import (
    APIError,
    APIClientError,
    APIServerError,
    APIUnauthorizedError,
    APIForbiddenError,
    APINotFoundError,
    APIConflictError,
)
from trustee_operator._cogs.clients.stores import (
    ObjectStore,
    APIObjectStore,
)
from trustee_operator._cogs.structs.credentials import (
    ConnectionInfo,
    LoginError,
)
from trustee_operator._cogs.structs.kbsconfigs import (
    Component,
    DeploymentType,
)
from trustee_operator._cogs.structs.references import (
    ObjectKey,
    Resource,
)
from trustee_operator._core.actions.loggers import (
    configure,
    LogFormat,
    ObjectLogger,
)
from trustee_operator._core.engines.volumes import (
    ReconciliationError,
    InvalidConfigurationError,
    MissingArtifactError,
    ComposedVolumes,
    compose_volumes,
)
from trustee_operator._core.engines.builders import (
    build_deployment,
    build_service,
)
from trustee_operator._core.engines.children import (
    apply_child,
)
from trustee_operator._core.engines.finalizing import (
    ensure_workload_absent,
)
from trustee_operator._core.intents.filters import (
    ChangeEvent,
    namespace_filter,
)
from trustee_operator._core.reactor.reconciling import (
    ReconcileOutcome,
    reconcile,
)
from trustee_operator._core.reactor.queueing import (
    WorkQueue,
)
from trustee_operator._core.reactor.running import (
    run,
    operator,
)

__all__ = [
    'OperatorSettings',
    'APIError', 'APIClientError', 'APIServerError',
    'APIUnauthorizedError', 'APIForbiddenError', 'APINotFoundError', 'APIConflictError',
    'ObjectStore', 'APIObjectStore',
    'ConnectionInfo', 'LoginError',
    'Component', 'DeploymentType',
    'ObjectKey', 'Resource',
    'configure', 'LogFormat', 'ObjectLogger',
    'ReconciliationError', 'InvalidConfigurationError', 'MissingArtifactError',
    'ComposedVolumes', 'compose_volumes',
    'build_deployment', 'build_service',
    'apply_child',
    'ensure_workload_absent',
    'ChangeEvent', 'namespace_filter',
    'ReconcileOutcome', 'reconcile',
    'WorkQueue',
    'run', 'operator',
]
