"""
The main module for all the exported functions & classes.
"""
# isort: skip_file

# Unlike all other places, where we import other modules and refer
# the functions via the modules, this is the project's top-level interface,
# as it is seen by the users. So, we export the individual functions.

from bundleinject._cogs.clients.auth import (
    APIContext,
)
from bundleinject._cogs.clients.errors import (
    APIError,
    APIClientError,
    APIServerError,
    APIUnauthorizedError,
    APIForbiddenError,
    APINotFoundError,
    APIConflictError,
    APITooManyRequestsError,
)
from bundleinject._cogs.clients.patching import (
    Merger,
    apply_obj,
    make_merger,
)
from bundleinject._cogs.configs.configuration import (
    OperatorSettings,
    NetworkingSettings,
    WatchingSettings,
    QueueingSettings,
    ReconcilingSettings,
    InjectionSettings,
)
from bundleinject._cogs.helpers.typedefs import (
    Logger,
)
from bundleinject._cogs.helpers.versions import (
    version as __version__,
)
from bundleinject._cogs.structs.bodies import (
    RawBody,
    RawEvent,
    RawEventType,
)
from bundleinject._cogs.structs.credentials import (
    LoginError,
    ConnectionInfo,
)
from bundleinject._cogs.structs.patches import (
    ApplyPatch,
)
from bundleinject._cogs.structs.references import (
    CONFIGMAPS,
    ObjectRef,
    Resource,
)
from bundleinject._core.actions.execution import (
    PermanentError,
    TemporaryError,
    Reconciler,
    Result,
)
from bundleinject._core.actions.loggers import (
    LogFormat,
    configure,
)
from bundleinject._core.actions.projection import (
    build_inject_patch,
    build_retract_patch,
    hash_content,
)
from bundleinject._core.engines.injection import (
    Injector,
    Cleaner,
)
from bundleinject._core.intents.filters import (
    has_label,
    has_annotation,
    not_,
    all_,
    any_,
    injector_filter,
    cleaner_filter,
)
from bundleinject._core.intents.piggybacking import (
    login_with_kubeconfig,
    login_with_service_account,
)
from bundleinject._core.intents.sources import (
    BundleSource,
    SourceError,
    StaticSource,
    FileSource,
    ConfigMapSource,
)
from bundleinject._core.reactor.queueing import (
    Controller,
)
from bundleinject._core.reactor.running import (
    make_controllers,
    spawn_tasks,
    run_tasks,
    operator,
    run,
)

__all__ = [
    'APIContext',
    'APIError', 'APIClientError', 'APIServerError',
    'APIUnauthorizedError', 'APIForbiddenError', 'APINotFoundError',
    'APIConflictError', 'APITooManyRequestsError',
    'Merger', 'apply_obj', 'make_merger',
    'OperatorSettings',
    'NetworkingSettings',
    'WatchingSettings',
    'QueueingSettings',
    'ReconcilingSettings',
    'InjectionSettings',
    'Logger',
    'RawBody', 'RawEvent', 'RawEventType',
    'LoginError', 'ConnectionInfo',
    'ApplyPatch',
    'CONFIGMAPS', 'ObjectRef', 'Resource',
    'PermanentError', 'TemporaryError', 'Reconciler', 'Result',
    'LogFormat', 'configure',
    'build_inject_patch', 'build_retract_patch', 'hash_content',
    'Injector', 'Cleaner',
    'has_label', 'has_annotation', 'not_', 'all_', 'any_',
    'injector_filter', 'cleaner_filter',
    'login_with_kubeconfig', 'login_with_service_account',
    'BundleSource', 'SourceError', 'StaticSource', 'FileSource', 'ConfigMapSource',
    'Controller',
    'make_controllers', 'spawn_tasks', 'run_tasks', 'operator', 'run',
]
