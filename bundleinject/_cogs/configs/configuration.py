"""
The operator's settings, grouped by the layer they tune.

The CLI options set some of them; the rest keep their defaults
unless the operator is embedded and configured in code.
"""
import dataclasses
from collections.abc import Iterable


@dataclasses.dataclass
class NetworkingSettings:

    request_timeout: float | None = 5 * 60
    """ The total time of one API request except the watch-requests, in seconds. """

    connect_timeout: float | None = None
    """ The time to establish a connection; ``None`` leaves it to ``request_timeout``. """


@dataclasses.dataclass
class WatchingSettings:

    server_timeout: float | None = None
    """
    How long the server keeps one watch-request open (``timeoutSeconds``).
    If ``None``, the server decides on its own.
    """

    client_timeout: float | None = None
    """ The total time of one watch-request as limited by the client. """

    connect_timeout: float | None = None
    """ The time to establish a watch connection; ``None`` uses the networking one. """

    reconnect_backoff: float = 0.1
    """ The pause between the watch rounds, unless the server advises another one. """


@dataclasses.dataclass
class QueueingSettings:
    """
    How the events of one watcher are coalesced into the per-object workers.
    """

    worker_limit: int | None = None
    """
    The maximum of concurrent reconciliations per watcher; ``None`` for no limit.
    The workers above the limit keep coalescing their events while waiting.
    """

    idle_timeout: float = 5.0
    """ A worker exits after this many seconds without new events. """

    exit_timeout: float = 2.0
    """
    On the watcher's exit, the workers get this many seconds to finish
    their current reconciliations before they are cancelled.
    """


@dataclasses.dataclass
class ReconcilingSettings:

    timeout: float | None = 60.0
    """
    The deadline of one reconciliation attempt, in seconds, or ``None`` for none.
    An attempt over the deadline is cancelled and retried as a temporary error.
    """

    error_delays: Iterable[float] = (1, 1, 2, 3, 5, 8, 13, 21, 34, 55, 89, 144, 233, 377, 610)
    """
    The delays before the consecutive retries of a failing object, in seconds.

    The last one repeats forever; a success starts the sequence over.
    A temporary error with its own ``delay`` overrides the next value.
    """


@dataclasses.dataclass
class InjectionSettings:
    """
    The keys shared with the other parties of the injection:
    all of them must agree on these values.
    """

    inject_label: str = 'trust-manager.io/inject-bundle'
    """ The label that opts an object into the injection, with any value. """

    hash_annotation: str = 'trust.cert-manager.io/hash'
    """ The annotation with the hash of the injected content; set only by the injector. """

    data_key: str = 'ca.crt'
    """ The key of ``data`` that receives the bundle. """

    field_manager: str = 'trust-manager-injector'
    """ The field manager of all the writes of both controllers. """

    injector_name: str = 'configmap-injector'
    cleaner_name: str = 'configmap-injector-cleaner'


@dataclasses.dataclass
class OperatorSettings:
    networking: NetworkingSettings = dataclasses.field(default_factory=NetworkingSettings)
    watching: WatchingSettings = dataclasses.field(default_factory=WatchingSettings)
    queueing: QueueingSettings = dataclasses.field(default_factory=QueueingSettings)
    reconciling: ReconcilingSettings = dataclasses.field(default_factory=ReconcilingSettings)
    injection: InjectionSettings = dataclasses.field(default_factory=InjectionSettings)
