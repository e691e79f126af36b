"""
Per-object logging and the configuration of the operator's logging.

Every reconciliation logs via its own object logger, which carries
the object's identity and the controller's name with every record.
The formatters then render them as a ``[namespace/name]`` prefix in the text
formats, or as a separate structured field in the JSON format.
"""
import copy
import enum
import logging
from collections.abc import MutableMapping
from typing import Any

from pythonjsonlogger.core import RESERVED_ATTRS
from pythonjsonlogger.json import JsonFormatter

from bundleinject._cogs.helpers import typedefs
from bundleinject._cogs.structs import references

logger = logging.getLogger('bundleinject.objects')

DEFAULT_JSON_REFKEY = 'object'

_SEVERITIES = [
    (logging.DEBUG, 'debug'),
    (logging.INFO, 'info'),
    (logging.WARNING, 'warn'),
    (logging.ERROR, 'error'),
]


class LogFormat(enum.Enum):
    """ Log formats, as specified on CLI. """
    PLAIN = '%(message)s'
    FULL = '[%(asctime)s] %(name)-20.20s [%(levelname)-8.8s] %(message)s'
    JSON = '-json-'  # only a marker, never used as a format string


class ObjectFormatter(logging.Formatter):
    """ A base class for all formatters aware of the object loggers. """


class ObjectTextFormatter(ObjectFormatter):
    pass


class ObjectJsonFormatter(ObjectFormatter, JsonFormatter):
    """
    One JSON document per record, with the object's reference under ``refkey``.

    Every record gets a ``severity`` field in the terms of the log collectors.
    The rest of the records' extras (e.g. the controller's name) go as is.
    """

    def __init__(
            self,
            *args: Any,
            refkey: str | None = None,
            **kwargs: Any,
    ) -> None:
        kwargs['reserved_attrs'] = {*kwargs.get('reserved_attrs', RESERVED_ATTRS), 'k8s_ref'}
        kwargs.setdefault('timestamp', True)
        super().__init__(*args, **kwargs)
        self.refkey = refkey or DEFAULT_JSON_REFKEY

    def add_fields(
            self,
            log_record: dict[str, Any],
            record: logging.LogRecord,
            message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        ref = getattr(record, 'k8s_ref', None)
        if ref is not None:
            log_record[self.refkey] = ref
        if 'severity' not in log_record:
            log_record['severity'] = next(
                (name for levelno, name in _SEVERITIES if record.levelno <= levelno), 'fatal')


class ObjectPrefixingMixin(ObjectFormatter):
    """ Prepend ``[namespace/name]`` to the messages of the object loggers. """

    def format(self, record: logging.LogRecord) -> str:
        ref = getattr(record, 'k8s_ref', None)
        if ref is not None:
            record = copy.copy(record)  # other handlers must see the original message
            record.msg = f"[{ref['namespace']}/{ref['name']}] {record.msg}"
        return super().format(record)


class ObjectPrefixingTextFormatter(ObjectPrefixingMixin, ObjectTextFormatter):
    pass


class ObjectPrefixingJsonFormatter(ObjectPrefixingMixin, ObjectJsonFormatter):
    pass


class ObjectLogger(typedefs.LoggerAdapter):
    """
    A logger of one object in one controller.

    Only the object's identity is carried, never its body.
    """

    def __init__(
            self,
            *,
            ref: references.ObjectRef,
            resource: references.Resource = references.CONFIGMAPS,
            controller: str | None = None,
    ) -> None:
        extra: dict[str, Any] = {'k8s_ref': {
            'apiVersion': resource.api_version,
            'kind': resource.kind,
            'namespace': ref.namespace,
            'name': ref.name,
        }}
        if controller is not None:
            extra['controller'] = controller
        super().__init__(logger, extra)

    def process(
            self,
            msg: str,
            kwargs: MutableMapping[str, Any],
    ) -> tuple[str, MutableMapping[str, Any]]:
        # The per-call extras are added to the adapter's ones instead of replacing them.
        kwargs['extra'] = {**(self.extra or {}), **kwargs.get('extra', {})}
        return msg, kwargs


class _RootHandler(logging.StreamHandler):  # type: ignore[type-arg]
    """ The handler added by :func:`configure`, to be replaced on re-configuration. """


def configure(
        debug: bool | None = None,
        verbose: bool | None = None,
        quiet: bool | None = None,
        log_format: LogFormat = LogFormat.FULL,
        log_prefix: bool | None = False,
        log_refkey: str | None = None,
) -> None:
    handler = _RootHandler()
    handler.setFormatter(make_formatter(log_format=log_format, log_prefix=log_prefix,
                                        log_refkey=log_refkey))
    root = logging.getLogger()
    root.handlers[:] = [h for h in root.handlers if not isinstance(h, _RootHandler)] + [handler]
    root.setLevel(logging.DEBUG if debug or verbose else logging.WARNING if quiet else logging.INFO)

    # The event loop's own messages are only for debugging.
    asyncio_logger = logging.getLogger('asyncio')
    asyncio_logger.propagate = bool(debug)
    if not debug:
        asyncio_logger.handlers[:] = [logging.NullHandler()]


def make_formatter(
        log_format: LogFormat | str = LogFormat.FULL,
        log_prefix: bool | None = False,
        log_refkey: str | None = None,
) -> ObjectFormatter:
    """
    A formatter for the format: either a predefined one, or a custom format string.

    The objects' prefixes are added to the text formats by default, but not to JSON,
    which has the object's reference as a separate field.
    """
    if log_prefix is None:
        log_prefix = log_format is not LogFormat.JSON
    if log_format is LogFormat.JSON:
        json_cls = ObjectPrefixingJsonFormatter if log_prefix else ObjectJsonFormatter
        return json_cls(refkey=log_refkey)
    if isinstance(log_format, LogFormat):
        log_format = log_format.value
    if not isinstance(log_format, str):
        raise ValueError(f"Unsupported log format: {log_format!r}")
    text_cls = ObjectPrefixingTextFormatter if log_prefix else ObjectTextFormatter
    return text_cls(log_format)
