"""
Types that are generic for mypy, but not subscriptable at runtime.
"""
import logging
from typing import TYPE_CHECKING, Any, Union

if TYPE_CHECKING:
    LoggerAdapter = logging.LoggerAdapter[Any]
else:
    LoggerAdapter = logging.LoggerAdapter

# Any logger goes: the module loggers and the per-object adapters.
Logger = Union[logging.Logger, LoggerAdapter]
