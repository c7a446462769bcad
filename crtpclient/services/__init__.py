"""Service layer: dispatcher, request flows and the per-port subsystems."""

from .base import PortService
from .commander import Commander
from .console import Console
from .dispatcher import Dispatcher, DispatcherStats
from .flow import PendingRequests, RequestFlow
from .link import LinkService
from .localization import Localization
from .log import BlockState, Log, LogBlock, LogDecodeFailure, LogSample, period_to_ticks
from .param import Param, ParamChange
from .platform import Platform
from .supervisor import Supervisor, SupervisorState
from .toc import (
    Access,
    FileTocCache,
    InMemoryTocCache,
    NullTocCache,
    Toc,
    TocCache,
    TocEntry,
    TocKind,
    default_toc_cache,
)

__all__ = [
    "Access",
    "BlockState",
    "Commander",
    "Console",
    "Dispatcher",
    "DispatcherStats",
    "FileTocCache",
    "InMemoryTocCache",
    "LinkService",
    "Localization",
    "Log",
    "LogBlock",
    "LogDecodeFailure",
    "LogSample",
    "NullTocCache",
    "Param",
    "ParamChange",
    "PendingRequests",
    "Platform",
    "PortService",
    "RequestFlow",
    "Supervisor",
    "SupervisorState",
    "Toc",
    "TocCache",
    "TocEntry",
    "TocKind",
    "default_toc_cache",
    "period_to_ticks",
]
