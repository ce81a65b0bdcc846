"""sweep: Run a script across a fleet of SSH hosts, resuming until every host is done."""

from .config import Config, load_config, validate_config
from .errors import (
    ConfigError,
    HostError,
    MalformedRecord,
    StoreError,
    SweepError,
    WriterError,
)
from .executor import HostState, HostStatus, HostTask, Orchestrator
from .hosts import Host, HostListStore
from .writers import CompletionEvent, DoneLogWriter, StatusEvent, StatusLogWriter

__all__ = [
    "Config",
    "load_config",
    "validate_config",
    "ConfigError",
    "HostError",
    "MalformedRecord",
    "StoreError",
    "SweepError",
    "WriterError",
    "HostState",
    "HostStatus",
    "HostTask",
    "Orchestrator",
    "Host",
    "HostListStore",
    "CompletionEvent",
    "DoneLogWriter",
    "StatusEvent",
    "StatusLogWriter",
]
