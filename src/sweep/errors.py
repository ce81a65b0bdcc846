"""Exception types raised by sweep."""

from __future__ import annotations


class SweepError(Exception):
    """Base class for all sweep errors."""


class ConfigError(SweepError, ValueError):
    """A required setting is missing or invalid."""


class StoreError(SweepError):
    """The pending-host file could not be read or rewritten."""


class MalformedRecord(StoreError):
    """A line in the pending-host file does not hold an address and a name."""

    def __init__(self, path: str, lineno: int, line: str):
        super().__init__(f"{path}:{lineno}: malformed host record: {line!r}")
        self.path = path
        self.lineno = lineno
        self.line = line


class WriterError(SweepError):
    """A log writer could not open or append to its file."""


class HostError(SweepError):
    """A single host failed at some stage of its run."""

    def __init__(self, stage: str, detail: str):
        super().__init__(detail)
        self.stage = stage
        self.detail = detail
