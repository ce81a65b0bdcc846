"""Pending-host list backed by a line-oriented text file."""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

from .errors import MalformedRecord, StoreError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Host:
    """A host read from the pending list."""

    address: str
    name: str

    def __str__(self) -> str:
        return f"{self.address},{self.name}"


def format_record(host: Host, text: str) -> str:
    """Render a log line as ``address,name,text``."""
    flat = " ".join(text.splitlines())
    return f"{host.address},{host.name},{flat}\n"


def parse_host(line: str) -> Host | None:
    """Parse one ``address,name`` line. Returns None if the line is malformed."""
    parts = [p.strip() for p in line.split(",")]
    if len(parts) < 2 or not parts[0]:
        return None
    return Host(address=parts[0], name=parts[1])


class HostListStore:
    """Reads and rewrites the pending-host file.

    There is no locking here: only one task at a time may call into a
    store, which is the orchestrator before a round and the done-log
    writer during one.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def _read_lines(self) -> list[str]:
        try:
            with open(self.path) as f:
                return f.read().splitlines()
        except OSError as e:
            raise StoreError(f"unable to open hosts file {self.path}: {e}") from e

    def load_all(self) -> list[Host]:
        hosts = []
        for lineno, line in enumerate(self._read_lines(), start=1):
            if not line.strip():
                continue
            host = parse_host(line)
            if host is None:
                raise MalformedRecord(str(self.path), lineno, line)
            hosts.append(host)
        return hosts

    def remove_host(self, target: Host) -> int:
        """Drop every record with ``target.address`` and rewrite the file.

        Remaining lines are written back unchanged and in their original
        order. Returns the number of records left.
        """
        kept = []
        for lineno, line in enumerate(self._read_lines(), start=1):
            if not line.strip():
                continue
            host = parse_host(line)
            if host is None:
                raise MalformedRecord(str(self.path), lineno, line)
            if host.address != target.address:
                kept.append(line)

        directory = self.path.parent
        try:
            fd, tmp_path = tempfile.mkstemp(
                prefix=f".{self.path.name}.", dir=directory
            )
            try:
                with os.fdopen(fd, "w") as f:
                    for line in kept:
                        f.write(line + "\n")
                    f.flush()
                    os.fsync(f.fileno())
                os.chmod(tmp_path, self.path.stat().st_mode)
                os.replace(tmp_path, self.path)
            except BaseException:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
                raise
        except OSError as e:
            raise StoreError(f"unable to rewrite hosts file {self.path}: {e}") from e

        log.debug("Removed %s from %s, %d remaining", target, self.path, len(kept))
        return len(kept)
