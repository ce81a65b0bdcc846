"""Single-owner writers for the status and done logs.

Each writer owns one append-only file for the length of a round and drains
an inbound queue. Senders block on :meth:`LogWriter.send` until their line
has been appended and synced, so at most one write per file is ever in
flight.
"""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO

from .errors import StoreError, WriterError
from .hosts import Host, HostListStore, format_record

log = logging.getLogger(__name__)


def _new_ack() -> asyncio.Future:
    return asyncio.get_running_loop().create_future()


@dataclass
class StatusEvent:
    """A line for the status log."""

    host: Host
    text: str
    ack: asyncio.Future = field(default_factory=_new_ack)


@dataclass
class CompletionEvent:
    """A host that finished its run; goes to the done log."""

    host: Host
    text: str
    ack: asyncio.Future = field(default_factory=_new_ack)


# Put on a writer's queue to make it exit once everything before it is written.
_STOP = None


class LogWriter:
    """Owns one append-only log file and serializes writes to it."""

    kind = "log"

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._queue: asyncio.Queue = asyncio.Queue()
        self._fh: IO[str] | None = None

    def open(self) -> None:
        try:
            self._fh = open(self.path, "a")
        except OSError as e:
            raise WriterError(f"error: opening {self.kind} file {self.path}: {e}") from e

    def stop(self) -> None:
        """Signal the writer to exit after draining its queue."""
        self._queue.put_nowait(_STOP)

    def _append(self, event) -> None:
        if self._fh is None:
            raise WriterError(f"error: {self.kind} file {self.path} is not open")
        self._fh.write(format_record(event.host, event.text))
        self._fh.flush()
        os.fsync(self._fh.fileno())

    def _handle(self, event) -> None:
        try:
            self._append(event)
        except OSError as e:
            raise WriterError(f"error: writing to {self.kind} file {self.path}: {e}") from e

    async def run(self) -> None:
        if self._fh is None:
            self.open()
        try:
            while True:
                event = await self._queue.get()
                if event is _STOP:
                    log.debug("Exiting %s writer", self.kind)
                    return
                try:
                    # Appends, fsync and hosts-file rewrites stay off the event loop.
                    await asyncio.to_thread(self._handle, event)
                except WriterError as e:
                    if not event.ack.done():
                        event.ack.set_exception(e)
                    raise
                if not event.ack.done():
                    event.ack.set_result(None)
        finally:
            self._fh.close()
            self._fh = None

    async def send(self, event) -> None:
        await self._queue.put(event)
        await event.ack


class StatusLogWriter(LogWriter):
    kind = "status"

    async def report(self, host: Host, text: str) -> None:
        await self.send(StatusEvent(host, text))


class DoneLogWriter(LogWriter):
    """Writes completions, then removes the host from the pending list.

    The done line is synced before the host leaves the pending file, so a
    crash between the two only means the host runs once more.
    """

    kind = "done"

    def __init__(self, path: str | Path, store: HostListStore):
        super().__init__(path)
        self.store = store

    def _handle(self, event) -> None:
        super()._handle(event)
        try:
            remaining = self.store.remove_host(event.host)
        except StoreError as e:
            raise WriterError(str(e)) from e
        log.info("%s: done, %d host(s) still pending", event.host, remaining)

    async def complete(self, host: Host, text: str) -> None:
        await self.send(CompletionEvent(host, text))
