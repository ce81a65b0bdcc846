"""Round-based execution engine for sweep."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Protocol

from .config import Config
from .errors import HostError, WriterError
from .hosts import Host, HostListStore
from .remote import LineCallback, SSHRemote
from .writers import DoneLogWriter, StatusLogWriter

log = logging.getLogger(__name__)


class HostStatus(Enum):
    """Stage a host has reached in the current round."""

    INIT = "init"
    PROBING = "probing"
    REACHABLE = "reachable"
    COPYING = "copying"
    COPIED = "copied"
    EXECUTING = "executing"
    EXECUTED = "executed"
    FAILED = "failed"


@dataclass
class HostState:
    """Runtime state for a host."""

    host: Host
    status: HostStatus = HostStatus.INIT
    round: int = 0
    output_lines: list[str] = field(default_factory=list)
    error_message: str = ""


class Remote(Protocol):
    async def probe(self, host: Host) -> None: ...

    async def copy(self, host: Host) -> str: ...

    async def execute(self, host: Host, on_line: LineCallback | None = None) -> list[str]: ...


# Type aliases for callbacks
OutputCallback = Callable[[Host, str], None]  # (host, line) -> None
StatusCallback = Callable[[Host, HostStatus], None]  # (host, status) -> None
RoundStartCallback = Callable[[int, list[Host]], None]  # (round, pending) -> None


@dataclass
class RoundResult:
    round: int
    completed: list[Host]
    failed: list[Host]


RoundEndCallback = Callable[[RoundResult], None]


class HostTask:
    """Drives one host through probe, copy and execute for one round.

    Every status line is acknowledged by the status writer before the task
    moves on. A failure at any stage is written to the status log and ends
    the task without a completion, leaving the host pending.
    """

    def __init__(
        self,
        state: HostState,
        remote: Remote,
        status_writer: StatusLogWriter,
        done_writer: DoneLogWriter,
        on_output: OutputCallback | None = None,
        on_status: StatusCallback | None = None,
    ):
        self.state = state
        self.host = state.host
        self.remote = remote
        self.status_writer = status_writer
        self.done_writer = done_writer
        self.on_output = on_output
        self.on_status = on_status

    def _emit_output(self, line: str) -> None:
        self.state.output_lines.append(line)
        if self.on_output:
            self.on_output(self.host, line)

    def _emit_status(self, status: HostStatus) -> None:
        self.state.status = status
        if self.on_status:
            self.on_status(self.host, status)

    def _note(self, message: str) -> None:
        log.info("%s: %s", self.host, message)
        self._emit_output(message)

    async def run(self) -> bool:
        """Returns True if the host completed and left the pending list."""
        host = self.host
        try:
            self._emit_status(HostStatus.PROBING)
            self._note("trying to connect")
            await self.remote.probe(host)
            self._emit_status(HostStatus.REACHABLE)
            self._note("got ack for connection")

            self._emit_status(HostStatus.COPYING)
            self._note("trying to copy script")
            copied = await self.remote.copy(host)
            self._emit_status(HostStatus.COPIED)
            self._note("script copied")
            await self.status_writer.report(host, f"info: script copied: {copied}")

            self._emit_status(HostStatus.EXECUTING)
            self._note("trying to execute script")
            lines = await self.remote.execute(
                host, on_line=lambda _host, line: self._emit_output(line)
            )
        except HostError as e:
            self.state.error_message = str(e)
            log.warning("%s: %s failed: %s", host, e.stage, e)
            self._emit_output(f"ERROR: {e}")
            self._emit_status(HostStatus.FAILED)
            await self.status_writer.report(host, f"error: {e}")
            return False

        output = ",".join(lines)
        self._emit_status(HostStatus.EXECUTED)
        self._note("script executed")
        await self.status_writer.report(host, f"info: script ok: {output}")
        await self.done_writer.complete(host, output)
        return True


class Orchestrator:
    """Runs rounds over the pending-host list until it is empty."""

    def __init__(
        self,
        config: Config,
        remote: Remote | None = None,
        on_output: OutputCallback | None = None,
        on_status: StatusCallback | None = None,
        on_round_start: RoundStartCallback | None = None,
        on_round_end: RoundEndCallback | None = None,
    ):
        self.config = config
        self.store = HostListStore(config.hosts_file)
        self.remote = remote if remote is not None else SSHRemote(config)
        self.on_output = on_output
        self.on_status = on_status
        self.on_round_start = on_round_start
        self.on_round_end = on_round_end
        self.states: dict[str, HostState] = {}
        self.rounds = 0

    async def run(self) -> int:
        """Loop until no hosts are pending. Returns the number of rounds run."""
        while True:
            hosts = self.store.load_all()
            if not hosts:
                log.info("All hosts done after %d round(s)", self.rounds)
                return self.rounds

            await self.run_round(hosts)

            # Keep unreachable hosts from being hammered with reconnects.
            await asyncio.sleep(self.config.round_delay)

    async def run_round(self, hosts: list[Host]) -> RoundResult:
        """Run one task per host, with a fresh pair of log writers."""
        self.rounds += 1
        log.info("Round %d: %d host(s) pending", self.rounds, len(hosts))
        if self.on_round_start:
            self.on_round_start(self.rounds, hosts)

        status_writer = StatusLogWriter(self.config.status_log)
        done_writer = DoneLogWriter(self.config.done_log, self.store)
        writers = [status_writer, done_writer]
        writer_tasks = [
            asyncio.create_task(w.run(), name=f"{w.kind}-writer") for w in writers
        ]

        tasks = []
        for host in hosts:
            state = HostState(host=host, round=self.rounds)
            self.states[host.address] = state
            task = HostTask(
                state,
                self.remote,
                status_writer,
                done_writer,
                on_output=self.on_output,
                on_status=self.on_status,
            )
            tasks.append(asyncio.create_task(task.run(), name=f"host-{host.address}"))

        # Per-round join over the host tasks only.
        joined = asyncio.gather(*tasks)
        done, _ = await asyncio.wait(
            {joined, *writer_tasks}, return_when=asyncio.FIRST_COMPLETED
        )
        if joined not in done:
            # A writer exited before the hosts finished; that only happens on error.
            log.error("Log writer stopped mid-round, cancelling %d host task(s)", len(tasks))
            aborted = True
        else:
            aborted = joined.exception() is not None
            if aborted:
                log.error("Host task raised %r, cancelling the rest of the round", joined.exception())
        if aborted:
            for task in tasks:
                task.cancel()
        # No host task may still be sending once the writers are told to stop.
        await asyncio.gather(*tasks, return_exceptions=True)

        for w in writers:
            w.stop()
        writer_results = await asyncio.gather(*writer_tasks, return_exceptions=True)
        (outcome,) = await asyncio.gather(joined, return_exceptions=True)

        for result in writer_results:
            if isinstance(result, BaseException):
                raise result
        if isinstance(outcome, asyncio.CancelledError):
            raise WriterError("log writer exited before the round finished")
        if isinstance(outcome, BaseException):
            raise outcome

        completed = [h for h, ok in zip(hosts, outcome) if ok]
        failed = [h for h, ok in zip(hosts, outcome) if not ok]
        log.info(
            "Round %d finished: %d completed, %d failed",
            self.rounds, len(completed), len(failed),
        )
        result = RoundResult(round=self.rounds, completed=completed, failed=failed)
        if self.on_round_end:
            self.on_round_end(result)
        return result
