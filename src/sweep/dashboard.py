"""Textual dashboard that follows a sweep run round by round."""

from __future__ import annotations

from rich.text import Text
from textual.app import App, ComposeResult
from textual.containers import Horizontal
from textual.message import Message
from textual.reactive import reactive
from textual.widgets import DataTable, Footer, Header, RichLog, Static
from textual.worker import Worker, WorkerState

from .config import Config
from .errors import SweepError
from .executor import HostStatus, Orchestrator, Remote, RoundResult
from .hosts import Host, HostListStore

STATUS_STYLES = {
    HostStatus.INIT: "dim",
    HostStatus.EXECUTED: "bold green",
    HostStatus.FAILED: "bold red",
}


class RoundSummary(Static):
    """One-line summary: current round, what is left and what is done."""

    round: reactive[int] = reactive(0)
    pending: reactive[int] = reactive(0)
    done: reactive[int] = reactive(0)
    failed: reactive[int] = reactive(0)
    state: reactive[str] = reactive("starting")

    def render(self) -> str:
        return (
            f"Round {self.round} | {self.pending} pending | {self.done} done"
            f" | {self.failed} failed last round | {self.state}"
        )


class HostTable(DataTable):
    """One row per host ever seen in the pending list."""

    def __init__(self, **kwargs) -> None:
        super().__init__(cursor_type="row", **kwargs)
        self._known: set[str] = set()

    def track(self, host: Host) -> None:
        if host.address in self._known:
            return
        if not self.columns:
            self.add_column("Address", key="address")
            self.add_column("Name", key="name")
            self.add_column("Status", key="status")
            self.add_column("Round", key="round")
            self.add_column("Last output", key="last")
        self._known.add(host.address)
        self.add_row(
            host.address, host.name, Text("pending", style="dim"), "-", "",
            key=host.address,
        )

    def set_status(self, host: Host, status: HostStatus, round_number: int) -> None:
        self.track(host)
        style = STATUS_STYLES.get(status, "yellow")
        self.update_cell(host.address, "status", Text(status.value, style=style))
        self.update_cell(host.address, "round", str(round_number))

    def set_last(self, host: Host, line: str) -> None:
        self.track(host)
        self.update_cell(host.address, "last", line)


class HostLine(Message):
    def __init__(self, host: Host, line: str) -> None:
        self.host = host
        self.line = line
        super().__init__()


class HostUpdate(Message):
    def __init__(self, host: Host, status: HostStatus) -> None:
        self.host = host
        self.status = status
        super().__init__()


class RoundStarted(Message):
    def __init__(self, round_number: int, hosts: list[Host]) -> None:
        self.round_number = round_number
        self.hosts = hosts
        super().__init__()


class RoundFinished(Message):
    def __init__(self, result: RoundResult) -> None:
        self.result = result
        super().__init__()


class Dashboard(App):
    """Runs the orchestrator in a worker and renders its progress."""

    TITLE = "sweep"

    CSS = """
    RoundSummary {
        dock: top;
        height: 1;
        padding: 0 1;
        background: $boost;
    }

    #body {
        height: 1fr;
    }

    HostTable {
        width: 3fr;
    }

    #events {
        width: 2fr;
        border-left: solid $primary;
        padding: 0 1;
    }
    """

    BINDINGS = [("q", "quit", "Quit")]

    def __init__(self, config: Config, remote: Remote | None = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self.config = config
        self.remote = remote
        # Read up front so a bad hosts file fails before the screen takes over.
        self.initial_hosts = HostListStore(config.hosts_file).load_all()
        self.orchestrator: Orchestrator | None = None
        self.fatal_error = ""
        self._worker: Worker | None = None

    def compose(self) -> ComposeResult:
        yield Header()
        yield RoundSummary(id="summary")
        with Horizontal(id="body"):
            yield HostTable(id="hosts")
            yield RichLog(id="events", markup=True, wrap=True)
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one(HostTable)
        for host in self.initial_hosts:
            table.track(host)
        self.query_one(RoundSummary).pending = len(self.initial_hosts)

        self.orchestrator = Orchestrator(
            self.config,
            remote=self.remote,
            on_output=lambda host, line: self.post_message(HostLine(host, line)),
            on_status=lambda host, status: self.post_message(HostUpdate(host, status)),
            on_round_start=lambda n, hosts: self.post_message(RoundStarted(n, hosts)),
            on_round_end=lambda result: self.post_message(RoundFinished(result)),
        )
        self._worker = self.run_worker(self._sweep(), exclusive=True, exit_on_error=False)

    async def _sweep(self) -> int:
        if self.orchestrator is None:
            return 0
        try:
            return await self.orchestrator.run()
        except SweepError as e:
            self.fatal_error = str(e)
            raise

    def _event(self, text: str) -> None:
        self.query_one("#events", RichLog).write(text)

    def on_round_started(self, message: RoundStarted) -> None:
        summary = self.query_one(RoundSummary)
        summary.round = message.round_number
        summary.pending = len(message.hosts)
        summary.state = "running"
        table = self.query_one(HostTable)
        for host in message.hosts:
            table.track(host)
        self._event(f"[bold]round {message.round_number}[/]: {len(message.hosts)} host(s) pending")

    def on_host_line(self, message: HostLine) -> None:
        self.query_one(HostTable).set_last(message.host, message.line)

    def on_host_update(self, message: HostUpdate) -> None:
        summary = self.query_one(RoundSummary)
        self.query_one(HostTable).set_status(message.host, message.status, summary.round)
        if message.status == HostStatus.EXECUTED:
            summary.done += 1
            summary.pending -= 1
            self._event(f"[green]{message.host}[/]: script ok")
        elif message.status == HostStatus.FAILED and self.orchestrator:
            state = self.orchestrator.states.get(message.host.address)
            error = state.error_message if state else ""
            self._event(f"[red]{message.host}[/]: {error}")

    def on_round_finished(self, message: RoundFinished) -> None:
        result = message.result
        summary = self.query_one(RoundSummary)
        summary.failed = len(result.failed)
        if result.failed:
            summary.state = f"retrying in {self.config.round_delay:g}s"
        self._event(
            f"round {result.round} finished: "
            f"{len(result.completed)} done, {len(result.failed)} failed"
        )

    def on_worker_state_changed(self, event: Worker.StateChanged) -> None:
        if event.worker is not self._worker:
            return
        summary = self.query_one(RoundSummary)
        if event.state == WorkerState.SUCCESS:
            summary.state = "complete"
            self._event("[bold green]all hosts done[/]")
        elif event.state == WorkerState.ERROR:
            error = self.fatal_error or str(event.worker.error)
            summary.state = f"aborted: {error}"
            self._event(f"[bold red]aborted[/]: {error}")

    async def action_quit(self) -> None:
        if self._worker and self._worker.is_running:
            self._worker.cancel()
        self.exit()
