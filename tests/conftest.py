"""Shared fixtures for sweep tests."""

from __future__ import annotations

import asyncio
from pathlib import Path

import asyncssh
import pytest

from sweep.config import Config
from sweep.errors import HostError
from sweep.hosts import Host


class FakeRemote:
    """Stands in for SSHRemote; records calls and fails on request."""

    def __init__(
        self, unreachable=(), copy_fail=(), exec_fail=(), flaky=None, crash=(), delay=None
    ):
        self.unreachable = set(unreachable)
        self.copy_fail = set(copy_fail)
        self.exec_fail = set(exec_fail)
        # address -> number of probes that fail before the host answers
        self.flaky = dict(flaky or {})
        # addresses whose probe raises something other than HostError
        self.crash = set(crash)
        # address -> seconds execute takes
        self.delay = dict(delay or {})
        self.calls: list[tuple[str, str]] = []

    async def probe(self, host: Host) -> None:
        self.calls.append(("probe", host.address))
        if host.address in self.unreachable:
            raise HostError("probe", "unable to reach host: timed out")
        if host.address in self.crash:
            raise RuntimeError(f"unexpected failure on {host.address}")
        if self.flaky.get(host.address, 0) > 0:
            self.flaky[host.address] -= 1
            raise HostError("probe", "unable to reach host: connection refused")

    async def copy(self, host: Host) -> str:
        self.calls.append(("copy", host.address))
        if host.address in self.copy_fail:
            raise HostError("copy", "failed to copy script: permission denied")
        return f"copied deploy.sh to {host.address}"

    async def execute(self, host: Host, on_line=None) -> list[str]:
        self.calls.append(("execute", host.address))
        if host.address in self.delay:
            await asyncio.sleep(self.delay[host.address])
        lines = [f"hello from {host.name}", "bye"]
        for line in lines:
            if on_line:
                on_line(host, line)
        if host.address in self.exec_fail:
            raise HostError("execute", "ssh cmd failed: exit status 1: boom")
        return lines

    def stages(self, address: str) -> list[str]:
        return [stage for stage, addr in self.calls if addr == address]


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    (tmp_path / "deploy.sh").write_text("#!/bin/bash\necho hello from $NODENAME\n")
    asyncssh.generate_private_key("ssh-ed25519").write_private_key(str(tmp_path / "id_rsa"))
    (tmp_path / "bad_rsa").write_text("not a real key\n")
    return tmp_path


@pytest.fixture
def config(workdir: Path) -> Config:
    return Config(
        script=workdir / "deploy.sh",
        user="deploy",
        ssh_key=workdir / "id_rsa",
        hosts_file=workdir / "hosts.txt",
        status_log=workdir / "status.log",
        done_log=workdir / "done.log",
        round_delay=0,
    )


def write_hosts(path: Path, *lines: str) -> None:
    path.write_text("".join(line + "\n" for line in lines))


def read_lines(path: Path) -> list[str]:
    if not path.exists():
        return []
    return path.read_text().splitlines()
