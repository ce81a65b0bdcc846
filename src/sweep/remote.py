"""SSH operations against a single host: probe, copy and execute."""

from __future__ import annotations

import asyncio
import logging
import shlex
from pathlib import PurePosixPath
from typing import Callable

import asyncssh

from .config import Config
from .errors import HostError
from .hosts import Host

log = logging.getLogger(__name__)

# (host, line) -> None
LineCallback = Callable[[Host, str], None]


class SSHRemote:
    """Talks to hosts over asyncssh using the configured user and key."""

    def __init__(self, config: Config):
        self.config = config

    @property
    def remote_dir(self) -> str:
        if self.config.remote_dir:
            return self.config.remote_dir
        if self.config.user == "root":
            return "/root"
        return f"/home/{self.config.user}"

    @property
    def remote_script(self) -> str:
        return str(PurePosixPath(self.remote_dir) / self.config.script.name)

    def command_for(self, host: Host) -> str:
        """The privileged shell invocation that runs the copied script."""
        inner = f"export NODENAME={shlex.quote(host.name)}; {shlex.quote(self.remote_script)}"
        return f"sudo bash -c {shlex.quote(inner)}"

    def _connect(self, host: Host):
        return asyncssh.connect(
            host.address,
            port=self.config.port,
            username=self.config.user,
            client_keys=[str(self.config.ssh_key)],
            known_hosts=None,  # Same as scp/ssh with StrictHostKeyChecking=no
            connect_timeout=self.config.connect_timeout,
        )

    async def probe(self, host: Host) -> None:
        """Check the SSH port answers within ``probe_timeout`` seconds."""
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host.address, self.config.port),
                timeout=self.config.probe_timeout,
            )
        except (asyncio.TimeoutError, OSError) as e:
            raise HostError("probe", f"unable to reach host: {str(e) or 'timed out'}") from e
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass

    async def copy(self, host: Host) -> str:
        """Copy the script into ``remote_dir``, preserving its mode."""
        try:
            async with self._connect(host) as conn:
                await asyncssh.scp(
                    str(self.config.script),
                    (conn, self.remote_dir),
                    preserve=True,
                )
        except (asyncssh.Error, OSError, ValueError, asyncio.TimeoutError) as e:
            raise HostError("copy", f"failed to copy script: {e}") from e
        return f"copied {self.config.script.name} to {host.address}:{self.remote_dir}"

    async def execute(self, host: Host, on_line: LineCallback | None = None) -> list[str]:
        """Run the script and return its output lines.

        Stdout and stderr are read line by line while the script runs;
        stderr lines carry a ``STDERR: `` prefix.
        """
        lines: list[str] = []

        async def read_stream(stream, is_stderr: bool = False):
            while True:
                line = await stream.readline()
                if not line:
                    break
                line = line.rstrip("\n\r")
                prefix = "STDERR: " if is_stderr else ""
                lines.append(f"{prefix}{line}")
                if on_line:
                    on_line(host, f"{prefix}{line}")

        command = self.command_for(host)
        log.debug("%s: running %s", host, command)
        try:
            async with self._connect(host) as conn:
                async with conn.create_process(command, encoding="utf-8") as proc:
                    await asyncio.gather(
                        read_stream(proc.stdout),
                        read_stream(proc.stderr, is_stderr=True),
                    )
                    await proc.wait()
                    exit_status = proc.exit_status
        except (asyncssh.Error, OSError, ValueError, asyncio.TimeoutError) as e:
            raise HostError("execute", f"ssh cmd failed: {e}: {','.join(lines)}") from e

        if exit_status != 0:
            raise HostError(
                "execute",
                f"ssh cmd failed: exit status {exit_status}: {','.join(lines)}",
            )
        return lines
