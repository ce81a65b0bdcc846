#!/usr/bin/env python3
"""Main entry point for sweep."""

import argparse
import asyncio
import logging
import sys

from .config import Config, apply_overrides, load_config, validate_config
from .errors import ConfigError, SweepError
from .executor import HostStatus, Orchestrator
from .hosts import Host

log = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sweep",
        description="Run a script on every host in a pending list until all have completed",
    )
    parser.add_argument("--config", "-c", help="Path to YAML configuration file")
    parser.add_argument("--script", help="The script to execute on each host")
    parser.add_argument("--user", help="SSH user on the remote hosts")
    parser.add_argument("--key", dest="ssh_key", help="Private key file for SSH authentication")
    parser.add_argument("--hosts", dest="hosts_file", help="Pending-host file (default: hosts.txt)")
    parser.add_argument("--status-log", help="Status log file (default: status.log)")
    parser.add_argument("--done-log", help="Done log file (default: done.log)")
    parser.add_argument("--port", type=int, help="SSH port (default: 22)")
    parser.add_argument("--round-delay", type=float, help="Seconds to wait between rounds (default: 5)")
    parser.add_argument(
        "--dashboard",
        action="store_true",
        help="Run with the TUI dashboard",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    return parser


def resolve_config(args: argparse.Namespace) -> Config:
    """Merge the YAML file (if any) with command-line overrides and validate."""
    config = load_config(args.config) if args.config else Config()
    apply_overrides(config, {
        "script": args.script,
        "user": args.user,
        "ssh_key": args.ssh_key,
        "hosts_file": args.hosts_file,
        "status_log": args.status_log,
        "done_log": args.done_log,
        "port": args.port,
        "round_delay": args.round_delay,
    })
    validate_config(config)
    return config


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    # Keep log lines off the terminal while the dashboard owns it.
    logging.basicConfig(
        filename="sweep.log" if args.dashboard else None,
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        config = resolve_config(args)
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 1

    if not args.dashboard:
        return _run_headless(config)

    from .dashboard import Dashboard

    try:
        app = Dashboard(config)
    except SweepError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    app.run()

    if app.fatal_error:
        print(f"Error: {app.fatal_error}", file=sys.stderr)
        return 1
    return 0


def _run_headless(config: Config) -> int:
    """Run the orchestrator printing per-host output to the terminal."""
    colors = [
        "\033[36m",  # Cyan
        "\033[33m",  # Yellow
        "\033[35m",  # Magenta
        "\033[32m",  # Green
        "\033[34m",  # Blue
        "\033[91m",  # Light Red
        "\033[96m",  # Light Cyan
        "\033[93m",  # Light Yellow
    ]
    reset = "\033[0m"
    host_colors: dict[str, str] = {}

    def color_for(host: Host) -> str:
        if host.address not in host_colors:
            host_colors[host.address] = colors[len(host_colors) % len(colors)]
        return host_colors[host.address]

    def on_output(host: Host, line: str) -> None:
        print(f"{color_for(host)}[{host.name}]{reset} {line}")

    def on_status(host: Host, status: HostStatus) -> None:
        if status in (HostStatus.EXECUTED, HostStatus.FAILED):
            print(f"{color_for(host)}[{host.name}]{reset} Status: {status.value}")

    orchestrator = Orchestrator(config, on_output=on_output, on_status=on_status)

    try:
        rounds = asyncio.run(orchestrator.run())
    except SweepError as e:
        log.error("%s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted; pending hosts are kept for the next run", file=sys.stderr)
        return 130

    print(f"\nAll hosts done after {rounds} round(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
