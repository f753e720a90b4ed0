"""
Command-line entry point for cwlogship.

``cwlogship ship`` forwards lines read from stdin to one CloudWatch Logs
destination; ``cwlogship settings`` prints the effective configuration.
"""

from __future__ import annotations

import argparse
import asyncio
import socket
import sys
from typing import Sequence, TextIO

from ..core.diagnostics import install_stderr_handler
from ..core.errors import ShipperError
from ..core.models import ContainerInfo, LogRecord
from ..core.naming import StaticDestinationResolver
from ..core.pipeline import build_pipeline
from ..core.settings import Settings
from ..remote.base import RemoteLogService


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cwlogship",
        description="Ship log lines to AWS CloudWatch Logs.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    ship = sub.add_parser("ship", help="ship stdin lines to one log stream")
    ship.add_argument("--group", required=True, help="log group name")
    ship.add_argument(
        "--stream", default=None, help="log stream name (default: host name)"
    )
    ship.add_argument("--retention-days", default=None, help="group retention in days")
    ship.add_argument("--region", default=None, help="AWS region (default: auto)")
    ship.add_argument("--debug", action="store_true", help="verbose protocol logging")

    sub.add_parser("settings", help="print effective settings as JSON")
    return parser


def _settings_for(args: argparse.Namespace) -> Settings:
    settings = Settings()
    updates: dict[str, object] = {}
    if getattr(args, "debug", False):
        updates["debug"] = True
    if getattr(args, "region", None):
        updates["aws"] = settings.aws.model_copy(update={"region": args.region})
    return settings.model_copy(update=updates) if updates else settings


async def ship(
    args: argparse.Namespace,
    *,
    stream: TextIO | None = None,
    service: RemoteLogService | None = None,
) -> int:
    settings = _settings_for(args)
    install_stderr_handler(debug=settings.debug)
    resolver = StaticDestinationResolver(
        args.group, args.stream or socket.gethostname(), args.retention_days
    )
    source = ContainerInfo(id="stdin", name="stdin", hostname=socket.gethostname())
    lines = stream or sys.stdin

    pipeline = await build_pipeline(settings, resolver=resolver, service=service)
    async with pipeline:
        while True:
            line = await asyncio.to_thread(lines.readline)
            if not line:
                break
            text = line.rstrip("\r\n")
            if text:
                await pipeline.submit(LogRecord(container=source, text=text))
    snap = await pipeline.metrics.snapshot()
    return 0 if snap.batches_dropped == 0 else 2


async def main(argv: Sequence[str] | None = None) -> int:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    try:
        if args.command == "settings":
            print(Settings().to_json())
            return 0
        return await ship(args)
    except ShipperError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cli_main() -> int:
    """CLI main function for non-async entry."""
    return asyncio.run(main())


if __name__ == "__main__":
    sys.exit(cli_main())
