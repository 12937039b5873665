from __future__ import annotations

import argparse
import asyncio
import sys
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path
from typing import TypeVar

from pydantic import ValidationError

from hivemind.config.settings import Settings, get_settings
from hivemind.coord.hive import Hive
from hivemind.coord.scope import find_scope_dir
from hivemind.hooks.router import run_hook
from hivemind.infra.errors import HivemindError, StoreUnavailable
from hivemind.infra.logging import setup_logging
from hivemind.tools.dashboard import dashboard
from hivemind.tools.server import run_server

T = TypeVar("T")

HiveFactory = Callable[[Path, Settings], Hive]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hivemind", description="Multi-agent coordination over a shared document store"
    )
    parser.add_argument(
        "--cwd",
        type=Path,
        default=None,
        help="Directory to search upward from for the scope marker (default: current)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("hook", help="Handle one lifecycle event read from stdin")
    subparsers.add_parser("serve", help="Run the tool server on stdio")
    subparsers.add_parser("sweep", help="Delete messages past the retention window")
    subparsers.add_parser("wake", help="Drain the wake queue once")
    subparsers.add_parser("status", help="Print the coordination dashboard")
    return parser


def run_cli(
    argv: Sequence[str] | None = None,
    *,
    settings: Settings | None = None,
    hive_factory: HiveFactory = Hive.open,
) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        resolved = settings or get_settings()
    except ValidationError as exc:
        print(f"error: invalid configuration: {exc}", file=sys.stderr)
        # A hook must never fail the host action it is attached to.
        return 0 if args.command == "hook" else 2
    setup_logging(
        json_output=resolved.logging.json_output,
        log_level=resolved.logging.level,
        log_file=resolved.logging.file,
    )

    if args.command == "hook":
        return run_hook(sys.stdin, sys.stdout, resolved)
    if args.command == "serve":
        return run_server(resolved)

    scope = find_scope_dir(args.cwd or Path.cwd(), resolved.coord.dirname)
    if scope is None:
        print(f"error: no {resolved.coord.dirname} directory found", file=sys.stderr)
        return 1
    try:
        if args.command == "sweep":
            _with_hive(hive_factory(scope, resolved), _sweep)
        elif args.command == "wake":
            processed = _with_hive(hive_factory(scope, resolved), _wake)
            if processed is None:
                print("wake queue busy")
            else:
                print(f"processed {processed} wake request(s)")
        elif args.command == "status":
            print(_with_hive(hive_factory(scope, resolved), dashboard))
        else:
            parser.error(f"unknown command: {args.command}")
    except HivemindError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


def _with_hive(hive: Hive, action: Callable[[Hive], Awaitable[T]]) -> T:
    async def _run() -> T:
        try:
            if not await hive.ready():
                raise StoreUnavailable("Hivemind not available")
            return await action(hive)
        finally:
            await hive.close()

    return asyncio.run(_run())


async def _sweep(hive: Hive) -> None:
    await hive.messages.sweep()


async def _wake(hive: Hive) -> int | None:
    return await hive.wake.process_once()


def main() -> int:
    return run_cli()


def hook_main() -> int:
    return run_cli(["hook"])


def serve_main() -> int:
    return run_cli(["serve"])


if __name__ == "__main__":
    raise SystemExit(main())
