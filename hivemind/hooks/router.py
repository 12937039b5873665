"""Single entry point for host lifecycle events.

The router never fails the host action: malformed payloads, a missing scope,
an unreachable store and handler errors all end in a silent exit 0.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from pathlib import Path
from typing import IO, Any

import structlog
from pydantic import ValidationError

from hivemind.config.settings import Settings
from hivemind.coord.hive import Hive
from hivemind.coord.scope import detect_terminal, find_scope_dir
from hivemind.hooks.handlers import HANDLERS, HookCall
from hivemind.hooks.protocol import HookInput, HookOutput
from hivemind.infra.errors import HivemindError

logger = structlog.get_logger()

HiveFactory = Callable[[Path, Settings], Hive]


async def dispatch(
    payload: dict[str, Any],
    settings: Settings,
    *,
    hive_factory: HiveFactory = Hive.open,
    terminal_fn: Callable[[], str] = detect_terminal,
) -> HookOutput | None:
    try:
        event = HookInput.model_validate(payload)
    except ValidationError as e:
        logger.warning("hook_payload_invalid", error=str(e))
        return None

    handler = HANDLERS.get(event.hook_event_name)
    if handler is None:
        logger.debug("hook_event_ignored", hook_event=event.hook_event_name)
        return None
    if not event.cwd or not event.session_id:
        return None
    scope_dir = find_scope_dir(event.cwd, settings.coord.dirname)
    if scope_dir is None:
        return None

    hive = hive_factory(scope_dir, settings)
    try:
        if not await hive.ready():
            logger.info("hook_store_not_ready", hook_event=event.hook_event_name)
            return None
        structlog.contextvars.bind_contextvars(
            hook_event=event.hook_event_name, session_id=event.session_id
        )
        return await handler(HookCall(hive=hive, event=event, terminal=terminal_fn()))
    except HivemindError as e:
        logger.warning("hook_failed", error=str(e), code=e.code)
        return None
    except Exception:
        logger.exception("hook_crashed")
        return None
    finally:
        structlog.contextvars.unbind_contextvars("hook_event", "session_id")
        await hive.close()


def run_hook(stdin: IO[str], stdout: IO[str], settings: Settings) -> int:
    """Read one event from stdin, write the control message (if any) to stdout."""
    raw = stdin.read()
    try:
        payload = json.loads(raw) if raw.strip() else {}
    except json.JSONDecodeError as e:
        logger.warning("hook_payload_not_json", error=str(e))
        return 0
    if not isinstance(payload, dict):
        return 0
    output = asyncio.run(dispatch(payload, settings))
    if output is not None:
        stdout.write(output.render())
        stdout.flush()
    return 0
