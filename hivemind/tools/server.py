"""Tool server: hive tools over line-delimited JSON-RPC on stdio.

The server is long-lived (one per agent session). At startup it claims a
codename with a reserved session prefix so the tools answer before any
lifecycle hook has run; the claim is dropped on exit unless a hook adopted
it in the meantime.
"""

from __future__ import annotations

import asyncio
import os
import sys
from pathlib import Path
from typing import IO, Any

import structlog
from pydantic import ValidationError

from hivemind import __version__
from hivemind.config.settings import Settings
from hivemind.constants import PREREGISTERED_PREFIX
from hivemind.coord.hive import Hive
from hivemind.coord.identity import Resolution
from hivemind.coord.scope import TerminalCache, detect_terminal, find_scope_dir
from hivemind.infra.errors import HivemindError, MalformedInput
from hivemind.tools.builtins import register_builtins
from hivemind.tools.context import ToolContext
from hivemind.tools.protocol import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    RPCRequest,
    RPCResponse,
    ToolCallParams,
    failure,
    parse_rpc_request,
    success,
    text_result,
)
from hivemind.tools.registry import ToolRegistry

logger = structlog.get_logger()

PROTOCOL_VERSION = "2024-11-05"
NOT_AVAILABLE = "Hivemind not available"


class ToolServer:
    def __init__(
        self,
        registry: ToolRegistry,
        hive: Hive | None,
        *,
        terminal: str = "",
        tag: str = "",
        preregister: bool = True,
    ) -> None:
        self._registry = registry
        self._hive = hive
        self._terminal = terminal
        self._tag = tag or str(os.getpid())
        self._preregister = preregister
        self._ready = False
        self.claimed: Resolution | None = None

    @property
    def session_id(self) -> str:
        return f"{PREREGISTERED_PREFIX}{self._tag}"

    async def start(self) -> None:
        if self._hive is None:
            logger.info("tool_server_no_scope")
            return
        self._ready = await self._hive.ready()
        if not self._ready:
            logger.info("tool_server_store_not_ready")
            return
        if self._preregister:
            try:
                self.claimed = await self._hive.preregister(self._tag, self._terminal)
            except HivemindError as e:
                logger.warning("tool_server_preregister_failed", error=str(e))

    async def stop(self) -> None:
        if self._hive is None:
            return
        try:
            if self._ready and self.claimed is not None:
                await self._hive.identity.release_preregistered(
                    self.claimed.name, self._tag, created=self.claimed.created
                )
        except HivemindError as e:
            logger.warning("tool_server_release_failed", error=str(e))
        finally:
            await self._hive.close()

    async def handle_line(self, line: str) -> str | None:
        """Process one frame. Returns the response frame, or None for notifications."""
        if not line.strip():
            return None
        try:
            request = parse_rpc_request(line)
        except ValueError as e:
            # ValidationError is a ValueError subclass; tell them apart for the code.
            code = INVALID_REQUEST if isinstance(e, ValidationError) else PARSE_ERROR
            return failure(None, code, f"Invalid request: {e}").render()
        response = await self.handle(request)
        return response.render() if response is not None else None

    async def handle(self, request: RPCRequest) -> RPCResponse | None:
        method = request.method
        if method == "initialize":
            return success(
                request.id,
                {
                    "protocolVersion": PROTOCOL_VERSION,
                    "serverInfo": {"name": "hivemind", "version": __version__},
                    "capabilities": {"tools": {}},
                },
            )
        if method.startswith("notifications/"):
            return None
        if method == "tools/list":
            return success(request.id, {"tools": self._registry.get_tools_schema()})
        if method == "tools/call":
            return await self._call_tool(request)
        if request.is_notification:
            return None
        return failure(request.id, METHOD_NOT_FOUND, f"Method not found: {method}")

    async def _call_tool(self, request: RPCRequest) -> RPCResponse:
        try:
            params = ToolCallParams.model_validate(request.params)
        except ValidationError as e:
            return failure(request.id, INVALID_PARAMS, f"Invalid tool call: {e}")

        tool = self._registry.get(params.name)
        if tool is None:
            return failure(request.id, METHOD_NOT_FOUND, f"Unknown tool: {params.name}")

        arguments = dict(params.arguments)
        missing = [key for key in tool.required if arguments.get(key) in (None, "")]
        if missing:
            return failure(
                request.id,
                INVALID_PARAMS,
                f"Missing required parameters: {' and '.join(missing)}",
            )
        if not self._ready or self._hive is None:
            return success(request.id, text_result(NOT_AVAILABLE))

        context = ToolContext(
            hive=self._hive,
            session_id=_str_arg(arguments.pop("session_id", None)) or self.session_id,
            terminal=_str_arg(arguments.pop("tty", None)) or self._terminal,
        )
        try:
            text = await tool.execute(arguments, context)
        except MalformedInput as e:
            return failure(request.id, INVALID_PARAMS, str(e))
        except HivemindError as e:
            logger.info("tool_call_failed", tool_name=tool.name, code=e.code, error=str(e))
            return success(request.id, text_result(str(e), is_error=True))
        except Exception:
            logger.exception("tool_call_crashed", tool_name=tool.name)
            return failure(request.id, INTERNAL_ERROR, f"Tool {tool.name} failed")
        return success(request.id, text_result(text))


def _str_arg(value: Any) -> str:
    return value if isinstance(value, str) else ""


async def serve(server: ToolServer, stdin: IO[str], stdout: IO[str]) -> None:
    await server.start()
    try:
        while True:
            line = await asyncio.to_thread(stdin.readline)
            if not line:
                break
            frame = await server.handle_line(line)
            if frame is not None:
                stdout.write(frame + "\n")
                stdout.flush()
    finally:
        await server.stop()


def locate_scope(settings: Settings, terminal: str, cwd: Path | None = None) -> Path | None:
    """Scope from the working directory, else the one a hook cached for this terminal."""
    scope = find_scope_dir(cwd or Path.cwd(), settings.coord.dirname)
    if scope is None:
        cached = TerminalCache(settings.coord.cache_dir).read_scope(terminal)
        if cached is not None and cached.is_dir():
            scope = cached
    return scope


def run_server(
    settings: Settings,
    *,
    stdin: IO[str] = sys.stdin,
    stdout: IO[str] = sys.stdout,
) -> int:
    terminal = detect_terminal()
    scope = locate_scope(settings, terminal)
    hive = Hive.open(scope, settings) if scope is not None else None

    registry = ToolRegistry()
    register_builtins(registry)
    server = ToolServer(
        registry, hive, terminal=terminal, preregister=settings.coord.preregister
    )
    logger.info("tool_server_starting", scope=str(scope) if scope else None, terminal=terminal)
    asyncio.run(serve(server, stdin, stdout))
    return 0
