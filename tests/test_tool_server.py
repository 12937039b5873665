from __future__ import annotations

import io
import json
from pathlib import Path

import pytest
import pytest_asyncio

from hivemind.config.settings import Settings
from hivemind.coord.hive import Hive
from hivemind.coord.scope import TerminalCache
from hivemind.tools.builtins import register_builtins
from hivemind.tools.protocol import INVALID_PARAMS, METHOD_NOT_FOUND, PARSE_ERROR
from hivemind.tools.registry import ToolRegistry
from hivemind.tools.server import NOT_AVAILABLE, ToolServer, locate_scope, serve

SERVER_TTY = "/dev/ttys009"


def _registry() -> ToolRegistry:
    registry = ToolRegistry()
    register_builtins(registry)
    return registry


def _frame(method: str, params: dict | None = None, request_id: int | None = 1) -> str:
    payload: dict = {"jsonrpc": "2.0", "method": method, "params": params or {}}
    if request_id is not None:
        payload["id"] = request_id
    return json.dumps(payload)


async def _call(server: ToolServer, tool: str, **arguments) -> dict:
    raw = await server.handle_line(_frame("tools/call", {"name": tool, "arguments": arguments}))
    return json.loads(raw)


def _text(response: dict) -> str:
    return response["result"]["content"][0]["text"]


@pytest_asyncio.fixture
async def server(hive: Hive) -> ToolServer:
    srv = ToolServer(_registry(), hive, terminal=SERVER_TTY, tag="777")
    await srv.start()
    return srv


class TestProtocol:
    @pytest.mark.asyncio
    async def test_initialize(self, server: ToolServer) -> None:
        response = json.loads(await server.handle_line(_frame("initialize")))
        assert response["id"] == 1
        assert response["result"]["protocolVersion"] == "2024-11-05"
        assert response["result"]["serverInfo"]["name"] == "hivemind"

    @pytest.mark.asyncio
    async def test_tools_list(self, server: ToolServer) -> None:
        response = json.loads(await server.handle_line(_frame("tools/list")))
        tools = {t["name"]: t for t in response["result"]["tools"]}
        assert set(tools) == {
            "hive_whoami",
            "hive_agents",
            "hive_status",
            "hive_message",
            "hive_task",
            "hive_changes",
            "hive_inbox",
            "hive_help",
        }
        assert tools["hive_message"]["inputSchema"]["required"] == ["target", "body"]

    @pytest.mark.asyncio
    async def test_notifications_get_no_reply(self, server: ToolServer) -> None:
        notification = _frame("notifications/initialized", request_id=None)
        assert await server.handle_line(notification) is None
        assert await server.handle_line("   ") is None

    @pytest.mark.asyncio
    async def test_unknown_method(self, server: ToolServer) -> None:
        response = json.loads(await server.handle_line(_frame("resources/list", request_id=7)))
        assert response["id"] == 7
        assert response["error"]["code"] == METHOD_NOT_FOUND

    @pytest.mark.asyncio
    async def test_parse_error(self, server: ToolServer) -> None:
        response = json.loads(await server.handle_line("{nope"))
        assert response["id"] is None
        assert response["error"]["code"] == PARSE_ERROR

    @pytest.mark.asyncio
    async def test_unknown_tool(self, server: ToolServer) -> None:
        response = await _call(server, "hive_teleport")
        assert response["error"]["code"] == METHOD_NOT_FOUND

    @pytest.mark.asyncio
    async def test_missing_required_parameters(self, server: ToolServer) -> None:
        response = await _call(server, "hive_message")
        assert response["error"] == {
            "code": INVALID_PARAMS,
            "message": "Missing required parameters: target and body",
        }


class TestPreregistration:
    @pytest.mark.asyncio
    async def test_claims_name_before_hooks(self, server: ToolServer) -> None:
        assert server.claimed is not None
        assert server.claimed.name == "alfa"
        assert _text(await _call(server, "hive_whoami")) == "alfa"

    @pytest.mark.asyncio
    async def test_unadopted_claim_released_on_stop(self, server: ToolServer, hive: Hive):
        await server.stop()
        assert await hive.registry.get_by_name("alfa") is None

    @pytest.mark.asyncio
    async def test_adopted_claim_survives_stop(self, server: ToolServer, hive: Hive) -> None:
        await hive.claim_identity(SERVER_TTY, "sess-a")
        await server.stop()
        assert (await hive.registry.get_by_name("alfa")).session_handle == "sess-a"

    @pytest.mark.asyncio
    async def test_reissued_name_starts_with_empty_inbox(self, hive: Hive) -> None:
        await hive.claim_identity("/dev/ttys001", "sess-a")
        await hive.claim_identity("/dev/ttys002", "sess-b")
        await hive.send_message("bravo", "alfa", "stale news")
        await hive.end_agent("alfa")
        await hive.end_agent("bravo")

        srv = ToolServer(_registry(), hive, terminal=SERVER_TTY, tag="55")
        await srv.start()
        assert srv.claimed is not None
        assert (srv.claimed.name, srv.claimed.created) == ("alfa", True)

        adopted = await hive.claim_identity(SERVER_TTY, "sess-c")
        assert adopted.name == "alfa"
        assert adopted.created is False
        assert await hive.messages.pending("alfa") == []

    @pytest.mark.asyncio
    async def test_restarted_terminal_keeps_codename_and_mail(self, hive: Hive) -> None:
        await hive.claim_identity("/dev/ttys001", "sess-a")
        await hive.claim_identity(SERVER_TTY, "sess-b")
        await hive.send_message("alfa", "bravo", "still yours")
        await hive.end_agent("bravo")

        srv = ToolServer(_registry(), hive, terminal=SERVER_TTY, tag="56")
        await srv.start()
        assert srv.claimed is not None
        assert srv.claimed.name == "bravo"
        assert [m.body for m in await hive.messages.pending("bravo")] == ["still yours"]

        await srv.stop()
        bravo = await hive.registry.get_by_name("bravo")
        assert bravo is not None and bravo.is_ended


class TestToolCalls:
    @pytest.mark.asyncio
    async def test_injected_identity_wins(self, server: ToolServer, hive: Hive) -> None:
        await hive.claim_identity("/dev/ttys001", "sess-b")
        response = await _call(server, "hive_whoami", session_id="sess-b", tty="/dev/ttys001")
        assert _text(response) == "bravo"

    @pytest.mark.asyncio
    async def test_message_to_idle_agent_wakes_it(self, server: ToolServer, hive: Hive, nudger):
        await hive.claim_identity("/dev/ttys001", "sess-b")
        response = await _call(server, "hive_message", target="bravo", body="ping")
        assert _text(response) == 'Message sent to bravo (idle - waking agent): "ping"'
        assert nudger.nudged == ["/dev/ttys001"]

    @pytest.mark.asyncio
    async def test_unknown_recipient_is_tool_error(self, server: ToolServer) -> None:
        response = await _call(server, "hive_message", target="zulu", body="ping")
        assert response["result"]["isError"] is True
        assert _text(response) == "Agent 'zulu' not found. Active agents: alfa"

    @pytest.mark.asyncio
    async def test_bad_priority_is_invalid_params(self, server: ToolServer, hive: Hive) -> None:
        await hive.claim_identity("/dev/ttys001", "sess-b")
        response = await _call(
            server, "hive_message", target="bravo", body="ping", priority="meh"
        )
        assert response["error"]["code"] == INVALID_PARAMS

    @pytest.mark.asyncio
    async def test_unknown_session(self, hive: Hive) -> None:
        srv = ToolServer(_registry(), hive, tag="1", preregister=False)
        await srv.start()
        response = await _call(srv, "hive_task", description="x", session_id="ghost")
        assert response["result"]["isError"] is True
        assert _text(response) == "Unknown session"
        assert _text(await _call(srv, "hive_whoami")) == "Unknown session"

    @pytest.mark.asyncio
    async def test_no_scope_means_not_available(self) -> None:
        srv = ToolServer(_registry(), None)
        await srv.start()
        assert _text(await _call(srv, "hive_agents")) == NOT_AVAILABLE

    @pytest.mark.asyncio
    async def test_store_down_means_not_available(self, hive: Hive, store) -> None:
        store.available = False
        srv = ToolServer(_registry(), hive, tag="2")
        await srv.start()
        assert _text(await _call(srv, "hive_status")) == NOT_AVAILABLE


class TestServeLoop:
    @pytest.mark.asyncio
    async def test_serves_until_eof(self, hive: Hive) -> None:
        srv = ToolServer(_registry(), hive, terminal=SERVER_TTY, tag="3")
        stdin = io.StringIO(
            _frame("initialize")
            + "\n"
            + _frame("notifications/initialized", request_id=None)
            + "\n"
            + _frame("tools/call", {"name": "hive_whoami"}, request_id=2)
            + "\n"
        )
        stdout = io.StringIO()
        await serve(srv, stdin, stdout)
        frames = [json.loads(line) for line in stdout.getvalue().splitlines()]
        assert [f["id"] for f in frames] == [1, 2]
        assert _text(frames[1]) == "alfa"
        assert await hive.registry.get_by_name("alfa") is None


class TestLocateScope:
    def test_from_working_directory(self, settings: Settings, project: Path) -> None:
        assert locate_scope(settings, "", project / "src") == (project / ".hivemind").resolve()

    def test_from_terminal_cache(
        self, settings: Settings, scope_dir: Path, tmp_path: Path
    ) -> None:
        TerminalCache(settings.coord.cache_dir).write_scope(SERVER_TTY, scope_dir)
        elsewhere = tmp_path / "elsewhere"
        elsewhere.mkdir()
        assert locate_scope(settings, SERVER_TTY, elsewhere) == scope_dir
        assert locate_scope(settings, "/dev/other", elsewhere) is None
