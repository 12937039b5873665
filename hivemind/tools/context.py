from __future__ import annotations

from dataclasses import dataclass

from hivemind.coord.hive import Hive
from hivemind.coord.models import Agent
from hivemind.infra.errors import CoordError


@dataclass(frozen=True)
class ToolContext:
    """Caller identity for one tool call.

    session_id / terminal come from the arguments the pre-tool hook injected,
    falling back to the server's own session and terminal.
    """

    hive: Hive
    session_id: str = ""
    terminal: str = ""

    async def caller(self) -> Agent | None:
        return await self.hive.identity.lookup(self.terminal, self.session_id)

    async def require_caller(self) -> Agent:
        agent = await self.caller()
        if agent is None:
            raise CoordError("Unknown session", code="UNKNOWN_SESSION")
        return agent
