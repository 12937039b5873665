from __future__ import annotations

from typing import TYPE_CHECKING

from hivemind.tools.base import BaseTool
from hivemind.tools.dashboard import render_agents

if TYPE_CHECKING:
    from hivemind.tools.context import ToolContext


class AgentsTool(BaseTool):
    @property
    def name(self) -> str:
        return "hive_agents"

    @property
    def description(self) -> str:
        return (
            "List all active Hivemind agents with status, tasks, and files they are "
            "working on"
        )

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}, "required": []}

    async def execute(self, arguments: dict, context: ToolContext) -> str:
        hive = context.hive
        return render_agents(await hive.registry.list_active(), await hive.locks.list_locks())
