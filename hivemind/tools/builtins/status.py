from __future__ import annotations

from typing import TYPE_CHECKING

from hivemind.tools.base import BaseTool
from hivemind.tools.dashboard import dashboard

if TYPE_CHECKING:
    from hivemind.tools.context import ToolContext


class StatusTool(BaseTool):
    """Coordination dashboard: agents, locks, open tasks, recent changes."""

    @property
    def name(self) -> str:
        return "hive_status"

    @property
    def description(self) -> str:
        return "Show the Hivemind coordination dashboard"

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}, "required": []}

    async def execute(self, arguments: dict, context: ToolContext) -> str:
        return await dashboard(context.hive)
