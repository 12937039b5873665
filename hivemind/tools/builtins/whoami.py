from __future__ import annotations

from typing import TYPE_CHECKING

from hivemind.tools.base import BaseTool

if TYPE_CHECKING:
    from hivemind.tools.context import ToolContext


class WhoamiTool(BaseTool):
    """Returns the caller's codename."""

    @property
    def name(self) -> str:
        return "hive_whoami"

    @property
    def description(self) -> str:
        return (
            "Get my own agent identity. When reporting this to the user, respond in "
            "first person: I am agent X."
        )

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}, "required": []}

    async def execute(self, arguments: dict, context: ToolContext) -> str:
        agent = await context.caller()
        return agent.name if agent is not None else "Unknown session"
