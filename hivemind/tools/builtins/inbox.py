from __future__ import annotations

from typing import TYPE_CHECKING

from hivemind.tools.base import BaseTool
from hivemind.tools.builtins.changes import _count
from hivemind.tools.dashboard import render_inbox

if TYPE_CHECKING:
    from hivemind.tools.context import ToolContext


class InboxTool(BaseTool):
    """Recent messages to the caller, read and unread, newest first."""

    @property
    def name(self) -> str:
        return "hive_inbox"

    @property
    def description(self) -> str:
        return "Review recent messages sent to you, including already delivered ones"

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "count": {
                    "type": "integer",
                    "description": "Number of messages to show (default 20)",
                },
            },
            "required": [],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> str:
        agent = await context.require_caller()
        messages = await context.hive.messages.inbox(agent.name, count=_count(arguments))
        return render_inbox(agent.name, messages)
