from __future__ import annotations

from typing import TYPE_CHECKING

from hivemind.constants import BROADCAST_TARGET
from hivemind.coord.models import AgentStatus, Priority
from hivemind.tools.base import BaseTool

if TYPE_CHECKING:
    from hivemind.tools.context import ToolContext


class MessageTool(BaseTool):
    """Send a message to one agent or broadcast to all active agents.

    An idle recipient is woken through the wake queue when a wake script is
    configured; otherwise the message waits for their next action.
    """

    @property
    def name(self) -> str:
        return "hive_message"

    @property
    def description(self) -> str:
        return "Send a message to another agent or broadcast to all"

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "target": {
                    "type": "string",
                    "description": f"Agent name (alfa, bravo, etc.) or '{BROADCAST_TARGET}'",
                },
                "body": {"type": "string", "description": "Message content"},
                "priority": {
                    "type": "string",
                    "enum": [p.value for p in Priority],
                    "description": "Message priority (default normal)",
                },
            },
            "required": ["target", "body"],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> str:
        target = str(arguments.get("target") or "").strip()
        body = str(arguments.get("body") or "")
        priority = arguments.get("priority") or Priority.normal

        sender = await context.caller()
        from_agent = sender.name if sender is not None else "unknown"
        receipt = await context.hive.send_message(from_agent, target, body, priority)

        if receipt.sent.broadcast:
            names = [r.name for r in receipt.sent.recipients]
            if not names:
                return "Broadcast sent but no other agents are active."
            return f"Broadcast sent to {len(names)} agent(s): {', '.join(names)}"

        if receipt.status is AgentStatus.idle:
            if receipt.woke:
                return f'Message sent to {target} (idle - waking agent): "{body}"'
            return f'Message sent to {target} (idle - will deliver on their next action): "{body}"'
        return f'Message sent to {target} (active): "{body}"'
