from __future__ import annotations

from typing import TYPE_CHECKING

from hivemind.tools.base import BaseTool

if TYPE_CHECKING:
    from hivemind.tools.context import ToolContext

HELP_TEXT = """HIVEMIND COMMANDS
=================

hive_whoami
  Get my agent identity (no parameters)

hive_agents
  List all active agents (no parameters)

hive_status
  Show coordination dashboard (no parameters)

hive_message
  Send message to another agent or broadcast
  Parameters:
    target (required)   - Agent name (alfa, bravo, etc.) or "all" for broadcast
    body (required)     - Message content
    priority (optional) - normal, high or urgent

hive_task
  Set or clear my current task
  Parameters:
    description (optional) - Task description, omit or empty to clear

hive_changes
  View recent file changes
  Parameters:
    count (optional) - Number of changes to show (default 20)

hive_inbox
  Review my recent messages
  Parameters:
    count (optional) - Number of messages to show (default 20)

hive_help
  Show this help (no parameters)

Each session gets a unique phonetic codename (alfa, bravo, charlie...).
A terminal that reconnects recovers the same codename.

MESSAGE DELIVERY
----------------
Messages from other agents are delivered automatically with each prompt
and before each tool call. When another agent sends you a message, you will
see it prefixed with [HIVE AGENT MESSAGE] in your context.

COORDINATION TIPS
-----------------
1. Set your task so others know what you're working on
2. Check hive_status before editing shared files
3. Use hive_message to coordinate on conflicts
4. Review hive_changes to see recent activity"""


class HelpTool(BaseTool):
    @property
    def name(self) -> str:
        return "hive_help"

    @property
    def description(self) -> str:
        return "Show Hivemind command reference. Display the full output to the user as-is."

    @property
    def parameters(self) -> dict:
        return {"type": "object", "properties": {}, "required": []}

    async def execute(self, arguments: dict, context: ToolContext) -> str:
        return HELP_TEXT
