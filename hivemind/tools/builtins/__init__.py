from __future__ import annotations

from hivemind.tools.builtins.agents import AgentsTool
from hivemind.tools.builtins.changes import ChangesTool
from hivemind.tools.builtins.help import HelpTool
from hivemind.tools.builtins.inbox import InboxTool
from hivemind.tools.builtins.message import MessageTool
from hivemind.tools.builtins.status import StatusTool
from hivemind.tools.builtins.task import TaskTool
from hivemind.tools.builtins.whoami import WhoamiTool
from hivemind.tools.registry import ToolRegistry


def register_builtins(registry: ToolRegistry) -> None:
    """Register all built-in tools with the registry."""
    registry.register(WhoamiTool())
    registry.register(AgentsTool())
    registry.register(StatusTool())
    registry.register(MessageTool())
    registry.register(TaskTool())
    registry.register(ChangesTool())
    registry.register(InboxTool())
    registry.register(HelpTool())
