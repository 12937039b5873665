from __future__ import annotations

from typing import TYPE_CHECKING

from hivemind.constants import FLAG_AWAITING_TASK
from hivemind.tools.base import BaseTool

if TYPE_CHECKING:
    from hivemind.tools.context import ToolContext


class TaskTool(BaseTool):
    """Set or clear the caller's current task.

    Setting force-completes the previous active task. Either way the
    awaiting_task flag left by an accepted plan is cleared.
    """

    @property
    def name(self) -> str:
        return "hive_task"

    @property
    def description(self) -> str:
        return "Set or clear your current task (visible to other agents in status)"

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "description": {
                    "type": "string",
                    "description": "Task description (omit or empty string to clear)",
                },
            },
            "required": [],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> str:
        hive = context.hive
        agent = await context.require_caller()
        description = str(arguments.get("description") or "").strip()

        if description:
            task = await hive.tasks.set_current_task(agent.name, description)
            text = f'Task set: "{description}" (#{task.seq_id})'
        else:
            result = await hive.tasks.clear_current_task(agent.name)
            text = "Task cleared."
            if result.elapsed:
                text += f" Completed after {result.elapsed}."

        await hive.registry.clear_flag(agent.name, FLAG_AWAITING_TASK)
        updated = await hive.registry.get_by_name(agent.name)
        if updated is not None:
            hive.refresh_cache(updated)
        return text
