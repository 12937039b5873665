from __future__ import annotations

from typing import TYPE_CHECKING

from hivemind.tools.base import BaseTool
from hivemind.tools.dashboard import render_changes

if TYPE_CHECKING:
    from hivemind.tools.context import ToolContext

DEFAULT_COUNT = 20


def _count(arguments: dict, default: int = DEFAULT_COUNT) -> int:
    raw = arguments.get("count", default)
    try:
        count = int(raw)
    except (TypeError, ValueError):
        return default
    return count if count > 0 else default


class ChangesTool(BaseTool):
    @property
    def name(self) -> str:
        return "hive_changes"

    @property
    def description(self) -> str:
        return "View recent file changes made by Hivemind agents"

    @property
    def parameters(self) -> dict:
        return {
            "type": "object",
            "properties": {
                "count": {
                    "type": "integer",
                    "description": f"Number of changes to show (default {DEFAULT_COUNT})",
                },
            },
            "required": [],
        }

    async def execute(self, arguments: dict, context: ToolContext) -> str:
        count = _count(arguments)
        return render_changes(await context.hive.changelog.recent(count), count)
