from __future__ import annotations

import structlog

from hivemind.tools.base import BaseTool

logger = structlog.get_logger()


class ToolRegistry:
    """Registry for hive tools. Provides lookup and the tools/list schema."""

    def __init__(self) -> None:
        self._tools: dict[str, BaseTool] = {}

    def register(self, tool: BaseTool) -> None:
        """Register a tool. Raises ValueError if name already registered."""
        if tool.name in self._tools:
            raise ValueError(f"Tool already registered: {tool.name}")
        self._tools[tool.name] = tool
        logger.debug("tool_registered", tool_name=tool.name)

    def get(self, name: str) -> BaseTool | None:
        """Get a tool by name. Returns None if not found."""
        return self._tools.get(name)

    def list_tools(self) -> list[BaseTool]:
        return list(self._tools.values())

    def get_tools_schema(self) -> list[dict]:
        """Return tools in tools/list format.

        Output format:
        [{"name": ..., "description": ..., "inputSchema": ...}]
        """
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "inputSchema": tool.parameters,
            }
            for tool in self._tools.values()
        ]
