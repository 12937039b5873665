from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hivemind.tools.context import ToolContext


class BaseTool(ABC):
    """Abstract base class for hive tools."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Unique tool name exposed over tools/list."""
        ...

    @property
    @abstractmethod
    def description(self) -> str:
        """Human-readable description of what the tool does."""
        ...

    @property
    @abstractmethod
    def parameters(self) -> dict:
        """JSON Schema describing the tool's input parameters."""
        ...

    @property
    def required(self) -> tuple[str, ...]:
        return tuple(self.parameters.get("required", ()))

    @abstractmethod
    async def execute(self, arguments: dict, context: ToolContext) -> str:
        """Run the tool and return the text shown to the calling agent.

        Raises MalformedInput for bad arguments; other HivemindErrors are
        rendered as text by the server.
        """
        ...
