from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class HookInput(BaseModel):
    """Event payload the host writes to the handler's stdin."""

    model_config = ConfigDict(extra="ignore")

    hook_event_name: str = Field("", validation_alias=AliasChoices("hook_event_name", "event"))
    cwd: str = ""
    session_id: str = ""
    tool_name: str = ""
    tool_input: dict[str, Any] = Field(default_factory=dict)
    tool_response: Any = Field(
        None, validation_alias=AliasChoices("tool_response", "tool_result")
    )

    @property
    def file_path(self) -> str:
        value = self.tool_input.get("file_path")
        return value if isinstance(value, str) else ""

    @property
    def tool_response_text(self) -> str:
        if self.tool_response is None:
            return ""
        if isinstance(self.tool_response, str):
            return self.tool_response
        return json.dumps(self.tool_response, default=str)


class HookSpecificOutput(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    hook_event_name: str
    additional_context: str | None = None
    permission_decision: Literal["allow", "deny"] | None = None
    permission_decision_reason: str | None = None
    updated_input: dict[str, Any] | None = None


class HookOutput(BaseModel):
    """Control message returned on stdout. Absent fields are omitted."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    message: str | None = None
    hook_specific_output: HookSpecificOutput | None = None

    def render(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


def context_output(event_name: str, text: str) -> HookOutput:
    return HookOutput(
        hook_specific_output=HookSpecificOutput(
            hook_event_name=event_name, additional_context=text
        )
    )


def message_output(text: str) -> HookOutput | None:
    return HookOutput(message=text) if text else None
