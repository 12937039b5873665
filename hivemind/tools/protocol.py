"""Line-delimited JSON-RPC 2.0 frames for the tool server."""

from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, Field

PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603


class RPCRequest(BaseModel):
    jsonrpc: Literal["2.0"] = "2.0"
    id: int | str | None = None
    method: str
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def is_notification(self) -> bool:
        return self.id is None


class ToolCallParams(BaseModel):
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class RPCErrorBody(BaseModel):
    code: int
    message: str


class RPCResponse(BaseModel):
    jsonrpc: Literal["2.0"] = "2.0"
    id: int | str | None = None
    result: dict[str, Any] | None = None
    error: RPCErrorBody | None = None

    def render(self) -> str:
        frame: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            frame["error"] = self.error.model_dump()
        else:
            frame["result"] = self.result if self.result is not None else {}
        return json.dumps(frame, separators=(",", ":"))


def success(request_id: int | str | None, result: dict[str, Any]) -> RPCResponse:
    return RPCResponse(id=request_id, result=result)


def failure(request_id: int | str | None, code: int, message: str) -> RPCResponse:
    return RPCResponse(id=request_id, error=RPCErrorBody(code=code, message=message))


def text_result(text: str, *, is_error: bool = False) -> dict[str, Any]:
    result: dict[str, Any] = {"content": [{"type": "text", "text": text}]}
    if is_error:
        result["isError"] = True
    return result


def parse_rpc_request(raw: str) -> RPCRequest:
    """Parse one frame. Raises ValueError (json) or ValidationError (shape)."""
    return RPCRequest.model_validate(json.loads(raw))
