from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any


class Priority(StrEnum):
    normal = "normal"
    high = "high"
    urgent = "urgent"


class TaskState(StrEnum):
    pending = "pending"
    claimed = "claimed"
    in_progress = "in_progress"
    review = "review"
    done = "done"


ACTIVE_STATES: frozenset[TaskState] = frozenset({TaskState.claimed, TaskState.in_progress})


class AgentStatus(StrEnum):
    """Recipient status as reported to a message sender."""

    active = "active"  # has a current task
    idle = "idle"  # live session, no current task
    offline = "offline"  # no live session


@dataclass
class Agent:
    name: str
    session_handle: str = ""
    terminal_handle: str = ""
    started_at: int = 0
    ended_at: int = 0
    current_task: str = ""
    last_task: str = ""
    flags: dict[str, str] = field(default_factory=dict)

    @property
    def is_ended(self) -> bool:
        return self.ended_at > 0

    @property
    def status(self) -> AgentStatus:
        if self.is_ended:
            return AgentStatus.offline
        return AgentStatus.active if self.current_task else AgentStatus.idle

    @classmethod
    def from_record(cls, payload: dict[str, Any]) -> Agent:
        return cls(
            name=str(payload.get("name") or payload.get("id") or ""),
            session_handle=_str(payload.get("session_id")),
            terminal_handle=_str(payload.get("tty")),
            started_at=_int(payload.get("started_at")),
            ended_at=_int(payload.get("ended_at")),
            current_task=_str(payload.get("current_task")),
            last_task=_str(payload.get("last_task")),
            flags=_flags(payload.get("flags")),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.name,
            "name": self.name,
            "session_id": self.session_handle,
            "tty": self.terminal_handle,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "current_task": self.current_task,
            "last_task": self.last_task,
            "flags": dict(self.flags),
        }


@dataclass
class Message:
    id: str
    from_agent: str
    to_agent: str
    body: str
    priority: Priority = Priority.normal
    created_at: int = 0
    delivered_at: int = 0

    @property
    def is_delivered(self) -> bool:
        return self.delivered_at > 0

    @classmethod
    def from_record(cls, payload: dict[str, Any]) -> Message:
        try:
            priority = Priority(str(payload.get("priority") or "normal"))
        except ValueError:
            priority = Priority.normal
        return cls(
            id=str(payload.get("id") or ""),
            from_agent=_str(payload.get("from_agent")),
            to_agent=_str(payload.get("to_agent")),
            body=_str(payload.get("body")),
            priority=priority,
            created_at=_int(payload.get("created_at")),
            delivered_at=_int(payload.get("delivered_at")),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "from_agent": self.from_agent,
            "to_agent": self.to_agent,
            "body": self.body,
            "priority": self.priority.value,
            "created_at": self.created_at,
            "delivered_at": self.delivered_at,
        }


@dataclass(frozen=True)
class FileLock:
    file_path: str
    agent_name: str
    locked_at: int

    @classmethod
    def from_record(cls, payload: dict[str, Any]) -> FileLock:
        return cls(
            file_path=str(payload.get("file_path") or payload.get("id") or ""),
            agent_name=_str(payload.get("agent_name")),
            locked_at=_int(payload.get("locked_at")),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.file_path,
            "file_path": self.file_path,
            "agent_name": self.agent_name,
            "locked_at": self.locked_at,
        }


@dataclass
class Task:
    seq_id: int
    title: str
    description: str = ""
    state: TaskState = TaskState.pending
    assignee: str = ""
    depends_on: tuple[int, ...] = ()
    parent_id: int = 0
    created_at: int = 0
    claimed_at: int = 0
    completed_at: int = 0
    rejection_note: str = ""

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_STATES

    @classmethod
    def from_record(cls, payload: dict[str, Any]) -> Task:
        depends = payload.get("depends_on") or []
        if isinstance(depends, str):
            try:
                depends = json.loads(depends)
            except json.JSONDecodeError:
                depends = []
        try:
            state = TaskState(str(payload.get("state") or "pending"))
        except ValueError:
            state = TaskState.pending
        return cls(
            seq_id=_int(payload.get("seq_id") or payload.get("id")),
            title=_str(payload.get("title")),
            description=_str(payload.get("description")),
            state=state,
            assignee=_str(payload.get("assignee")),
            depends_on=tuple(sorted({_int(d) for d in depends if _int(d) > 0})),
            parent_id=_int(payload.get("parent_id")),
            created_at=_int(payload.get("created_at")),
            claimed_at=_int(payload.get("claimed_at")),
            completed_at=_int(payload.get("completed_at")),
            rejection_note=_str(payload.get("rejection_note")),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": str(self.seq_id),
            "seq_id": self.seq_id,
            "title": self.title,
            "description": self.description,
            "state": self.state.value,
            "assignee": self.assignee,
            "depends_on": list(self.depends_on),
            "parent_id": self.parent_id,
            "created_at": self.created_at,
            "claimed_at": self.claimed_at,
            "completed_at": self.completed_at,
            "rejection_note": self.rejection_note,
        }


@dataclass(frozen=True)
class WakeRequest:
    id: str
    terminal_handle: str
    created_at: int

    @classmethod
    def from_record(cls, payload: dict[str, Any]) -> WakeRequest:
        return cls(
            id=str(payload.get("id") or ""),
            terminal_handle=_str(payload.get("tty")),
            created_at=_int(payload.get("created_at")),
        )

    def to_record(self) -> dict[str, Any]:
        return {"id": self.id, "tty": self.terminal_handle, "created_at": self.created_at}


@dataclass(frozen=True)
class ChangeEntry:
    seq_id: int
    agent: str
    action: str
    file_path: str
    summary: str = ""
    timestamp: int = 0

    @classmethod
    def from_record(cls, payload: dict[str, Any]) -> ChangeEntry:
        return cls(
            seq_id=_int(payload.get("seq_id") or payload.get("id")),
            agent=_str(payload.get("agent")),
            action=_str(payload.get("action")),
            file_path=_str(payload.get("file_path")),
            summary=_str(payload.get("summary")),
            timestamp=_int(payload.get("timestamp")),
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": str(self.seq_id),
            "seq_id": self.seq_id,
            "agent": self.agent,
            "action": self.action,
            "file_path": self.file_path,
            "summary": self.summary,
            "timestamp": self.timestamp,
        }


def _str(value: Any) -> str:
    if value in (None, ""):
        return ""
    return str(value)


def _int(value: Any) -> int:
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str) and value.strip():
        try:
            return int(float(value))
        except ValueError:
            return 0
    return 0


def _flags(value: Any) -> dict[str, str]:
    if isinstance(value, str):
        try:
            value = json.loads(value) if value.strip() else {}
        except json.JSONDecodeError:
            value = {}
    if not isinstance(value, dict):
        return {}
    return {str(k): str(v) for k, v in value.items()}
