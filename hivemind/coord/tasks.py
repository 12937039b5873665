"""Task lifecycle: pending -> claimed -> in_progress -> review -> done.

Edges are not policed here beyond stamping timestamps; callers choose which
transitions to take. The one rule enforced is that an agent holds at most one
active (claimed / in_progress) task: setting a new current task force-completes
whatever was active before.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

import structlog

from hivemind.constants import TASK_SEQ
from hivemind.coord.metrics import MetricsRecorder
from hivemind.coord.models import ACTIVE_STATES, Task, TaskState
from hivemind.coord.registry import AgentRegistry
from hivemind.coord.sequence import SequenceGenerator
from hivemind.infra.clock import Clock, epoch_now
from hivemind.infra.errors import CoordError
from hivemind.store import filters as f
from hivemind.store.base import DocumentStore

logger = structlog.get_logger()

_ACTIVE = f.in_("state", sorted(s.value for s in ACTIVE_STATES))
_TITLE_MAX = 120


@dataclass(frozen=True)
class ClearResult:
    completed: tuple[Task, ...]
    previous_task: str
    elapsed_seconds: int | None

    @property
    def elapsed(self) -> str:
        if self.elapsed_seconds is None:
            return ""
        return format_elapsed(self.elapsed_seconds)


class TaskService:
    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        sequences: SequenceGenerator,
        registry: AgentRegistry,
        *,
        metrics: MetricsRecorder | None = None,
        now_fn: Clock = epoch_now,
        limit: int = 100,
    ) -> None:
        self._store = store
        self._collection = collection
        self._sequences = sequences
        self._registry = registry
        self._metrics = metrics
        self._now = now_fn
        self._limit = limit

    async def create(
        self,
        title: str,
        description: str = "",
        assignee: str = "",
        initial_state: TaskState | str = TaskState.pending,
        *,
        depends_on: Iterable[int] = (),
        parent_id: int = 0,
    ) -> Task:
        state = TaskState(initial_state)
        now = self._now()
        seq_id = await self._sequences.next(TASK_SEQ)
        task = Task(
            seq_id=seq_id,
            title=title,
            description=description,
            state=state,
            assignee=assignee,
            depends_on=tuple(sorted(set(depends_on))),
            parent_id=parent_id,
            created_at=now,
            claimed_at=now if state in ACTIVE_STATES else 0,
        )
        await self._save(task)
        logger.info("task_created", seq_id=seq_id, assignee=assignee, state=state.value)
        if self._metrics is not None and task.is_active:
            await self._metrics.record("task_started", agent=assignee, task_id=seq_id)
        return task

    async def get(self, seq_id: int) -> Task | None:
        rows = await self._store.query(self._collection, f.eq("id", str(seq_id)), limit=1)
        return Task.from_record(rows[0]) if rows else None

    async def set_state(
        self,
        seq_id: int,
        state: TaskState | str,
        *,
        rejection_note: str | None = None,
    ) -> Task:
        task = await self.get(seq_id)
        if task is None:
            raise CoordError(f"task #{seq_id} not found", code="UNKNOWN_TASK")
        state = TaskState(state)
        now = self._now()
        task.state = state
        if state in ACTIVE_STATES and not task.claimed_at:
            task.claimed_at = now
        if state is TaskState.done:
            task.completed_at = now
        if rejection_note is not None:
            task.rejection_note = rejection_note
        await self._save(task)
        logger.info("task_state_changed", seq_id=seq_id, state=state.value)
        return task

    async def active_for(self, agent: str) -> list[Task]:
        rows = await self._store.query(
            self._collection, f.and_(f.eq("assignee", agent), _ACTIVE), limit=self._limit
        )
        return _by_seq(Task.from_record(r) for r in rows)

    async def list_for_assignee(self, agent: str) -> list[Task]:
        """Open (not done) tasks assigned to agent."""
        rows = await self._store.query(
            self._collection,
            f.and_(f.eq("assignee", agent), f.ne("state", TaskState.done.value)),
            limit=self._limit,
        )
        return _by_seq(Task.from_record(r) for r in rows)

    async def list_in_review(self, *, exclude: str = "") -> list[Task]:
        flt = f.eq("state", TaskState.review.value)
        if exclude:
            flt = f.and_(flt, f.ne("assignee", exclude))
        rows = await self._store.query(self._collection, flt, limit=self._limit)
        return _by_seq(Task.from_record(r) for r in rows)

    async def list_open(self) -> list[Task]:
        rows = await self._store.query(
            self._collection, f.ne("state", TaskState.done.value), limit=self._limit
        )
        return _by_seq(Task.from_record(r) for r in rows)

    async def complete_active(self, agent: str) -> list[Task]:
        """Force every claimed / in_progress task of agent to done."""
        completed = []
        now = self._now()
        for task in await self.active_for(agent):
            task.state = TaskState.done
            task.completed_at = now
            await self._store.upsert(self._collection, [task.to_record()])
            completed.append(task)
            if self._metrics is not None:
                started = task.claimed_at or task.created_at
                await self._metrics.record(
                    "task_completed",
                    agent=agent,
                    task_id=task.seq_id,
                    duration_minutes=max(now - started, 0) // 60,
                )
        if completed:
            await self._store.flush(self._collection)
            logger.info(
                "tasks_force_completed", agent=agent, seq_ids=[t.seq_id for t in completed]
            )
        return completed

    async def set_current_task(self, agent: str, description: str) -> Task:
        """Replace the agent's live task with a new in_progress one."""
        if not description.strip():
            raise CoordError("task description must not be empty", code="INVALID_TASK")
        await self.complete_active(agent)
        task = await self.create(
            title=_title(description),
            description=description,
            assignee=agent,
            initial_state=TaskState.in_progress,
        )
        await self._registry.set_current_task(agent, description)
        return task

    async def clear_current_task(self, agent: str) -> ClearResult:
        completed = await self.complete_active(agent)
        previous = await self._registry.get_by_name(agent)
        previous_task = previous.current_task if previous is not None else ""
        await self._registry.clear_current_task(agent)

        elapsed = None
        claimed = [t.claimed_at for t in completed if t.claimed_at]
        if claimed:
            finished = max(t.completed_at for t in completed)
            elapsed = max(finished - min(claimed), 0)
        return ClearResult(
            completed=tuple(completed), previous_task=previous_task, elapsed_seconds=elapsed
        )

    async def _save(self, task: Task) -> None:
        await self._store.upsert(self._collection, [task.to_record()])
        await self._store.flush(self._collection)


def format_elapsed(seconds: int) -> str:
    seconds = max(int(seconds), 0)
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def _title(description: str) -> str:
    line = description.strip().splitlines()[0]
    if len(line) <= _TITLE_MAX:
        return line
    return line[: _TITLE_MAX - 3].rstrip() + "..."


def _by_seq(tasks: Iterable[Task]) -> list[Task]:
    return sorted(tasks, key=lambda t: t.seq_id)
