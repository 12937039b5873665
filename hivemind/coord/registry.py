"""CRUD over agent records.

There is no partial update: upsert() writes the whole record, so every
mutation here reads the current record first and writes it back complete.
"""

from __future__ import annotations

import structlog

from hivemind.coord.models import Agent
from hivemind.infra.clock import Clock, epoch_now
from hivemind.store import filters as f
from hivemind.store.base import DocumentStore

logger = structlog.get_logger()

_NOT_ENDED = f.lt("ended_at", 1)


class AgentRegistry:
    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        *,
        now_fn: Clock = epoch_now,
        limit: int = 100,
    ) -> None:
        self._store = store
        self._collection = collection
        self._now = now_fn
        self._limit = limit

    async def get_by_name(self, name: str) -> Agent | None:
        rows = await self._store.query(self._collection, f.eq("id", name), limit=1)
        return Agent.from_record(rows[0]) if rows else None

    async def get_by_terminal(self, terminal: str, *, include_ended: bool = False) -> Agent | None:
        """Agent bound to a terminal. Live records win over ended ones."""
        if not terminal:
            return None
        flt = f.eq("tty", terminal)
        if not include_ended:
            flt = f.and_(flt, _NOT_ENDED)
        rows = await self._store.query(self._collection, flt, limit=self._limit)
        return _best(Agent.from_record(r) for r in rows)

    async def get_by_session(self, session: str) -> Agent | None:
        if not session:
            return None
        rows = await self._store.query(
            self._collection, f.and_(f.eq("session_id", session), _NOT_ENDED), limit=self._limit
        )
        return _best(Agent.from_record(r) for r in rows)

    async def list_active(self) -> list[Agent]:
        rows = await self._store.query(self._collection, _NOT_ENDED, limit=self._limit)
        return sorted((Agent.from_record(r) for r in rows), key=lambda a: a.name)

    async def list_all(self) -> list[Agent]:
        rows = await self._store.query(self._collection, f.always(), limit=self._limit)
        return sorted(
            (Agent.from_record(r) for r in rows), key=lambda a: (a.is_ended, a.name)
        )

    async def active_names(self) -> list[str]:
        return [a.name for a in await self.list_active()]

    async def upsert(self, agent: Agent, *, flush: bool = True) -> None:
        await self._store.upsert(self._collection, [agent.to_record()])
        if flush:
            await self._store.flush(self._collection)

    async def delete(self, name: str) -> None:
        await self._store.delete(self._collection, f.eq("id", name))
        await self._store.flush(self._collection)

    async def set_flag(self, name: str, key: str, value: str = "1") -> bool:
        agent = await self.get_by_name(name)
        if agent is None:
            return False
        agent.flags[key] = value
        await self.upsert(agent)
        return True

    async def get_flag(self, name: str, key: str) -> str | None:
        agent = await self.get_by_name(name)
        if agent is None:
            return None
        return agent.flags.get(key)

    async def clear_flag(self, name: str, key: str) -> bool:
        agent = await self.get_by_name(name)
        if agent is None or key not in agent.flags:
            return False
        del agent.flags[key]
        await self.upsert(agent)
        return True

    async def set_current_task(self, name: str, task: str) -> Agent | None:
        agent = await self.get_by_name(name)
        if agent is None:
            return None
        if agent.current_task and agent.current_task != task:
            agent.last_task = agent.current_task
        agent.current_task = task
        await self.upsert(agent)
        return agent

    async def clear_current_task(self, name: str) -> Agent | None:
        """Blank the current task, keeping it as last_task."""
        agent = await self.get_by_name(name)
        if agent is None:
            return None
        if agent.current_task:
            agent.last_task = agent.current_task
            agent.current_task = ""
            await self.upsert(agent)
        return agent

    async def end_session(self, name: str) -> Agent | None:
        """Mark an agent ended. The terminal binding stays for later recovery."""
        agent = await self.get_by_name(name)
        if agent is None:
            return None
        agent.session_handle = ""
        agent.ended_at = self._now()
        if agent.current_task:
            agent.last_task = agent.current_task
        agent.current_task = ""
        agent.flags = {}
        await self.upsert(agent)
        logger.info("agent_session_ended", agent=name, last_task=agent.last_task)
        return agent


def _best(agents) -> Agent | None:
    """Prefer live agents, then the most recently started one."""
    ranked = sorted(agents, key=lambda a: (a.is_ended, -a.started_at, a.name))
    return ranked[0] if ranked else None
