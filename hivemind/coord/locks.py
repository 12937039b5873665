"""Advisory per-path file locks.

A lock never blocks an edit. Acquiring a path someone else holds takes it
over and hands back a LockWarning naming the previous owner.
"""

from __future__ import annotations

from dataclasses import dataclass

import structlog

from hivemind.coord.models import FileLock
from hivemind.infra.clock import Clock, epoch_now
from hivemind.store import filters as f
from hivemind.store.base import DocumentStore

logger = structlog.get_logger()


@dataclass(frozen=True)
class LockWarning:
    file_path: str
    owner: str
    locked_at: int

    def render(self) -> str:
        return (
            f"[HIVEMIND WARNING] File '{self.file_path}' is being edited by agent "
            f"'{self.owner}'. Consider coordinating to avoid conflicts."
        )


class FileLockService:
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

    async def get_lock(self, path: str) -> FileLock | None:
        rows = await self._store.query(self._collection, f.eq("id", path), limit=1)
        return FileLock.from_record(rows[0]) if rows else None

    async def acquire(self, path: str, agent: str) -> LockWarning | None:
        """Take or refresh the lock on path, unconditionally."""
        current = await self.get_lock(path)
        warning = None
        if current is not None and current.agent_name and current.agent_name != agent:
            warning = LockWarning(path, current.agent_name, current.locked_at)
            logger.warning("lock_conflict", path=path, owner=current.agent_name, agent=agent)
        lock = FileLock(file_path=path, agent_name=agent, locked_at=self._now())
        await self._store.upsert(self._collection, [lock.to_record()])
        await self._store.flush(self._collection)
        return warning

    async def release(self, path: str, agent: str) -> bool:
        """Delete the lock only when agent is its current owner."""
        current = await self.get_lock(path)
        if current is None or current.agent_name != agent:
            return False
        await self._store.delete(
            self._collection, f.and_(f.eq("id", path), f.eq("agent_name", agent))
        )
        await self._store.flush(self._collection)
        return True

    async def release_all(self, agent: str) -> None:
        await self._store.delete(self._collection, f.eq("agent_name", agent))
        await self._store.flush(self._collection)
        logger.info("locks_released", agent=agent)

    async def list_locks(self) -> list[FileLock]:
        rows = await self._store.query(self._collection, f.always(), limit=self._limit)
        return sorted((FileLock.from_record(r) for r in rows), key=lambda lk: lk.file_path)
