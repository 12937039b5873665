"""Named monotonic counters kept in the sequences collection.

next() is read / increment / upsert with no compare-and-swap: two processes
racing on the same counter can both read N and both hand out N+1. Passing a
FileMutex serializes callers on this host and closes that window.
"""

from __future__ import annotations

import contextlib

import structlog

from hivemind.infra.mutex import FileMutex
from hivemind.store import filters as f
from hivemind.store.base import DocumentStore

logger = structlog.get_logger()


class SequenceGenerator:
    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        *,
        mutex: FileMutex | None = None,
    ) -> None:
        self._store = store
        self._collection = collection
        self._mutex = mutex

    async def current(self, name: str) -> int:
        rows = await self._store.query(
            self._collection, f.eq("id", name), fields=["current_value"], limit=1
        )
        if not rows:
            return 0
        try:
            return int(rows[0].get("current_value") or 0)
        except (TypeError, ValueError):
            return 0

    async def next(self, name: str) -> int:
        guard = self._mutex.hold() if self._mutex is not None else contextlib.nullcontext()
        async with guard:
            value = await self.current(name) + 1
            await self._store.upsert(
                self._collection, [{"id": name, "current_value": value}]
            )
            # The next caller, possibly another process, must read this value.
            await self._store.flush(self._collection)
        logger.debug("sequence_next", sequence=name, value=value)
        return value
