from __future__ import annotations

import structlog

from hivemind.constants import CHANGELOG_SEQ
from hivemind.coord.models import ChangeEntry
from hivemind.coord.sequence import SequenceGenerator
from hivemind.infra.clock import Clock, epoch_now
from hivemind.store import filters as f
from hivemind.store.base import DocumentStore

logger = structlog.get_logger()

ACTIONS = ("create", "write", "edit")


class Changelog:
    """Append-only record of file edits, written without flush."""

    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        sequences: SequenceGenerator,
        *,
        now_fn: Clock = epoch_now,
        limit: int = 100,
    ) -> None:
        self._store = store
        self._collection = collection
        self._sequences = sequences
        self._now = now_fn
        self._limit = limit

    async def record(self, agent: str, action: str, path: str, summary: str = "") -> ChangeEntry:
        seq_id = await self._sequences.next(CHANGELOG_SEQ)
        entry = ChangeEntry(
            seq_id=seq_id,
            agent=agent,
            action=action,
            file_path=path,
            summary=summary,
            timestamp=self._now(),
        )
        await self._store.insert(self._collection, [entry.to_record()])
        logger.debug("change_recorded", seq_id=seq_id, agent=agent, action=action, path=path)
        return entry

    async def recent(self, count: int = 20) -> list[ChangeEntry]:
        """Newest `count` entries from the query window, oldest first."""
        rows = await self._store.query(self._collection, f.always(), limit=self._limit)
        entries = sorted((ChangeEntry.from_record(r) for r in rows), key=lambda e: e.seq_id)
        return entries[-count:] if count > 0 else []
