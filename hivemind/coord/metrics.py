from __future__ import annotations

import json
from typing import Any

import structlog

from hivemind.constants import METRICS_SEQ
from hivemind.coord.sequence import SequenceGenerator
from hivemind.infra.clock import Clock, epoch_now
from hivemind.store import filters as f
from hivemind.store.base import DocumentStore

logger = structlog.get_logger()

EVENT_TYPES = ("task_started", "task_completed", "message_sent", "lock_conflict")


class MetricsRecorder:
    """Coordination events for later analysis. Best effort, no flush."""

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

    async def record(
        self,
        event_type: str,
        *,
        agent: str = "",
        task_id: int = 0,
        duration_minutes: int = 0,
        metadata: dict[str, Any] | None = None,
    ) -> int:
        seq_id = await self._sequences.next(METRICS_SEQ)
        await self._store.insert(
            self._collection,
            [
                {
                    "id": str(seq_id),
                    "seq_id": seq_id,
                    "event_type": event_type,
                    "agent": agent,
                    "task_id": task_id,
                    "duration_minutes": duration_minutes,
                    "metadata": json.dumps(metadata or {}, sort_keys=True),
                    "timestamp": self._now(),
                }
            ],
        )
        logger.debug("metric_recorded", event_type=event_type, agent=agent, seq_id=seq_id)
        return seq_id

    async def events(self, event_type: str | None = None) -> list[dict[str, Any]]:
        flt = f.eq("event_type", event_type) if event_type else f.always()
        rows = await self._store.query(self._collection, flt, limit=self._limit)
        return sorted(rows, key=lambda r: int(r.get("seq_id") or 0))
