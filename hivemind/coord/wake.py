"""Single-flight queue of terminal nudges.

Nudging types into another terminal's UI, so two nudges must never run at
the same time. Any process may enqueue; only the one holding the queue mutex
drains, oldest first. A process that finds the mutex held returns at once and
leaves its request for the current drainer.
"""

from __future__ import annotations

import asyncio
import uuid
from pathlib import Path
from typing import Protocol

import structlog

from hivemind.coord.models import WakeRequest
from hivemind.infra.clock import Clock, epoch_now
from hivemind.infra.mutex import FileMutex
from hivemind.store import filters as f
from hivemind.store.base import DocumentStore

logger = structlog.get_logger()


class NudgeError(Exception):
    pass


class Nudger(Protocol):
    async def nudge(self, terminal: str) -> None: ...


class ScriptNudger:
    """Run `<script> <terminal> <message>` and wait for it."""

    def __init__(self, script: Path, message: str, *, timeout_s: float = 10.0) -> None:
        self.script = script
        self.message = message
        self.timeout_s = timeout_s

    async def nudge(self, terminal: str) -> None:
        try:
            proc = await asyncio.create_subprocess_exec(
                str(self.script),
                terminal,
                self.message,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise NudgeError(f"cannot run wake script {self.script}: {e}") from e
        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_s)
        except TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise NudgeError(f"wake script timed out after {self.timeout_s}s") from e
        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise NudgeError(f"wake script exited {proc.returncode}: {detail}")


class NullNudger:
    """Used when no wake script is configured."""

    async def nudge(self, terminal: str) -> None:
        logger.info("wake_skipped", terminal=terminal, reason="no_wake_script")


class WakeQueue:
    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        mutex: FileMutex,
        nudger: Nudger,
        *,
        now_fn: Clock = epoch_now,
        limit: int = 100,
    ) -> None:
        self._store = store
        self._collection = collection
        self._mutex = mutex
        self._nudger = nudger
        self._now = now_fn
        self._limit = limit

    async def enqueue(self, terminal: str) -> WakeRequest:
        request = WakeRequest(
            id=f"wake-{uuid.uuid4().hex}", terminal_handle=terminal, created_at=self._now()
        )
        await self._store.insert(self._collection, [request.to_record()])
        # The drainer may be another process.
        await self._store.flush(self._collection)
        logger.info("wake_enqueued", terminal=terminal, request_id=request.id)
        return request

    async def pending(self) -> list[WakeRequest]:
        rows = await self._store.query(self._collection, f.always(), limit=self._limit)
        return sorted(
            (WakeRequest.from_record(r) for r in rows), key=lambda w: (w.created_at, w.id)
        )

    async def process_once(self) -> int | None:
        """Drain the queue. Returns the number processed, or None if busy."""
        async with self._mutex.try_hold() as acquired:
            if not acquired:
                logger.debug("wake_queue_busy")
                return None
            processed = 0
            seen: set[str] = set()
            while True:
                # A delete that has not become visible yet must not nudge twice.
                batch = [w for w in await self.pending() if w.id not in seen]
                if not batch:
                    break
                request = batch[0]
                seen.add(request.id)
                try:
                    await self._nudger.nudge(request.terminal_handle)
                except NudgeError as e:
                    logger.warning(
                        "wake_failed", terminal=request.terminal_handle, error=str(e)
                    )
                await self._store.delete(self._collection, f.eq("id", request.id))
                await self._store.flush(self._collection)
                processed += 1
            logger.info("wake_processed", count=processed)
            return processed
