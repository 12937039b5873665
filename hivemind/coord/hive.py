"""Composition root: one project's coordination services over one store."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import structlog

from hivemind.config.settings import Settings
from hivemind.coord.changelog import Changelog
from hivemind.coord.identity import IdentityResolver, Resolution
from hivemind.coord.locks import FileLockService, LockWarning
from hivemind.coord.messaging import MessageService, SendResult
from hivemind.coord.metrics import MetricsRecorder
from hivemind.coord.models import Agent, AgentStatus, Priority
from hivemind.coord.registry import AgentRegistry
from hivemind.coord.scope import AgentStatusLine, TerminalCache, project_root
from hivemind.coord.sequence import SequenceGenerator
from hivemind.coord.tasks import TaskService
from hivemind.coord.wake import Nudger, NullNudger, ScriptNudger, WakeQueue
from hivemind.infra.clock import Clock, epoch_now
from hivemind.infra.mutex import FileMutex
from hivemind.store.base import DocumentStore
from hivemind.store.collections import Collections
from hivemind.store.milvus import MilvusStore

logger = structlog.get_logger()

WAKE_LOCK = "wake-queue.lock"
SEQUENCE_LOCK = "sequences.lock"


@dataclass(frozen=True)
class MessageReceipt:
    """Outcome of a send as reported back to the sender."""

    sent: SendResult
    status: AgentStatus | None = None  # direct sends only
    woke: bool = False


@dataclass
class Hive:
    settings: Settings
    scope_dir: Path
    store: DocumentStore
    collections: Collections
    cache: TerminalCache
    sequences: SequenceGenerator
    registry: AgentRegistry
    identity: IdentityResolver
    messages: MessageService
    locks: FileLockService
    tasks: TaskService
    wake: WakeQueue
    changelog: Changelog
    metrics: MetricsRecorder
    can_wake: bool = False

    @classmethod
    def build(
        cls,
        store: DocumentStore,
        scope_dir: Path,
        settings: Settings,
        *,
        nudger: Nudger | None = None,
        now_fn: Clock = epoch_now,
    ) -> Hive:
        coord = settings.coord
        limit = coord.query_limit
        collections = Collections.for_project_root(project_root(scope_dir))
        sequences = SequenceGenerator(
            store, collections.sequences, mutex=FileMutex(scope_dir / SEQUENCE_LOCK)
        )
        registry = AgentRegistry(store, collections.agents, now_fn=now_fn, limit=limit)
        metrics = MetricsRecorder(
            store, collections.metrics, sequences, now_fn=now_fn, limit=limit
        )
        return cls(
            settings=settings,
            scope_dir=scope_dir,
            store=store,
            collections=collections,
            cache=TerminalCache(coord.cache_dir),
            sequences=sequences,
            registry=registry,
            identity=IdentityResolver(registry, now_fn=now_fn),
            messages=MessageService(
                store,
                collections.messages,
                registry,
                now_fn=now_fn,
                retention_seconds=coord.retention_seconds,
                limit=limit,
            ),
            locks=FileLockService(store, collections.file_locks, now_fn=now_fn, limit=limit),
            tasks=TaskService(
                store,
                collections.tasks,
                sequences,
                registry,
                metrics=metrics,
                now_fn=now_fn,
                limit=limit,
            ),
            wake=WakeQueue(
                store,
                collections.wake_queue,
                FileMutex(scope_dir / WAKE_LOCK),
                nudger or NullNudger(),
                now_fn=now_fn,
                limit=limit,
            ),
            changelog=Changelog(
                store, collections.changelog, sequences, now_fn=now_fn, limit=limit
            ),
            metrics=metrics,
            can_wake=nudger is not None,
        )

    @classmethod
    def open(cls, scope_dir: Path, settings: Settings) -> Hive:
        """Production graph: Milvus over HTTP, nudges through the wake script."""
        nudger = None
        if settings.coord.wake_script is not None:
            nudger = ScriptNudger(settings.coord.wake_script, settings.coord.wake_message)
        return cls.build(MilvusStore(settings.store), scope_dir, settings, nudger=nudger)

    async def close(self) -> None:
        await self.store.close()

    async def ready(self) -> bool:
        return await self.store.ready(self.collections.agents)

    async def claim_identity(self, terminal: str, session: str) -> Resolution:
        resolution = await self.identity.resolve(terminal, session)
        await self._settle_claim(resolution, terminal)
        return resolution

    async def preregister(self, tag: str, terminal: str = "") -> Resolution:
        """Claim a codename for a tool server ahead of the session hooks."""
        resolution = await self.identity.preregister(tag, terminal)
        await self._settle_claim(resolution, terminal)
        return resolution

    async def _settle_claim(self, resolution: Resolution, terminal: str) -> None:
        if resolution.created:
            # A reissued codename must not inherit its previous holder's inbox.
            await self.messages.purge_inbox(resolution.name)
        self.refresh_cache(resolution.agent)
        if terminal:
            self.cache.write_scope(terminal, self.scope_dir)

    def refresh_cache(self, agent: Agent) -> None:
        self.cache.write_status(
            agent.terminal_handle,
            AgentStatusLine(
                name=agent.name, current_task=agent.current_task, last_task=agent.last_task
            ),
        )

    async def send_message(
        self,
        from_agent: str,
        to: str,
        body: str,
        priority: Priority | str = Priority.normal,
    ) -> MessageReceipt:
        sent = await self.messages.send(from_agent, to, body, priority)
        await self.metrics.record(
            "message_sent",
            agent=from_agent,
            metadata={"to": to, "recipients": len(sent.recipients)},
        )
        if sent.broadcast:
            return MessageReceipt(sent=sent)

        recipient = sent.recipients[0]
        status = recipient.status
        woke = False
        if status is AgentStatus.idle and self.can_wake and recipient.terminal_handle:
            await self.wake.enqueue(recipient.terminal_handle)
            await self.wake.process_once()
            woke = True
        return MessageReceipt(sent=sent, status=status, woke=woke)

    async def lock_file(self, agent: str, path: str) -> LockWarning | None:
        warning = await self.locks.acquire(path, agent)
        if warning is not None:
            await self.metrics.record(
                "lock_conflict", agent=agent, metadata={"path": path, "owner": warning.owner}
            )
        return warning

    async def end_agent(self, agent: str) -> Agent | None:
        """Session teardown: finish tasks, end the record, drop locks."""
        await self.tasks.complete_active(agent)
        ended = await self.registry.end_session(agent)
        await self.locks.release_all(agent)
        if ended is not None:
            self.refresh_cache(ended)
        return ended
