"""Inbox protocol over the messages collection.

A broadcast is fanned out into one independent message per active recipient.
Delivery only stamps delivered_at; messages stay readable in the inbox until
the retention sweep removes them.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog

from hivemind.constants import BROADCAST_PREFIX, BROADCAST_TARGET
from hivemind.coord.models import Agent, Message, Priority
from hivemind.coord.registry import AgentRegistry
from hivemind.infra.clock import Clock, epoch_now
from hivemind.infra.errors import MalformedInput, UnknownRecipient
from hivemind.store import filters as f
from hivemind.store.base import DocumentStore

logger = structlog.get_logger()

DELIVERY_HEADER = "[HIVEMIND MESSAGES]"


@dataclass(frozen=True)
class SendResult:
    messages: tuple[Message, ...]
    recipients: tuple[Agent, ...]
    broadcast: bool


class MessageService:
    def __init__(
        self,
        store: DocumentStore,
        collection: str,
        registry: AgentRegistry,
        *,
        now_fn: Clock = epoch_now,
        retention_seconds: int = 24 * 3600,
        limit: int = 100,
    ) -> None:
        self._store = store
        self._collection = collection
        self._registry = registry
        self._now = now_fn
        self._retention = retention_seconds
        self._limit = limit

    async def send(
        self,
        from_agent: str,
        to: str,
        body: str,
        priority: Priority | str = Priority.normal,
    ) -> SendResult:
        if not to or not body:
            raise MalformedInput("Missing required parameters: target and body")
        try:
            priority = Priority(priority)
        except ValueError as e:
            allowed = ", ".join(p.value for p in Priority)
            raise MalformedInput(f"priority must be one of: {allowed}") from e
        active = await self._registry.list_active()
        now = self._now()

        if to == BROADCAST_TARGET:
            recipients = tuple(a for a in active if a.name != from_agent)
            text = f"{BROADCAST_PREFIX}{body}"
            broadcast = True
        else:
            target = next((a for a in active if a.name == to), None)
            if target is None:
                raise UnknownRecipient(to, [a.name for a in active])
            recipients = (target,)
            text = body
            broadcast = False

        messages = tuple(
            Message(
                id=f"msg-{uuid.uuid4().hex}",
                from_agent=from_agent,
                to_agent=recipient.name,
                body=text,
                priority=priority,
                created_at=now,
            )
            for recipient in recipients
        )
        if messages:
            await self._store.insert(self._collection, [m.to_record() for m in messages])
            # Recipients read from their own processes; make the write visible first.
            await self._store.flush(self._collection)
        logger.info(
            "message_sent",
            from_agent=from_agent,
            to=to,
            recipients=[r.name for r in recipients],
            priority=priority.value,
        )
        return SendResult(messages=messages, recipients=recipients, broadcast=broadcast)

    async def pending(self, agent: str) -> list[Message]:
        """Undelivered messages for an agent, oldest first."""
        rows = await self._store.query(
            self._collection,
            f.and_(f.eq("to_agent", agent), f.lt("delivered_at", 1)),
            limit=self._limit,
        )
        return _chronological(Message.from_record(r) for r in rows)

    async def mark_delivered(self, ids: Iterable[str]) -> int:
        """Stamp delivered_at on each message. Read/modify/upsert per id."""
        now = self._now()
        marked = 0
        for message_id in ids:
            rows = await self._store.query(self._collection, f.eq("id", message_id), limit=1)
            if not rows:
                continue
            message = Message.from_record(rows[0])
            if message.is_delivered:
                continue
            message.delivered_at = now
            await self._store.upsert(self._collection, [message.to_record()])
            marked += 1
        if marked:
            await self._store.flush(self._collection)
        return marked

    async def deliver(self, agent: str) -> str:
        """Fetch, render and mark delivered. Empty string when nothing is pending."""
        messages = await self.pending(agent)
        if not messages:
            return ""
        rendered = render_messages(messages)
        await self.mark_delivered(m.id for m in messages)
        logger.info("messages_delivered", agent=agent, count=len(messages))
        return rendered

    async def inbox(self, agent: str, *, count: int = 20) -> list[Message]:
        """Recent messages for an agent, read and unread, newest first."""
        rows = await self._store.query(
            self._collection, f.eq("to_agent", agent), limit=self._limit
        )
        ordered = _chronological(Message.from_record(r) for r in rows)
        return list(reversed(ordered))[: max(count, 0)]

    async def sweep(self) -> None:
        """Delete every message older than the retention window."""
        cutoff = self._now() - self._retention
        await self._store.delete(self._collection, f.lt("created_at", cutoff))
        await self._store.flush(self._collection)
        logger.info("messages_swept", cutoff=cutoff)

    async def purge_inbox(self, agent: str) -> None:
        """Remove leftovers addressed to a codename that is being reissued."""
        await self._store.delete(self._collection, f.eq("to_agent", agent))
        await self._store.flush(self._collection)


def render_messages(messages: Sequence[Message]) -> str:
    lines = [DELIVERY_HEADER]
    for message in messages:
        prefix = ""
        if message.priority is Priority.urgent:
            prefix = "[URGENT] "
        elif message.priority is Priority.high:
            prefix = "[HIGH] "
        stamp = format_timestamp(message.created_at)
        lines.append(
            f"{prefix}[HIVE AGENT MESSAGE] From {message.from_agent} ({stamp}): {message.body}"
        )
    return "\n".join(lines) + "\n"


def format_timestamp(epoch: int) -> str:
    if epoch <= 0:
        return "unknown"
    return datetime.fromtimestamp(epoch, UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def _chronological(messages: Iterable[Message]) -> list[Message]:
    return sorted(messages, key=lambda m: (m.created_at, m.id))
