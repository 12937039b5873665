from __future__ import annotations

import pytest
import pytest_asyncio

from hivemind.coord.messaging import DELIVERY_HEADER, MessageService, render_messages
from hivemind.coord.models import Agent, Message, Priority
from hivemind.coord.registry import AgentRegistry
from hivemind.infra.errors import MalformedInput, UnknownRecipient


@pytest.fixture
def registry(store, clock) -> AgentRegistry:
    return AgentRegistry(store, "agents", now_fn=clock)


@pytest.fixture
def messages(store, registry, clock) -> MessageService:
    return MessageService(store, "messages", registry, now_fn=clock, retention_seconds=3600)


@pytest_asyncio.fixture
async def three_agents(registry: AgentRegistry) -> None:
    for name in ("alfa", "bravo", "charlie"):
        await registry.upsert(Agent(name=name, session_handle=f"s-{name}"))


class TestSend:
    @pytest.mark.asyncio
    async def test_direct_message_delivered_once(self, messages, three_agents) -> None:
        result = await messages.send("alfa", "bravo", "review the API")
        assert not result.broadcast
        assert [r.name for r in result.recipients] == ["bravo"]

        first = await messages.deliver("bravo")
        assert first.startswith(DELIVERY_HEADER)
        assert "From alfa" in first
        assert "review the API" in first
        assert await messages.deliver("bravo") == ""
        assert await messages.pending("bravo") == []

    @pytest.mark.asyncio
    async def test_broadcast_excludes_sender(self, messages, three_agents, store) -> None:
        result = await messages.send("alfa", "all", "standup in 5")
        assert result.broadcast
        recipients = sorted(r["to_agent"] for r in store.dump("messages"))
        assert recipients == ["bravo", "charlie"]
        assert all(r["body"] == "[BROADCAST] standup in 5" for r in store.dump("messages"))

    @pytest.mark.asyncio
    async def test_broadcast_with_nobody_else(self, messages, registry) -> None:
        await registry.upsert(Agent(name="alfa", session_handle="s"))
        result = await messages.send("alfa", "all", "hello?")
        assert result.recipients == ()
        assert result.messages == ()

    @pytest.mark.asyncio
    async def test_unknown_recipient_lists_active(self, messages, three_agents) -> None:
        with pytest.raises(UnknownRecipient) as excinfo:
            await messages.send("alfa", "zulu", "ping")
        assert excinfo.value.active == ("alfa", "bravo", "charlie")
        assert "Active agents: alfa, bravo, charlie" in str(excinfo.value)

    @pytest.mark.asyncio
    async def test_ended_recipient_is_unknown(self, messages, three_agents, registry) -> None:
        await registry.end_session("charlie")
        with pytest.raises(UnknownRecipient):
            await messages.send("alfa", "charlie", "ping")

    @pytest.mark.asyncio
    async def test_invalid_priority(self, messages, three_agents) -> None:
        with pytest.raises(MalformedInput, match="priority"):
            await messages.send("alfa", "bravo", "ping", "critical")

    @pytest.mark.asyncio
    async def test_missing_body(self, messages, three_agents) -> None:
        with pytest.raises(MalformedInput):
            await messages.send("alfa", "bravo", "")


class TestDelivery:
    @pytest.mark.asyncio
    async def test_oldest_first_with_priority_prefixes(
        self, messages, three_agents, clock
    ) -> None:
        await messages.send("alfa", "charlie", "second thoughts", Priority.high)
        clock.advance(5)
        await messages.send("bravo", "charlie", "stop the deploy", "urgent")
        rendered = await messages.deliver("charlie")
        lines = rendered.strip().splitlines()
        assert lines[0] == DELIVERY_HEADER
        assert lines[1].startswith("[HIGH] [HIVE AGENT MESSAGE] From alfa (2023-11-14T22:13:20Z)")
        assert lines[2].startswith("[URGENT] [HIVE AGENT MESSAGE] From bravo")

    @pytest.mark.asyncio
    async def test_delivered_messages_stay_in_inbox(self, messages, three_agents, clock) -> None:
        await messages.send("alfa", "bravo", "one")
        clock.advance(1)
        await messages.send("charlie", "bravo", "two")
        await messages.deliver("bravo")
        inbox = await messages.inbox("bravo")
        assert [m.body for m in inbox] == ["two", "one"]
        assert all(m.is_delivered for m in inbox)
        assert [m.body for m in await messages.inbox("bravo", count=1)] == ["two"]

    @pytest.mark.asyncio
    async def test_mark_delivered_skips_unknown_and_repeat(self, messages, three_agents) -> None:
        result = await messages.send("alfa", "bravo", "hi")
        ids = [m.id for m in result.messages]
        assert await messages.mark_delivered(ids + ["msg-missing"]) == 1
        assert await messages.mark_delivered(ids) == 0

    def test_render_unknown_timestamp(self) -> None:
        text = render_messages([Message(id="m", from_agent="a", to_agent="b", body="x")])
        assert "From a (unknown): x" in text


class TestRetention:
    @pytest.mark.asyncio
    async def test_sweep_drops_old_messages(self, messages, three_agents, clock, store) -> None:
        await messages.send("alfa", "bravo", "old")
        clock.advance(3601)
        await messages.send("alfa", "bravo", "fresh")
        await messages.sweep()
        assert [r["body"] for r in store.dump("messages")] == ["fresh"]

    @pytest.mark.asyncio
    async def test_purge_inbox(self, messages, three_agents, store) -> None:
        await messages.send("alfa", "bravo", "for bravo")
        await messages.send("bravo", "alfa", "for alfa")
        await messages.purge_inbox("bravo")
        assert [r["to_agent"] for r in store.dump("messages")] == ["alfa"]
