"""Identity resolution: crash recovery, pool allocation and pre-registration."""

from __future__ import annotations

import pytest

from hivemind.constants import AGENT_NAMES
from hivemind.coord.identity import (
    IdentityRequest,
    IdentityResolver,
    PoolStrategy,
    ResolverView,
    SynthesizedStrategy,
)
from hivemind.coord.models import Agent
from hivemind.coord.registry import AgentRegistry
from hivemind.infra.errors import MalformedInput
from hivemind.store.memory import MemoryStore


@pytest.fixture
def registry(store: MemoryStore, clock) -> AgentRegistry:
    return AgentRegistry(store, "agents", now_fn=clock)


@pytest.fixture
def resolver(registry: AgentRegistry, clock) -> IdentityResolver:
    return IdentityResolver(registry, now_fn=clock)


class TestResolve:
    @pytest.mark.asyncio
    async def test_first_agent_gets_first_name(self, resolver: IdentityResolver) -> None:
        resolution = await resolver.resolve("/dev/ttys001", "sess-1")
        assert resolution.name == "alfa"
        assert resolution.source == "pool"
        assert resolution.created is True

    @pytest.mark.asyncio
    async def test_second_terminal_gets_next_name(self, resolver: IdentityResolver) -> None:
        await resolver.resolve("/dev/ttys001", "sess-1")
        resolution = await resolver.resolve("/dev/ttys002", "sess-2")
        assert resolution.name == "bravo"

    @pytest.mark.asyncio
    async def test_same_terminal_recovers_name_after_crash(
        self, resolver: IdentityResolver, registry: AgentRegistry, clock
    ) -> None:
        first = await resolver.resolve("/dev/ttys001", "sess-1")
        clock.advance(30)
        # Crash: no session end ran, the host restarts with a new session handle.
        second = await resolver.resolve("/dev/ttys001", "sess-2")
        assert second.name == first.name
        assert second.source == "terminal"
        agent = await registry.get_by_name(first.name)
        assert agent is not None
        assert agent.session_handle == "sess-2"
        assert agent.started_at == clock.now

    @pytest.mark.asyncio
    async def test_recovery_keeps_task_state(
        self, resolver: IdentityResolver, registry: AgentRegistry
    ) -> None:
        await resolver.resolve("/dev/ttys001", "sess-1")
        await registry.set_current_task("alfa", "refactor auth")
        second = await resolver.resolve("/dev/ttys001", "sess-2")
        assert second.agent.current_task == "refactor auth"

    @pytest.mark.asyncio
    async def test_session_match_without_terminal(self, resolver: IdentityResolver) -> None:
        await resolver.resolve("", "sess-1")
        again = await resolver.resolve("", "sess-1")
        assert again.name == "alfa"
        assert again.source == "session"

    @pytest.mark.asyncio
    async def test_ended_agent_recovered_while_others_active(
        self, resolver: IdentityResolver, registry: AgentRegistry
    ) -> None:
        await resolver.resolve("/dev/ttys001", "sess-1")  # alfa
        await resolver.resolve("/dev/ttys002", "sess-2")  # bravo
        await registry.end_session("alfa")
        back = await resolver.resolve("/dev/ttys001", "sess-3")
        assert back.name == "alfa"
        assert back.source == "terminal"
        assert back.agent.ended_at == 0

    @pytest.mark.asyncio
    async def test_pool_skips_names_claimable_by_their_terminal(
        self, resolver: IdentityResolver, registry: AgentRegistry
    ) -> None:
        await resolver.resolve("/dev/ttys001", "sess-1")  # alfa
        await resolver.resolve("/dev/ttys002", "sess-2")  # bravo
        await registry.end_session("alfa")
        newcomer = await resolver.resolve("/dev/ttys003", "sess-3")
        assert newcomer.name == "charlie"

    @pytest.mark.asyncio
    async def test_nobody_active_starts_fresh(
        self, resolver: IdentityResolver, registry: AgentRegistry
    ) -> None:
        await resolver.resolve("/dev/ttys001", "sess-1")  # alfa
        await resolver.resolve("/dev/ttys002", "sess-2")  # bravo
        await registry.end_session("alfa")
        await registry.end_session("bravo")
        fresh = await resolver.resolve("/dev/ttys002", "sess-3")
        assert fresh.name == "alfa"
        assert fresh.created is True
        assert fresh.agent.current_task == ""

    @pytest.mark.asyncio
    async def test_one_live_agent_per_terminal(
        self, resolver: IdentityResolver, registry: AgentRegistry
    ) -> None:
        await resolver.resolve("", "sess-1")  # alfa, no terminal yet
        await resolver.resolve("/dev/ttys009", "sess-2")  # bravo on ttys009
        # alfa's session now reports the same terminal
        await resolver.resolve("/dev/ttys009", "sess-1")
        live = [a for a in await registry.list_active() if a.terminal_handle == "/dev/ttys009"]
        assert len(live) == 1

    @pytest.mark.asyncio
    async def test_session_required(self, resolver: IdentityResolver) -> None:
        with pytest.raises(MalformedInput):
            await resolver.resolve("/dev/ttys001", "")


class TestPoolExhaustion:
    @pytest.mark.asyncio
    async def test_synthesized_name_after_pool(
        self, resolver: IdentityResolver, registry: AgentRegistry
    ) -> None:
        for i, name in enumerate(AGENT_NAMES):
            await registry.upsert(
                Agent(name=name, session_handle=f"s{i}", terminal_handle=f"/dev/t{i}")
            )
        resolution = await resolver.resolve("/dev/ttys100", "deadbeefcafe")
        assert resolution.name == "agent-deadbeef"
        assert resolution.source == "synthesized"

    @pytest.mark.asyncio
    async def test_strategies_are_independent(self, registry: AgentRegistry) -> None:
        view = ResolverView(registry, [Agent(name=n, session_handle="x") for n in AGENT_NAMES])
        request = IdentityRequest(terminal="", session="mcp-12345678xyz")
        assert await PoolStrategy().find(request, view) is None
        synthesized = await SynthesizedStrategy().find(request, view)
        assert synthesized is not None
        assert synthesized.name == "agent-12345678"


class TestPreregistration:
    @pytest.mark.asyncio
    async def test_hook_adopts_preregistered_name(
        self, resolver: IdentityResolver, registry: AgentRegistry
    ) -> None:
        claimed = await resolver.preregister("4242")
        assert claimed.name == "alfa"
        assert claimed.created is True
        assert claimed.agent.session_handle == "mcp-4242"

        adopted = await resolver.resolve("/dev/ttys001", "sess-1")
        assert adopted.name == "alfa"
        assert adopted.source == "prereg"
        assert adopted.created is False
        agent = await registry.get_by_name("alfa")
        assert agent is not None
        assert agent.session_handle == "sess-1"
        assert agent.terminal_handle == "/dev/ttys001"

    @pytest.mark.asyncio
    async def test_preregistered_on_same_terminal_is_found_by_terminal(
        self, resolver: IdentityResolver
    ) -> None:
        await resolver.preregister("4242", "/dev/ttys001")
        adopted = await resolver.resolve("/dev/ttys001", "sess-1")
        assert adopted.name == "alfa"
        assert adopted.source == "terminal"

    @pytest.mark.asyncio
    async def test_preregistered_on_other_terminal_not_adopted(
        self, resolver: IdentityResolver
    ) -> None:
        await resolver.preregister("4242", "/dev/ttys001")
        other = await resolver.resolve("/dev/ttys002", "sess-2")
        assert other.name == "bravo"

    @pytest.mark.asyncio
    async def test_preregister_is_idempotent(self, resolver: IdentityResolver) -> None:
        first = await resolver.preregister("4242", "/dev/ttys001")
        second = await resolver.preregister("4242", "/dev/ttys001")
        assert first.name == second.name

    @pytest.mark.asyncio
    async def test_release_only_unadopted_claim(
        self, resolver: IdentityResolver, registry: AgentRegistry
    ) -> None:
        await resolver.preregister("1")
        assert await resolver.release_preregistered("alfa", "1") is True
        assert await registry.get_by_name("alfa") is None

        await resolver.preregister("2")
        await resolver.resolve("/dev/ttys001", "sess-1")
        assert await resolver.release_preregistered("alfa", "2") is False
        assert await registry.get_by_name("alfa") is not None

    @pytest.mark.asyncio
    async def test_restarted_terminal_takes_back_its_ended_record(
        self, resolver: IdentityResolver, registry: AgentRegistry
    ) -> None:
        await resolver.resolve("/dev/ttys001", "sess-1")
        await resolver.resolve("/dev/ttys002", "sess-2")
        await registry.end_session("bravo")

        claimed = await resolver.preregister("999", "/dev/ttys002")
        assert claimed.name == "bravo"
        assert claimed.source == "terminal"
        assert claimed.created is False

        adopted = await resolver.resolve("/dev/ttys002", "sess-3")
        assert adopted.name == "bravo"
        assert [a.name for a in await registry.list_active()] == ["alfa", "bravo"]

    @pytest.mark.asyncio
    async def test_release_of_recovered_record_ends_it(
        self, resolver: IdentityResolver, registry: AgentRegistry
    ) -> None:
        await resolver.resolve("/dev/ttys001", "sess-1")
        await resolver.resolve("/dev/ttys002", "sess-2")
        await registry.set_current_task("bravo", "docs pass")
        await registry.end_session("bravo")
        claimed = await resolver.preregister("999", "/dev/ttys002")

        assert await resolver.release_preregistered("bravo", "999", created=claimed.created)
        bravo = await registry.get_by_name("bravo")
        assert bravo is not None and bravo.is_ended
        assert bravo.terminal_handle == "/dev/ttys002"
        assert bravo.last_task == "docs pass"

    @pytest.mark.asyncio
    async def test_preregister_synthesizes_when_pool_is_taken(
        self, resolver: IdentityResolver, registry: AgentRegistry
    ) -> None:
        for name in AGENT_NAMES:
            await registry.upsert(Agent(name=name, session_handle=f"s-{name}"))
        claimed = await resolver.preregister("12345678")
        assert claimed.name == "agent-12345678"
        assert claimed.source == "synthesized"
        assert claimed.created is True

    @pytest.mark.asyncio
    async def test_lookup_is_read_only(
        self, resolver: IdentityResolver, store: MemoryStore
    ) -> None:
        assert await resolver.lookup("/dev/ttys001", "sess-1") is None
        assert store.dump("agents") == []
        await resolver.resolve("/dev/ttys001", "sess-1")
        found = await resolver.lookup("/dev/ttys001", "other")
        assert found is not None
        assert found.name == "alfa"
