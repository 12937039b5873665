"""Resolve a (terminal, session) pair to a stable agent codename.

Resolution is an ordered chain of strategies; the first one that returns an
agent wins:

1. terminal   - the record bound to this terminal (survives crash + restart)
2. session    - the record already bound to this session handle
3. prereg     - a record a tool server claimed ahead of the hooks
4. pool       - first free codename from the fixed pool
5. synthesize - "agent-<session prefix>" once the pool is exhausted
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Protocol

import structlog

from hivemind.constants import AGENT_NAMES, PREREGISTERED_PREFIX, SYNTHESIZED_PREFIX
from hivemind.coord.models import Agent
from hivemind.coord.registry import AgentRegistry
from hivemind.infra.clock import Clock, epoch_now
from hivemind.infra.errors import MalformedInput

logger = structlog.get_logger()


@dataclass(frozen=True)
class IdentityRequest:
    terminal: str
    session: str


@dataclass(frozen=True)
class Resolution:
    agent: Agent
    source: str
    created: bool

    @property
    def name(self) -> str:
        return self.agent.name


@dataclass
class ResolverView:
    """Snapshot of agent state shared by the strategies of one resolution."""

    registry: AgentRegistry
    everyone: list[Agent]

    @property
    def active(self) -> list[Agent]:
        return [a for a in self.everyone if not a.is_ended]

    def others_active(self, name: str) -> bool:
        return any(a.name != name for a in self.active)


def claimable_by_terminal(agent: Agent, view: ResolverView) -> bool:
    """Can the agent's own terminal still take this record back?

    A live record always can. An ended one only while somebody else is
    active; with nobody active the pool starts fresh from the first name.
    """
    if not agent.is_ended:
        return True
    return bool(agent.terminal_handle) and view.others_active(agent.name)


class ResolverStrategy(Protocol):
    source: str

    async def find(self, request: IdentityRequest, view: ResolverView) -> Agent | None: ...


class TerminalStrategy:
    source = "terminal"

    async def find(self, request: IdentityRequest, view: ResolverView) -> Agent | None:
        if not request.terminal:
            return None
        agent = await view.registry.get_by_terminal(request.terminal, include_ended=True)
        if agent is None or not claimable_by_terminal(agent, view):
            return None
        return agent


class SessionStrategy:
    source = "session"

    async def find(self, request: IdentityRequest, view: ResolverView) -> Agent | None:
        return await view.registry.get_by_session(request.session)


class PreregisteredStrategy:
    source = "prereg"

    async def find(self, request: IdentityRequest, view: ResolverView) -> Agent | None:
        candidates = [
            a
            for a in view.active
            if a.session_handle.startswith(PREREGISTERED_PREFIX)
            and a.session_handle != request.session
            and a.terminal_handle in ("", request.terminal)
        ]
        candidates.sort(key=lambda a: (a.started_at, a.name))
        return candidates[0] if candidates else None


class PoolStrategy:
    source = "pool"

    def __init__(self, names: Sequence[str] = AGENT_NAMES) -> None:
        self._names = tuple(names)

    async def find(self, request: IdentityRequest, view: ResolverView) -> Agent | None:
        taken = {a.name for a in view.everyone if claimable_by_terminal(a, view)}
        for name in self._names:
            if name not in taken:
                return Agent(name=name)
        return None


class SynthesizedStrategy:
    source = "synthesized"

    async def find(self, request: IdentityRequest, view: ResolverView) -> Agent | None:
        seed = request.session.removeprefix(PREREGISTERED_PREFIX)[:8] or "anon"
        return Agent(name=f"{SYNTHESIZED_PREFIX}{seed}")


DEFAULT_STRATEGIES: tuple[ResolverStrategy, ...] = (
    TerminalStrategy(),
    SessionStrategy(),
    PreregisteredStrategy(),
    PoolStrategy(),
    SynthesizedStrategy(),
)


class IdentityResolver:
    def __init__(
        self,
        registry: AgentRegistry,
        *,
        strategies: Sequence[ResolverStrategy] = DEFAULT_STRATEGIES,
        now_fn: Clock = epoch_now,
    ) -> None:
        self._registry = registry
        self._strategies = tuple(strategies)
        self._now = now_fn

    async def resolve(self, terminal: str, session: str) -> Resolution:
        """Claim an identity for this session, creating or adopting a record."""
        if not session:
            raise MalformedInput("session handle is required to resolve an identity")
        request = IdentityRequest(terminal=terminal, session=session)
        view = ResolverView(self._registry, await self._registry.list_all())
        known = {a.name for a in view.everyone}

        for strategy in self._strategies:
            agent = await strategy.find(request, view)
            if agent is None:
                continue
            created = strategy.source in {"pool", "synthesized"}
            if created:
                # A reused name starts clean, whatever its previous holder left.
                agent = Agent(name=agent.name)
            bound = await self._bind(agent, request)
            await self._retire_duplicates(bound, view)
            logger.info(
                "agent_resolved",
                agent=bound.name,
                source=strategy.source,
                created=created,
                reused_name=created and bound.name in known,
                terminal=terminal,
            )
            return Resolution(agent=bound, source=strategy.source, created=created)

        raise MalformedInput("no identity strategy produced an agent")  # pragma: no cover

    async def lookup(self, terminal: str, session: str) -> Agent | None:
        """Read-only identity lookup for the hot path: terminal first, then session."""
        agent = await self._registry.get_by_terminal(terminal)
        if agent is None:
            agent = await self._registry.get_by_session(session)
        return agent

    async def preregister(self, tag: str, terminal: str = "") -> Resolution:
        """Claim a name for a process that has no session handle yet.

        The terminal's own record, live or recently ended, is taken back
        before the pool is consulted, so a restarted terminal keeps its name.
        """
        session = f"{PREREGISTERED_PREFIX}{tag}"
        existing = await self.lookup(terminal, session)
        if existing is not None:
            return Resolution(agent=existing, source="lookup", created=False)
        view = ResolverView(self._registry, await self._registry.list_all())
        request = IdentityRequest(terminal=terminal, session=session)

        source, created = "terminal", False
        agent = await TerminalStrategy().find(request, view)
        if agent is None:
            source, created = "pool", True
            agent = await PoolStrategy().find(request, view)
        if agent is None:
            source = "synthesized"
            agent = await SynthesizedStrategy().find(request, view)
        if agent is None:
            raise MalformedInput("no identity strategy produced an agent")  # pragma: no cover
        if created:
            agent = Agent(name=agent.name)
        bound = await self._bind(agent, request)
        logger.info("agent_preregistered", agent=bound.name, tag=tag, source=source)
        return Resolution(agent=bound, source=source, created=created)

    async def release_preregistered(self, name: str, tag: str, *, created: bool = True) -> bool:
        """Give back a pre-registered claim that no session ever adopted.

        A freshly allocated record is deleted; a record taken back from the
        terminal's previous session is ended again so its history survives.
        """
        agent = await self._registry.get_by_name(name)
        if agent is None or agent.session_handle != f"{PREREGISTERED_PREFIX}{tag}":
            return False
        if created:
            await self._registry.delete(name)
        else:
            await self._registry.end_session(name)
        logger.info("agent_preregistration_released", agent=name, tag=tag, deleted=created)
        return True

    async def _bind(self, agent: Agent, request: IdentityRequest) -> Agent:
        agent.session_handle = request.session
        if request.terminal:
            agent.terminal_handle = request.terminal
        agent.started_at = self._now()
        agent.ended_at = 0
        await self._registry.upsert(agent)
        return agent

    async def _retire_duplicates(self, agent: Agent, view: ResolverView) -> None:
        """At most one live agent per terminal: end any other holder."""
        if not agent.terminal_handle:
            return
        for other in view.active:
            if other.name != agent.name and other.terminal_handle == agent.terminal_handle:
                await self._registry.end_session(other.name)
                logger.warning(
                    "agent_terminal_superseded",
                    agent=other.name,
                    replaced_by=agent.name,
                    terminal=agent.terminal_handle,
                )
