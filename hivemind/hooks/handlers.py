"""Lifecycle event handlers.

Each handler runs in a short-lived process for one host event and returns
an optional control message. Handlers assume the store is ready; the router
checks that and swallows failures.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

import structlog

from hivemind.constants import EDIT_TOOLS, FLAG_AWAITING_TASK, IDENTITY_TOOLS, TASK_TOOL
from hivemind.coord.hive import Hive
from hivemind.coord.models import Agent
from hivemind.coord.scope import project_root, relative_path
from hivemind.hooks.protocol import (
    HookInput,
    HookOutput,
    HookSpecificOutput,
    context_output,
    message_output,
)
from hivemind.infra.errors import StoreError

logger = structlog.get_logger()

TASK_TRACKING = "[HIVEMIND TASK TRACKING]"


@dataclass(frozen=True)
class HookCall:
    hive: Hive
    event: HookInput
    terminal: str

    async def agent(self) -> Agent | None:
        return await self.hive.identity.lookup(self.terminal, self.event.session_id)

    def lock_key(self, file_path: str) -> str:
        return relative_path(file_path, self.event.cwd, project_root(self.hive.scope_dir))


Handler = Callable[[HookCall], Awaitable[HookOutput | None]]


def tool_matches(tool_name: str, name: str) -> bool:
    """Host-namespaced tool names (mcp__<server>__hive_task) match their base name."""
    return tool_name == name or tool_name.endswith(f"__{name}")


# ── SessionStart ──


async def session_start(call: HookCall) -> HookOutput | None:
    hive = call.hive
    resolution = await hive.claim_identity(call.terminal, call.event.session_id)
    name = resolution.name
    try:
        await hive.messages.sweep()
    except StoreError as e:
        logger.warning("message_sweep_failed", error=str(e))

    others = [a for a in await hive.registry.list_active() if a.name != name]
    own_tasks = await hive.tasks.list_for_assignee(name)
    review = await hive.tasks.list_in_review(exclude=name)

    parts = [f"[HIVEMIND] You are agent '{name}'."]
    if others:
        listing = ", ".join(
            f"{a.name} ({a.current_task})" if a.current_task else a.name for a in others
        )
        parts.append(f"Other agents: {listing}.")
    else:
        parts.append("No other agents active.")
    if own_tasks:
        listing = ", ".join(f"#{t.seq_id}: {t.title} [{t.state.value}]" for t in own_tasks)
        parts.append(f"Your tasks: {listing}.")
    if review:
        listing = ", ".join(f"#{t.seq_id}: {t.title} (by {t.assignee})" for t in review)
        parts.append(f"Tasks awaiting review: {listing}.")
    parts.append("Use /hive status for coordination.")
    return context_output("SessionStart", " ".join(parts))


# ── UserPromptSubmit ──


async def prompt_submit(call: HookCall) -> HookOutput | None:
    agent = await call.agent()
    if agent is None:
        return None
    delivered = await call.hive.messages.deliver(agent.name)
    reminder = (
        f"{TASK_TRACKING}\n"
        f"You are agent {agent.name}. Record your current task using hive_task so other "
        "agents can see what you're working on. When you finish processing or are waiting "
        "for user input, clear your task by calling hive_task with an empty description - "
        "never set it to 'idle', 'waiting', or similar."
    )
    text = f"{delivered}\n{reminder}" if delivered else reminder
    return context_output("UserPromptSubmit", text)


# ── PreToolUse ──


async def pre_tool(call: HookCall) -> HookOutput | None:
    event = call.event
    tool = event.tool_name
    agent = await call.agent()
    delivery = await call.hive.messages.deliver(agent.name) if agent is not None else ""

    if agent is not None and not tool_matches(tool, TASK_TOOL):
        if agent.flags.get(FLAG_AWAITING_TASK):
            return _deny(
                delivery,
                f"[HIVEMIND] Agent {agent.name}: your plan was accepted. Record it as your "
                "current task with hive_task before using other tools.",
            )

    if tool == "EnterPlanMode":
        text = delivery
        if agent is not None:
            text += (
                f"{TASK_TRACKING} Agent {agent.name}: You are entering plan mode. Set your "
                "task to 'Planning: <short topic>' using hive_task so other agents know you "
                "are planning (e.g., 'Planning: auth refactor' or 'Planning: API endpoints')."
                "\n\n"
            )
        return message_output(text)

    if tool == "ExitPlanMode":
        text = delivery
        if agent is not None:
            text += (
                f"{TASK_TRACKING} Plan accepted. Agent {agent.name}: Record this plan as your "
                "current task using hive_task so other agents can see what you are working on."
                "\n\n"
            )
            text += await _delegation_guidance(call.hive, agent.name)
        return message_output(text)

    if any(tool_matches(tool, name) for name in IDENTITY_TOOLS):
        updated = {**event.tool_input, "session_id": event.session_id, "tty": call.terminal}
        return HookOutput(
            message=delivery or None,
            hook_specific_output=HookSpecificOutput(
                hook_event_name="PreToolUse",
                permission_decision="allow",
                updated_input=updated,
            ),
        )

    if tool in EDIT_TOOLS and event.file_path and agent is not None:
        path = call.lock_key(event.file_path)
        warning = await call.hive.lock_file(agent.name, path)
        if warning is not None:
            return message_output(delivery + warning.render())

    return message_output(delivery)


async def _delegation_guidance(hive: Hive, name: str) -> str:
    busy, idle = [], []
    for other in await hive.registry.list_active():
        if other.name == name:
            continue
        if other.current_task:
            busy.append(f"  - {other.name}: {other.current_task}\n")
        else:
            idle.append(f"  - {other.name}\n")

    text = ""
    if busy:
        text += (
            "[HIVEMIND COLLABORATION] Other agents are working on:\n"
            + "".join(busy)
            + "\nWhen you encounter work that overlaps with another agent's task, delegate it "
            "to them rather than doing it yourself. When delegating, include all relevant "
            "context: file paths, implementation details, and any decisions you've already "
            "made.\n\n"
        )
    if idle:
        text += (
            "[HIVEMIND DELEGATION] The following agent(s) are idle and available for "
            "delegation:\n"
            + "".join(idle)
            + "\nDelegation rules:\n"
            "1. DELEGATE EARLY: If your plan involves work that can be parallelized, delegate "
            "to idle agents AS SOON AS POSSIBLE so work proceeds concurrently. Do not wait "
            "until you've finished your own tasks.\n"
            "2. ONE TASK AT A TIME: Research what's needed, then assign to one agent. Wait for "
            "their acknowledgment or questions before the next delegation. Do not bulk-assign.\n"
            "3. AFTER DELEGATING: If you have delegated work and have nothing else to do, clear "
            "your task (hive_task with empty description) and STOP. You will be woken up when "
            "agents report back. Do NOT poll or pester for status.\n"
            "4. CONTEXT IS KEY: Include file paths, implementation details, and decisions so "
            "agents can start immediately.\n\n"
        )
    return text


def _deny(delivery: str, reason: str) -> HookOutput:
    return HookOutput(
        message=delivery or None,
        hook_specific_output=HookSpecificOutput(
            hook_event_name="PreToolUse",
            permission_decision="deny",
            permission_decision_reason=reason,
        ),
    )


# ── PostToolUse ──


async def post_tool(call: HookCall) -> HookOutput | None:
    event = call.event
    hive = call.hive
    if event.tool_name == "ExitPlanMode":
        agent = await call.agent()
        if agent is not None:
            await hive.registry.set_flag(agent.name, FLAG_AWAITING_TASK, "1")
        return None

    if event.tool_name not in EDIT_TOOLS or not event.file_path:
        return None
    agent = await call.agent()
    if agent is None:
        return None

    path = call.lock_key(event.file_path)
    action, summary = _classify_edit(event.tool_name, event.tool_response_text)
    await hive.changelog.record(agent.name, action, path, summary)
    await hive.locks.release(path, agent.name)
    return None


def _classify_edit(tool_name: str, result: str) -> tuple[str, str]:
    lowered = result.lower()
    if tool_name == "Write" and "created" in lowered:
        return "create", "Created file"
    action = "write" if tool_name == "Write" else "edit"
    if any(word in lowered for word in ("updated", "modified", "edited")):
        return action, "Modified file"
    return action, ""


# ── Stop / SessionEnd ──


async def stop(call: HookCall) -> HookOutput | None:
    agent = await call.agent()
    if agent is None:
        return None
    result = await call.hive.tasks.clear_current_task(agent.name)
    if result.completed:
        logger.info(
            "task_cleared_on_stop",
            agent=agent.name,
            task=result.previous_task,
            elapsed=result.elapsed,
        )
    updated = await call.hive.registry.get_by_name(agent.name)
    if updated is not None:
        call.hive.refresh_cache(updated)
    return None


async def session_end(call: HookCall) -> HookOutput | None:
    agent = await call.agent()
    if agent is None:
        return None
    await call.hive.end_agent(agent.name)
    return None


HANDLERS: dict[str, Handler] = {
    "SessionStart": session_start,
    "UserPromptSubmit": prompt_submit,
    "PreToolUse": pre_tool,
    "PostToolUse": post_tool,
    "Stop": stop,
    "SessionEnd": session_end,
}
