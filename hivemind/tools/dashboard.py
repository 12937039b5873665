"""Plain-text views shared by the tools and the CLI."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from datetime import UTC, datetime

from hivemind.coord.hive import Hive
from hivemind.coord.models import Agent, ChangeEntry, FileLock, Message, Priority, Task

STATUS_CHANGES = 5


def format_clock(epoch: int) -> str:
    if epoch <= 0:
        return "--:--:--"
    return datetime.fromtimestamp(epoch, UTC).strftime("%H:%M:%S")


def _files_by_agent(locks: Sequence[FileLock]) -> dict[str, list[str]]:
    files: dict[str, list[str]] = defaultdict(list)
    for lock in locks:
        files[lock.agent_name].append(lock.file_path)
    return files


def render_agents(agents: Sequence[Agent], locks: Sequence[FileLock]) -> str:
    files = _files_by_agent(locks)
    lines = ["HIVEMIND AGENTS", "==============="]
    for agent in agents:
        lines.append("")
        lines.append(f"Agent: {agent.name} ({agent.status.value})")
        if agent.current_task:
            lines.append(f"  Task: {agent.current_task}")
        lines.append(f"  Files: {', '.join(files.get(agent.name, [])) or '(none)'}")
    lines.append("")
    lines.append(f"Total: {len(agents)} agent(s)")
    return "\n".join(lines)


def render_change(entry: ChangeEntry) -> str:
    return f"[{format_clock(entry.timestamp)}] {entry.agent}: {entry.action} {entry.file_path}"


def render_changes(entries: Sequence[ChangeEntry], count: int) -> str:
    if not entries:
        return "No changes recorded yet."
    lines = ["HIVEMIND CHANGELOG", "==================", "", f"Last {count} changes:"]
    lines.extend(render_change(e) for e in entries)
    return "\n".join(lines)


def render_status(
    agents: Sequence[Agent],
    locks: Sequence[FileLock],
    tasks: Sequence[Task],
    changes: Sequence[ChangeEntry],
) -> str:
    files = _files_by_agent(locks)
    lines = ["HIVEMIND STATUS DASHBOARD", "=========================", "", "AGENTS", "------"]
    if not agents:
        lines.append("No active agents.")
    for agent in agents:
        lines.append(agent.name)
        lines.append(f"  Task: {agent.current_task or '(none)'}")
        lines.append(f"  Files: {', '.join(files.get(agent.name, [])) or '(none)'}")

    lines += ["", "FILE LOCKS", "----------"]
    if locks:
        lines.extend(f"{lock.file_path} (held by {lock.agent_name})" for lock in locks)
    else:
        lines.append("No active file locks.")

    lines += ["", "TASKS", "-----"]
    if tasks:
        for task in tasks:
            owner = task.assignee or "unassigned"
            lines.append(f"#{task.seq_id} [{task.state.value}] {task.title} ({owner})")
    else:
        lines.append("No open tasks.")

    lines += [
        "",
        "MESSAGES",
        "--------",
        "Messages from other agents are delivered automatically with each prompt.",
        "",
        "RECENT CHANGES",
        "--------------",
    ]
    if changes:
        lines.extend(render_change(e) for e in changes)
    else:
        lines.append("No changes recorded.")
    return "\n".join(lines)


def render_inbox(agent: str, messages: Sequence[Message]) -> str:
    if not messages:
        return f"No messages for {agent}."
    lines = [f"HIVEMIND INBOX ({agent})", "=============="]
    for message in messages:
        state = "read" if message.is_delivered else "new"
        prefix = ""
        if message.priority is not Priority.normal:
            prefix = f"[{message.priority.value.upper()}] "
        lines.append(
            f"[{format_clock(message.created_at)}] ({state}) {prefix}{message.from_agent}: "
            f"{message.body}"
        )
    return "\n".join(lines)


async def dashboard(hive: Hive) -> str:
    return render_status(
        await hive.registry.list_active(),
        await hive.locks.list_locks(),
        await hive.tasks.list_open(),
        await hive.changelog.recent(STATUS_CHANGES),
    )
