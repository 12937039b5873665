"""Locating the coordination scope and the calling terminal.

A scope is the first `<dirname>` marker directory found walking upward from
the working directory; the project root is its parent. Terminal identity is
the controlling tty of this process or, failing that, of the nearest
ancestor process that has one.
"""

from __future__ import annotations

import os
import subprocess
from dataclasses import dataclass
from pathlib import Path

import structlog

logger = structlog.get_logger()

_NO_TTY = {"", "?", "??", "not a tty"}


def find_scope_dir(cwd: Path | str, dirname: str = ".hivemind") -> Path | None:
    """Return the nearest `dirname` directory at or above cwd, or None."""
    current = Path(cwd).resolve()
    for candidate in (current, *current.parents):
        marker = candidate / dirname
        if marker.is_dir():
            return marker
    return None


def project_root(scope_dir: Path) -> Path:
    return scope_dir.parent


def relative_path(file_path: str, cwd: str, root: Path | str | None = None) -> str:
    """Key a file by its path under the project root (cwd when no root is given).

    Relative paths are taken against cwd first. Paths outside the root stay
    absolute, so every agent still keys them the same way.
    """
    path = file_path
    if not os.path.isabs(path):
        path = os.path.normpath(os.path.join(cwd, path))
    prefix = str(root if root is not None else cwd).rstrip("/") + "/"
    for candidate in (path, os.path.realpath(path)):
        if candidate.startswith(prefix):
            return candidate[len(prefix):]
    return path


def detect_terminal() -> str:
    for fd in (0, 1, 2):
        try:
            return os.ttyname(fd)
        except OSError:
            continue
    return _walk_process_tree(os.getpid())


def _walk_process_tree(pid: int) -> str:
    while pid > 1:
        tty = _ps_field(pid, "tty")
        if tty not in _NO_TTY:
            return tty if tty.startswith("/dev/") else f"/dev/{tty}"
        parent = _ps_field(pid, "ppid")
        if not parent.isdigit():
            break
        pid = int(parent)
    return ""


def _ps_field(pid: int, field: str) -> str:
    try:
        out = subprocess.run(
            ["ps", "-o", f"{field}=", "-p", str(pid)],
            capture_output=True,
            text=True,
            timeout=2,
            check=False,
        )
    except (OSError, subprocess.SubprocessError) as e:
        logger.debug("ps_failed", pid=pid, error=str(e))
        return ""
    return out.stdout.strip()


def terminal_key(terminal: str) -> str:
    return terminal.replace("/", "_")


@dataclass(frozen=True)
class AgentStatusLine:
    name: str
    current_task: str = ""
    last_task: str = ""


class TerminalCache:
    """Per-terminal files in cache_dir read by the status line and tool server.

    hivemind-status-<key>: agent name, current task, last task (one per line).
    hivemind-dir-<key>: absolute path of the scope directory.
    """

    def __init__(self, cache_dir: Path) -> None:
        self.cache_dir = cache_dir

    def _status_path(self, terminal: str) -> Path:
        return self.cache_dir / f"hivemind-status-{terminal_key(terminal)}"

    def _dir_path(self, terminal: str) -> Path:
        return self.cache_dir / f"hivemind-dir-{terminal_key(terminal)}"

    def write_status(self, terminal: str, status: AgentStatusLine) -> None:
        if not terminal:
            return
        lines = [status.name, _one_line(status.current_task), _one_line(status.last_task)]
        self._write(self._status_path(terminal), "\n".join(lines) + "\n")

    def read_status(self, terminal: str) -> AgentStatusLine | None:
        if not terminal:
            return None
        try:
            lines = self._status_path(terminal).read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return None
        if not lines or not lines[0]:
            return None
        lines += [""] * (3 - len(lines))
        return AgentStatusLine(name=lines[0], current_task=lines[1], last_task=lines[2])

    def write_scope(self, terminal: str, scope_dir: Path) -> None:
        if not terminal:
            return
        self._write(self._dir_path(terminal), f"{scope_dir}\n")

    def read_scope(self, terminal: str) -> Path | None:
        if not terminal:
            return None
        try:
            raw = self._dir_path(terminal).read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        return Path(raw) if raw else None

    def _write(self, path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(f".{path.name}.{os.getpid()}.tmp")
        tmp.write_text(content, encoding="utf-8")
        os.replace(tmp, path)


def _one_line(text: str) -> str:
    return " ".join(text.split())
