from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from hivemind.constants import COLLECTION_PREFIX

_UNSAFE = re.compile(r"[^a-z0-9]+")


def sanitize_project_name(name: str) -> str:
    """Map a project directory name to a collection-safe token."""
    token = _UNSAFE.sub("_", name.strip().lower()).strip("_")
    return token or "default"


@dataclass(frozen=True)
class Collections:
    """Collection names scoped to one project."""

    project: str

    @classmethod
    def for_project_root(cls, root: Path) -> Collections:
        return cls(sanitize_project_name(root.name))

    def _name(self, kind: str) -> str:
        return f"{COLLECTION_PREFIX}_{self.project}_{kind}"

    @property
    def agents(self) -> str:
        return self._name("agents")

    @property
    def file_locks(self) -> str:
        return self._name("file_locks")

    @property
    def messages(self) -> str:
        return self._name("messages")

    @property
    def changelog(self) -> str:
        return self._name("changelog")

    @property
    def tasks(self) -> str:
        return self._name("tasks")

    @property
    def sequences(self) -> str:
        return self._name("sequences")

    @property
    def wake_queue(self) -> str:
        return self._name("wake_queue")

    @property
    def metrics(self) -> str:
        return self._name("metrics")

    def all(self) -> tuple[str, ...]:
        return (
            self.agents,
            self.file_locks,
            self.messages,
            self.changelog,
            self.tasks,
            self.sequences,
            self.wake_queue,
            self.metrics,
        )
