from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol

from hivemind.store.filters import Filter

DEFAULT_LIMIT = 100


class DocumentStore(Protocol):
    """Collection-oriented document store.

    No transactions, no ordering, no compare-and-swap. Writes become visible
    to other processes only after flush(collection).
    """

    async def ready(self, collection: str) -> bool: ...

    async def query(
        self,
        collection: str,
        filter: Filter,
        *,
        fields: Sequence[str] | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[dict[str, Any]]: ...

    async def insert(self, collection: str, records: Sequence[dict[str, Any]]) -> None: ...

    async def upsert(self, collection: str, records: Sequence[dict[str, Any]]) -> None: ...

    async def delete(self, collection: str, filter: Filter) -> None: ...

    async def flush(self, collection: str) -> None: ...

    async def close(self) -> None: ...
