from __future__ import annotations

import copy
from collections import defaultdict
from collections.abc import Sequence
from typing import Any

from hivemind.constants import PRIMARY_KEY
from hivemind.infra.errors import StoreError, StoreUnavailable
from hivemind.store.base import DEFAULT_LIMIT
from hivemind.store.filters import Filter


class MemoryStore:
    """In-process DocumentStore used by tests and dry runs.

    With strict_visibility=True, writes and deletes are staged per collection
    and only become readable after flush(), mirroring the real store's
    flush-for-visibility rule.
    """

    def __init__(self, *, strict_visibility: bool = False, available: bool = True) -> None:
        self.strict_visibility = strict_visibility
        self.available = available
        self._visible: dict[str, dict[str, dict[str, Any]]] = defaultdict(dict)
        self._pending: dict[str, list[tuple[str, Any]]] = defaultdict(list)
        self.calls: list[tuple[str, str]] = []

    async def ready(self, collection: str) -> bool:
        return self.available

    async def close(self) -> None:
        return None

    async def query(
        self,
        collection: str,
        filter: Filter,
        *,
        fields: Sequence[str] | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[dict[str, Any]]:
        self._check("query", collection)
        rows: list[dict[str, Any]] = []
        for record in self._visible[collection].values():
            if not filter.matches(record):
                continue
            if fields and "*" not in fields:
                wanted = {PRIMARY_KEY, *fields}
                rows.append({k: copy.deepcopy(v) for k, v in record.items() if k in wanted})
            else:
                rows.append(copy.deepcopy(record))
            if len(rows) >= limit:
                break
        return rows

    async def insert(self, collection: str, records: Sequence[dict[str, Any]]) -> None:
        self._check("insert", collection)
        staged = {_key(r) for op, r in self._pending[collection] if op == "put"}
        for record in records:
            key = _key(record)
            if key in self._visible[collection] or key in staged:
                raise StoreError(f"duplicate primary key {key!r} in {collection}")
        self._apply(collection, [("put", copy.deepcopy(r)) for r in records])

    async def upsert(self, collection: str, records: Sequence[dict[str, Any]]) -> None:
        self._check("upsert", collection)
        for record in records:
            _key(record)
        self._apply(collection, [("put", copy.deepcopy(r)) for r in records])

    async def delete(self, collection: str, filter: Filter) -> None:
        self._check("delete", collection)
        if not filter.render():
            raise StoreError(f"refusing unfiltered delete on {collection}")
        self._apply(collection, [("delete", filter)])

    async def flush(self, collection: str) -> None:
        self._check("flush", collection)
        for op, item in self._pending.pop(collection, []):
            self._commit(collection, op, item)

    def dump(self, collection: str) -> list[dict[str, Any]]:
        """Visible records of a collection, for assertions."""
        return [copy.deepcopy(r) for r in self._visible[collection].values()]

    def _apply(self, collection: str, ops: list[tuple[str, Any]]) -> None:
        if self.strict_visibility:
            self._pending[collection].extend(ops)
            return
        for op, item in ops:
            self._commit(collection, op, item)

    def _commit(self, collection: str, op: str, item: Any) -> None:
        rows = self._visible[collection]
        if op == "put":
            rows[_key(item)] = item
            return
        for key in [k for k, r in rows.items() if item.matches(r)]:
            del rows[key]

    def _check(self, op: str, collection: str) -> None:
        self.calls.append((op, collection))
        if not self.available:
            raise StoreUnavailable()


def _key(record: dict[str, Any]) -> str:
    key = record.get(PRIMARY_KEY)
    if key in (None, ""):
        raise StoreError("record is missing its primary key")
    return str(key)
