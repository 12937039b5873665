"""Milvus v2 REST client implementing the DocumentStore contract.

Every collection carries a fixed-dimension placeholder vector because the
store requires one; it is added on write and stripped from query results.
Only rate-limit responses are retried. Connection failures surface as
StoreUnavailable so callers can degrade instead of failing.
"""

from __future__ import annotations

import asyncio
import random
from collections.abc import Sequence
from typing import Any

import httpx
import structlog

from hivemind.config.settings import StoreSettings
from hivemind.constants import PLACEHOLDER_DIM, VECTOR_FIELD
from hivemind.infra.errors import RateLimited, StoreError, StoreUnavailable
from hivemind.store.base import DEFAULT_LIMIT
from hivemind.store.filters import Filter

logger = structlog.get_logger()

_RATE_LIMIT_CODES = frozenset({8, 429})
_PLACEHOLDER = [0.0] * PLACEHOLDER_DIM


class _RateLimitSignal(Exception):
    """Internal marker: the store asked us to slow down."""


def _is_rate_limited(code: int, message: str) -> bool:
    return code in _RATE_LIMIT_CODES or "rate limit" in message.lower()


class MilvusStore:
    """DocumentStore over the Milvus REST API."""

    def __init__(
        self,
        settings: StoreSettings,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._settings = settings
        self._client = client or httpx.AsyncClient(
            base_url=settings.base_url,
            timeout=settings.timeout_s,
        )
        self._headers = {
            "Authorization": f"Bearer {settings.auth}",
            "Content-Type": "application/json",
        }

    async def close(self) -> None:
        await self._client.aclose()

    async def ready(self, collection: str) -> bool:
        """True when the store answers and the probe collection exists."""
        try:
            data = await self._call("/v2/vectordb/collections/has", {"collectionName": collection})
        except StoreUnavailable:
            return False
        except StoreError as e:
            logger.warning("store_probe_failed", collection=collection, error=str(e))
            return False
        return bool(isinstance(data, dict) and data.get("has"))

    async def query(
        self,
        collection: str,
        filter: Filter,
        *,
        fields: Sequence[str] | None = None,
        limit: int = DEFAULT_LIMIT,
    ) -> list[dict[str, Any]]:
        payload: dict[str, Any] = {
            "collectionName": collection,
            "filter": filter.render(),
            "outputFields": list(fields) if fields else ["*"],
            "limit": limit,
        }
        data = await self._call("/v2/vectordb/entities/query", payload)
        if not isinstance(data, list):
            raise StoreError(f"query on {collection} returned non-list payload")
        return [
            {k: v for k, v in row.items() if k != VECTOR_FIELD}
            for row in data
            if isinstance(row, dict)
        ]

    async def insert(self, collection: str, records: Sequence[dict[str, Any]]) -> None:
        if not records:
            return
        await self._call(
            "/v2/vectordb/entities/insert",
            {"collectionName": collection, "data": _with_placeholder(records)},
        )

    async def upsert(self, collection: str, records: Sequence[dict[str, Any]]) -> None:
        if not records:
            return
        await self._call(
            "/v2/vectordb/entities/upsert",
            {"collectionName": collection, "data": _with_placeholder(records)},
        )

    async def delete(self, collection: str, filter: Filter) -> None:
        expression = filter.render()
        if not expression:
            raise StoreError(f"refusing unfiltered delete on {collection}")
        await self._call(
            "/v2/vectordb/entities/delete",
            {"collectionName": collection, "filter": expression},
        )

    async def flush(self, collection: str) -> None:
        await self._call("/v2/vectordb/collections/flush", {"collectionName": collection})

    async def _call(self, endpoint: str, payload: dict[str, Any]) -> Any:
        """POST with exponential backoff on rate limiting only."""
        body = {"dbName": self._settings.db, **payload}
        max_retries = self._settings.max_retries
        for attempt in range(max_retries + 1):
            try:
                return await self._post(endpoint, body)
            except _RateLimitSignal as e:
                if attempt == max_retries:
                    raise RateLimited(
                        f"{endpoint} still rate limited after {max_retries + 1} attempts: {e}"
                    ) from e
                delay = self._settings.retry_base_delay_s * (2**attempt)
                delay += random.uniform(0, delay / 4) if delay else 0.0
                logger.warning(
                    "store_retry",
                    endpoint=endpoint,
                    attempt=attempt + 1,
                    max_retries=max_retries,
                    delay=round(delay, 3),
                )
                await asyncio.sleep(delay)
        # Unreachable, but satisfies type checker
        raise RateLimited("Retry loop exhausted")  # pragma: no cover

    async def _post(self, endpoint: str, body: dict[str, Any]) -> Any:
        try:
            response = await self._client.post(endpoint, json=body, headers=self._headers)
        except (httpx.ConnectError, httpx.TimeoutException) as e:
            raise StoreUnavailable(f"Cannot reach store at {self._settings.base_url}: {e}") from e
        except httpx.HTTPError as e:
            raise StoreError(f"{endpoint} transport error: {e}") from e

        if response.status_code == 429:
            raise _RateLimitSignal(response.text)
        if response.status_code >= 400:
            raise StoreError(f"{endpoint} failed: HTTP {response.status_code} {response.text}")

        try:
            payload = response.json()
        except ValueError as e:
            raise StoreError(f"{endpoint} returned invalid JSON") from e

        code = int(payload.get("code", 0) or 0)
        if code != 0:
            message = str(payload.get("message", ""))
            if _is_rate_limited(code, message):
                raise _RateLimitSignal(message)
            raise StoreError(f"{endpoint} failed: code={code} {message}")
        return payload.get("data")


def _with_placeholder(records: Sequence[dict[str, Any]]) -> list[dict[str, Any]]:
    return [{**record, VECTOR_FIELD: list(_PLACEHOLDER)} for record in records]
