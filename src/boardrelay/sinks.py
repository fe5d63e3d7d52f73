"""
MIT License
Copyright (c) 2026 arpan404
See LICENSE file for full license text.

Result sinks for finished deliveries. Persistence is best-effort: it never
blocks or fails a delivery.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from .contracts import ResultSink
from .types import DeliveryResult

logger = logging.getLogger("boardrelay.sinks")


class InMemoryResultSink:
    """In-memory sink used by default and in tests."""

    def __init__(self) -> None:
        self._records: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def upsert(self, record: dict[str, Any]) -> None:
        async with self._lock:
            self._records[str(record["id"])] = dict(record)

    async def get(self, delivery_id: str) -> dict[str, Any] | None:
        async with self._lock:
            record = self._records.get(delivery_id)
            return dict(record) if record is not None else None

    async def list_records(self) -> list[dict[str, Any]]:
        async with self._lock:
            return [dict(r) for r in self._records.values()]


class NullResultSink:
    """Sink that drops every record."""

    async def upsert(self, record: dict[str, Any]) -> None:
        _ = record


class RedisResultSink:
    """Redis-backed sink storing one JSON document per delivery id."""

    def __init__(self, redis: Any, *, prefix: str = "boardrelay") -> None:
        self._redis = redis
        self._prefix = prefix

    def _key(self, delivery_id: str) -> str:
        return f"{self._prefix}:deliveries:{delivery_id}"

    async def upsert(self, record: dict[str, Any]) -> None:
        payload = json.dumps(record, ensure_ascii=True, default=str)
        await self._redis.set(self._key(str(record["id"])), payload)

    async def get(self, delivery_id: str) -> dict[str, Any] | None:
        raw = await self._redis.get(self._key(delivery_id))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return json.loads(raw)


async def persist_result(
    sink: ResultSink | None,
    result: DeliveryResult,
    actor_id: str | None,
) -> bool:
    """
    Upsert the flattened result record.

    Skipped without an authenticated actor. Sink failures are logged and
    swallowed. Returns whether the record was written.
    """
    if sink is None:
        return False
    if not actor_id:
        logger.debug("No actor for delivery %s, skipping result persistence", result.id)
        return False
    try:
        await sink.upsert(result.to_record(actor_id))
    except Exception:  # noqa: BLE001
        logger.exception("Failed to store delivery result %s (continuing anyway)", result.id)
        return False
    return True
