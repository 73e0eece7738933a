"""Persisted record store — document collections keyed by integer id.

Provides an abstract interface with an in-memory and a Redis implementation.
Records are plain JSON-compatible dicts. The store assigns ``id``,
``created_at``, ``updated_at`` and ``version``; ``version`` increases by one
on every update so callers can do compare-and-swap writes via
``expected_version``.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from errors.exceptions import RecordNotFoundError, StoreUnavailableError, VersionConflictError

logger = logging.getLogger(__name__)

# Collections used by the services
SUBMISSIONS = "lkpd_submissions"
SECTION_SUBMISSIONS = "lkpd_section_submissions"
WORKSHEETS = "lkpd_worksheets"
ASSIGNMENT_SUBMISSIONS = "assignment_submissions"
ASSESSMENTS = "ai_assessments"

_SYSTEM_FIELDS = ("id", "created_at", "updated_at", "version")


def utc_now() -> str:
    """Server timestamp in ISO-8601 (UTC)."""
    return datetime.now(timezone.utc).isoformat()


def _matches(record: dict[str, Any], filters: dict[str, Any] | None) -> bool:
    if not filters:
        return True
    return all(record.get(key) == value for key, value in filters.items())


def _order(
    records: list[dict[str, Any]],
    order_by: str | None,
    descending: bool,
    limit: int | None,
) -> list[dict[str, Any]]:
    if order_by:
        # None sorts first ascending / last descending
        records.sort(
            key=lambda r: (r.get(order_by) is not None, r.get(order_by)),
            reverse=descending,
        )
    if limit is not None:
        records = records[:limit]
    return records


def _strip_system_fields(changes: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in changes.items() if k not in _SYSTEM_FIELDS}


# ── Abstract Interface ───────────────────────────────────────


class RecordStore(ABC):
    """Abstract record store — implement for different backends."""

    @abstractmethod
    async def create(self, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a record and return it with the server-assigned fields."""
        ...

    @abstractmethod
    async def get(self, collection: str, record_id: int) -> dict[str, Any] | None:
        """Fetch a record by id. Returns None if not found."""
        ...

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """Return records whose fields equal every value in *filters*."""
        ...

    @abstractmethod
    async def update(
        self,
        collection: str,
        record_id: int,
        changes: dict[str, Any],
        *,
        expected_version: int | None = None,
    ) -> dict[str, Any]:
        """Apply a partial update and return the stored record.

        Raises:
            RecordNotFoundError: no record with that id.
            VersionConflictError: ``expected_version`` given and stale.
        """
        ...

    async def close(self) -> None:
        """Release backend resources."""


# ── In-Memory Implementation ────────────────────────────────


class InMemoryRecordStore(RecordStore):
    """Single-process store. Records are deep-copied in and out so callers
    never share mutable state with the store.
    """

    def __init__(self) -> None:
        self._collections: dict[str, dict[int, dict[str, Any]]] = {}
        self._sequences: dict[str, int] = {}
        self._lock = asyncio.Lock()

    async def create(self, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        async with self._lock:
            record_id = self._sequences.get(collection, 0) + 1
            self._sequences[collection] = record_id
            now = utc_now()
            record = {
                **copy.deepcopy(_strip_system_fields(data)),
                "id": record_id,
                "created_at": now,
                "updated_at": now,
                "version": 1,
            }
            self._collections.setdefault(collection, {})[record_id] = record
            return copy.deepcopy(record)

    async def get(self, collection: str, record_id: int) -> dict[str, Any] | None:
        record = self._collections.get(collection, {}).get(record_id)
        return copy.deepcopy(record) if record is not None else None

    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        records = [
            copy.deepcopy(r)
            for r in self._collections.get(collection, {}).values()
            if _matches(r, filters)
        ]
        return _order(records, order_by, descending, limit)

    async def update(
        self,
        collection: str,
        record_id: int,
        changes: dict[str, Any],
        *,
        expected_version: int | None = None,
    ) -> dict[str, Any]:
        async with self._lock:
            record = self._collections.get(collection, {}).get(record_id)
            if record is None:
                raise RecordNotFoundError(collection, record_id)
            if expected_version is not None and record["version"] != expected_version:
                raise VersionConflictError(
                    collection, record_id, expected_version, record["version"]
                )
            record.update(copy.deepcopy(_strip_system_fields(changes)))
            record["updated_at"] = utc_now()
            record["version"] += 1
            return copy.deepcopy(record)

    @property
    def size(self) -> int:
        """Total number of records across collections."""
        return sum(len(c) for c in self._collections.values())


# ── Redis Implementation ─────────────────────────────────────


class RedisRecordStore(RecordStore):
    """Redis-backed store for multi-worker deployments.

    Each record is a JSON string under ``rec:{collection}:{id}``; a set
    ``idx:{collection}`` lists the ids and ``seq:{collection}`` hands out new
    ones. Updates use WATCH/MULTI so compare-and-swap holds across workers.
    """

    _MAX_UPDATE_ATTEMPTS = 5

    def __init__(self, redis_url: str, key_prefix: str = "lkpd:"):
        import redis.asyncio as aioredis

        self._redis = aioredis.from_url(
            redis_url,
            decode_responses=True,
            socket_connect_timeout=10,
            socket_timeout=10,
        )
        self._prefix = key_prefix

    def _key(self, collection: str, record_id: int) -> str:
        return f"{self._prefix}rec:{collection}:{record_id}"

    def _index_key(self, collection: str) -> str:
        return f"{self._prefix}idx:{collection}"

    def _seq_key(self, collection: str) -> str:
        return f"{self._prefix}seq:{collection}"

    async def create(self, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        from redis.exceptions import RedisError

        try:
            record_id = int(await self._redis.incr(self._seq_key(collection)))
            now = utc_now()
            record = {
                **_strip_system_fields(data),
                "id": record_id,
                "created_at": now,
                "updated_at": now,
                "version": 1,
            }
            async with self._redis.pipeline(transaction=True) as pipe:
                pipe.set(self._key(collection, record_id), json.dumps(record))
                pipe.sadd(self._index_key(collection), record_id)
                await pipe.execute()
            return record
        except RedisError as exc:
            logger.error("Redis create failed for %s: %s", collection, exc)
            raise StoreUnavailableError("Record store unavailable", str(exc)) from exc

    async def get(self, collection: str, record_id: int) -> dict[str, Any] | None:
        from redis.exceptions import RedisError

        try:
            raw = await self._redis.get(self._key(collection, record_id))
        except RedisError as exc:
            raise StoreUnavailableError("Record store unavailable", str(exc)) from exc
        return json.loads(raw) if raw is not None else None

    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        from redis.exceptions import RedisError

        try:
            ids = await self._redis.smembers(self._index_key(collection))
            if not ids:
                return []
            raws = await self._redis.mget([self._key(collection, int(i)) for i in ids])
        except RedisError as exc:
            raise StoreUnavailableError("Record store unavailable", str(exc)) from exc

        records = []
        for raw in raws:
            if raw is None:
                continue
            try:
                record = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning("Skipping undecodable record in %s", collection)
                continue
            if _matches(record, filters):
                records.append(record)
        return _order(records, order_by, descending, limit)

    async def update(
        self,
        collection: str,
        record_id: int,
        changes: dict[str, Any],
        *,
        expected_version: int | None = None,
    ) -> dict[str, Any]:
        from redis.exceptions import RedisError, WatchError

        key = self._key(collection, record_id)
        try:
            for _ in range(self._MAX_UPDATE_ATTEMPTS):
                async with self._redis.pipeline(transaction=True) as pipe:
                    try:
                        await pipe.watch(key)
                        raw = await pipe.get(key)
                        if raw is None:
                            raise RecordNotFoundError(collection, record_id)
                        record = json.loads(raw)
                        if expected_version is not None and record["version"] != expected_version:
                            raise VersionConflictError(
                                collection, record_id, expected_version, record["version"]
                            )
                        record.update(_strip_system_fields(changes))
                        record["updated_at"] = utc_now()
                        record["version"] += 1
                        pipe.multi()
                        pipe.set(key, json.dumps(record))
                        await pipe.execute()
                        return record
                    except WatchError:
                        if expected_version is not None:
                            raise VersionConflictError(
                                collection, record_id, expected_version, expected_version + 1
                            )
                        logger.debug("Concurrent write on %s, retrying", key)
        except RedisError as exc:
            raise StoreUnavailableError("Record store unavailable", str(exc)) from exc
        raise StoreUnavailableError(
            "Record store unavailable", f"{collection}/{record_id} kept changing during update"
        )

    async def close(self) -> None:
        """Close the Redis connection pool."""
        await self._redis.aclose()

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        try:
            return await self._redis.ping()
        except Exception:
            return False


# ── Factory ──────────────────────────────────────────────────


def create_record_store(settings) -> RecordStore:
    """Build the store selected by ``record_store_type``."""
    if settings.record_store_type == "redis" and settings.redis_url:
        logger.info("Initialized RedisRecordStore")
        return RedisRecordStore(redis_url=settings.redis_url)
    logger.info("Initialized InMemoryRecordStore")
    return InMemoryRecordStore()
