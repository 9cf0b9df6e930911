"""
Redis adapter for the Entity Store port.

Layout under the configured prefix:
    {prefix}:{path}            JSON value of a record
    {prefix}:{collection}#ids  set of record ids in a collection
    {prefix}:changes:{path}    pub/sub channel, published on every mutation
                               of a record and of its parent collection
"""
import asyncio
import copy
import json
import logging
import uuid
from typing import Any, Dict, List, Optional

import redis.asyncio as redis

from models.errors import InvalidTransition, NotFound
from services.store import (
    EntityStore, Mutator, Snapshot, Subscription, Where,
    check_where, is_collection_path, matches, parent_collection,
    record_id, sort_snapshots, split_path,
)

logger = logging.getLogger(__name__)

# Optimistic attempts per conditional write before giving up on a hot key.
MAX_WATCH_ATTEMPTS = 50


class RedisStore(EntityStore):
    name = "redis"

    def __init__(self, client: redis.Redis, prefix: str = "squabbl"):
        self.client = client
        self.prefix = prefix
        self._last_time = 0

    @classmethod
    def from_url(cls, url: str, prefix: str = "squabbl") -> "RedisStore":
        client = redis.from_url(url, encoding="utf-8", decode_responses=True)
        return cls(client, prefix)

    # ── Key helpers ───────────────────────────────────────────────────────────

    @staticmethod
    def _path(path: str) -> str:
        return "/".join(split_path(path))

    def _record_key(self, path: str) -> str:
        return f"{self.prefix}:{path}"

    def _ids_key(self, collection: str) -> str:
        return f"{self.prefix}:{collection}#ids"

    def _channel(self, path: str) -> str:
        return f"{self.prefix}:changes:{path}"

    def _queue_publish(self, pipe, path: str) -> None:
        pipe.publish(self._channel(path), path)
        pipe.publish(self._channel(parent_collection(path)), path)

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        raw = await self.client.get(self._record_key(self._path(path)))
        return json.loads(raw) if raw else None

    async def query(
        self,
        collection_path: str,
        where: Optional[Where] = None,
        order_by: Optional[str] = None,
    ) -> List[Snapshot]:
        check_where(where)
        collection = self._path(collection_path)
        ids = sorted(await self.client.smembers(self._ids_key(collection)))
        if not ids:
            return []
        raws = await self.client.mget([self._record_key(f"{collection}/{i}") for i in ids])
        results = []
        for rid, raw in zip(ids, raws):
            # An id can briefly outlive its record between two pipelines.
            if raw is None:
                continue
            data = json.loads(raw)
            if matches(data, where):
                results.append(Snapshot(rid, data))
        return sort_snapshots(results, order_by)

    # ── Writes ────────────────────────────────────────────────────────────────

    async def set(self, path: str, data: Dict[str, Any]) -> None:
        path = self._path(path)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.set(self._record_key(path), json.dumps(data))
            pipe.sadd(self._ids_key(parent_collection(path)), record_id(path))
            self._queue_publish(pipe, path)
            await pipe.execute()

    async def add(self, collection_path: str, data: Dict[str, Any]) -> str:
        new_id = uuid.uuid4().hex[:20]
        await self.set(f"{self._path(collection_path)}/{new_id}", data)
        return new_id

    async def update(self, path: str, changes: Dict[str, Any]) -> None:
        await self.update_with(path, lambda current: changes)

    async def delete(self, path: str) -> None:
        path = self._path(path)
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.delete(self._record_key(path))
            pipe.srem(self._ids_key(parent_collection(path)), record_id(path))
            self._queue_publish(pipe, path)
            await pipe.execute()

    async def update_with(self, path: str, mutate: Mutator) -> Dict[str, Any]:
        path = self._path(path)
        key = self._record_key(path)
        async with self.client.pipeline(transaction=True) as pipe:
            for attempt in range(1, MAX_WATCH_ATTEMPTS + 1):
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    if raw is None:
                        raise NotFound(f"No record at {path}")
                    current = json.loads(raw)
                    changes = mutate(copy.deepcopy(current))
                    if not changes:
                        await pipe.unwatch()
                        return current
                    current.update(changes)
                    pipe.multi()
                    pipe.set(key, json.dumps(current))
                    self._queue_publish(pipe, path)
                    await pipe.execute()
                    return current
                except redis.WatchError:
                    logger.debug(f"Conditional write on {path} lost a race (attempt {attempt})")
        logger.warning(f"Conditional write on {path} gave up after {MAX_WATCH_ATTEMPTS} attempts")
        raise InvalidTransition("The record is changing too quickly, try again")

    # ── Subscriptions ─────────────────────────────────────────────────────────

    async def _current_value(self, path: str) -> Any:
        if is_collection_path(path):
            return await self.query(path)
        return await self.get(path)

    async def subscribe(self, path: str) -> Subscription:
        path = self._path(path)
        sub = Subscription(path)
        pubsub = self.client.pubsub()
        # Subscribe before the first read so no mutation falls in between.
        await pubsub.subscribe(self._channel(path))
        sub.push(await self._current_value(path))

        async def _pump():
            try:
                async for message in pubsub.listen():
                    if message.get("type") != "message":
                        continue
                    sub.push(await self._current_value(path))
            except Exception:
                # Consumers see the end of the feed instead of waiting forever.
                logger.exception(f"Change feed for {path} failed, closing it")
                await sub.close()

        def _pump_done(t: asyncio.Task) -> None:
            if not t.cancelled() and t.exception() is not None:
                logger.error(f"Change feed for {path} stopped: {t.exception()!r}")

        task = asyncio.create_task(_pump())
        task.add_done_callback(_pump_done)

        async def _close():
            if task is not asyncio.current_task():
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
            try:
                await pubsub.unsubscribe()
            except redis.RedisError as exc:
                logger.warning(f"Unsubscribe from {path} failed: {exc}")
            await pubsub.aclose()

        sub.set_closer(_close)
        return sub

    # ── Clock ─────────────────────────────────────────────────────────────────

    async def server_time_ms(self) -> int:
        seconds, micros = await self.client.time()
        stamp = int(seconds) * 1000 + int(micros) // 1000
        self._last_time = max(self._last_time, stamp)
        return self._last_time

    async def close(self) -> None:
        await self.client.aclose()
        logger.info("Redis connections closed")
