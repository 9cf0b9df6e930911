"""
In-process Entity Store adapter.

Used by the test suite and for running the service without any backing
database (STORE_BACKEND=memory). Single event loop, so a read-modify-write
with no await in between is already atomic.
"""
import copy
import logging
import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from models.errors import NotFound
from services.store import (
    EntityStore, Mutator, Snapshot, Subscription, Where,
    check_where, is_collection_path, matches, parent_collection,
    record_id, sort_snapshots, split_path,
)

logger = logging.getLogger(__name__)


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class MemoryStore(EntityStore):
    name = "memory"

    def __init__(self, clock: Optional[Callable[[], int]] = None):
        self._records: Dict[str, Dict[str, Any]] = {}
        self._subscribers: Dict[str, List[Subscription]] = {}
        self._clock = clock or _wall_clock_ms
        self._last_time = 0

    @staticmethod
    def _key(path: str) -> str:
        return "/".join(split_path(path))

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        data = self._records.get(self._key(path))
        return copy.deepcopy(data) if data is not None else None

    async def query(
        self,
        collection_path: str,
        where: Optional[Where] = None,
        order_by: Optional[str] = None,
    ) -> List[Snapshot]:
        check_where(where)
        return self._query_now(self._key(collection_path), where, order_by)

    def _query_now(
        self, collection: str, where: Optional[Where] = None, order_by: Optional[str] = None
    ) -> List[Snapshot]:
        results = [
            Snapshot(record_id(key), copy.deepcopy(data))
            for key, data in self._records.items()
            if parent_collection(key) == collection and matches(data, where)
        ]
        return sort_snapshots(results, order_by)

    # ── Writes ────────────────────────────────────────────────────────────────

    async def set(self, path: str, data: Dict[str, Any]) -> None:
        key = self._key(path)
        self._records[key] = copy.deepcopy(data)
        self._notify(key)

    async def add(self, collection_path: str, data: Dict[str, Any]) -> str:
        new_id = uuid.uuid4().hex[:20]
        await self.set(f"{self._key(collection_path)}/{new_id}", data)
        return new_id

    async def update(self, path: str, changes: Dict[str, Any]) -> None:
        key = self._key(path)
        if key not in self._records:
            raise NotFound(f"No record at {key}")
        self._records[key].update(copy.deepcopy(changes))
        self._notify(key)

    async def delete(self, path: str) -> None:
        key = self._key(path)
        if self._records.pop(key, None) is not None:
            self._notify(key)

    async def update_with(self, path: str, mutate: Mutator) -> Dict[str, Any]:
        key = self._key(path)
        current = self._records.get(key)
        if current is None:
            raise NotFound(f"No record at {key}")
        changes = mutate(copy.deepcopy(current))
        if changes:
            current.update(copy.deepcopy(changes))
            self._notify(key)
        return copy.deepcopy(current)

    # ── Subscriptions ─────────────────────────────────────────────────────────

    async def subscribe(self, path: str) -> Subscription:
        key = self._key(path)
        sub = Subscription(key)
        self._subscribers.setdefault(key, []).append(sub)
        sub.set_closer(lambda: self._unsubscribe(key, sub))
        sub.push(self._current_value(key))
        return sub

    def _unsubscribe(self, key: str, sub: Subscription) -> None:
        subs = self._subscribers.get(key, [])
        if sub in subs:
            subs.remove(sub)
        if not subs:
            self._subscribers.pop(key, None)

    def _current_value(self, key: str) -> Any:
        if is_collection_path(key):
            return self._query_now(key)
        data = self._records.get(key)
        return copy.deepcopy(data) if data is not None else None

    def _notify(self, key: str) -> None:
        for target in (key, parent_collection(key)):
            subs = self._subscribers.get(target)
            if not subs:
                continue
            value = self._current_value(target)
            for sub in list(subs):
                sub.push(copy.deepcopy(value))

    # ── Clock ─────────────────────────────────────────────────────────────────

    async def server_time_ms(self) -> int:
        # Never run backwards, even if the injected clock does.
        self._last_time = max(self._last_time, int(self._clock()))
        return self._last_time
