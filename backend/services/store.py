"""
Entity Store port.

The engine is written once against this interface and is handed an adapter
(Firestore, Redis, in-memory) at construction time. Adapters share the same
contract and the same error taxonomy; anything a backend cannot do raises
StoreNotImplemented rather than quietly succeeding.

Paths are slash-separated. An odd number of segments names a collection
("games/abc/words"), an even number names a record ("games/abc/words/w1").
"""
import asyncio
import inspect
import logging
import operator
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Tuple

from models.errors import StoreNotImplemented

logger = logging.getLogger(__name__)

Where = Tuple[str, str, Any]
_CLOSED = object()
Mutator = Callable[[Dict[str, Any]], Optional[Dict[str, Any]]]

_OPS: Dict[str, Callable[[Any, Any], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


class Snapshot(NamedTuple):
    id: str
    data: Dict[str, Any]


def is_collection_path(path: str) -> bool:
    return len(split_path(path)) % 2 == 1


def split_path(path: str) -> List[str]:
    parts = [p for p in path.strip("/").split("/") if p]
    if not parts:
        raise ValueError("Empty store path")
    return parts


def parent_collection(path: str) -> str:
    return "/".join(split_path(path)[:-1])


def record_id(path: str) -> str:
    return split_path(path)[-1]


def check_where(where: Optional[Where]) -> None:
    if where is not None and where[1] not in _OPS:
        raise StoreNotImplemented(f"Unsupported query operator: {where[1]!r}")


def matches(data: Dict[str, Any], where: Optional[Where]) -> bool:
    """Evaluate a single-field filter in Python (used by key/value adapters)."""
    if where is None:
        return True
    field, op, value = where
    # Records without the field never match, as in Firestore.
    if field not in data:
        return False
    current = data[field]
    if current is None and op not in ("==", "!="):
        return False
    try:
        return _OPS[op](current, value)
    except TypeError:
        return False


def sort_snapshots(snapshots: List[Snapshot], order_by: Optional[str]) -> List[Snapshot]:
    if not order_by:
        return snapshots
    # Records missing the field sort first, like Firestore's null ordering.
    return sorted(
        snapshots,
        key=lambda s: (s.data.get(order_by) is not None, s.data.get(order_by)),
    )


class Subscription:
    """
    Async iterator over successive full values of a record or collection.
    Adapters feed it through push(); close() detaches from the backend.
    """

    def __init__(self, path: str, closer: Optional[Callable[[], Any]] = None):
        self.path = path
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closer = closer
        self._closed = False

    def push(self, value: Any) -> None:
        if not self._closed:
            self._queue.put_nowait(value)

    def set_closer(self, closer: Callable[[], Any]) -> None:
        self._closer = closer

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> Any:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        value = await self._queue.get()
        if value is _CLOSED:
            raise StopAsyncIteration
        return value

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._queue.put_nowait(_CLOSED)
        if self._closer is not None:
            result = self._closer()
            if inspect.isawaitable(result):
                await result


class EntityStore(ABC):
    """Async record store with change subscriptions and a server clock."""

    name = "abstract"

    @abstractmethod
    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        ...

    @abstractmethod
    async def set(self, path: str, data: Dict[str, Any]) -> None:
        ...

    @abstractmethod
    async def add(self, collection_path: str, data: Dict[str, Any]) -> str:
        ...

    @abstractmethod
    async def update(self, path: str, changes: Dict[str, Any]) -> None:
        """Shallow merge into an existing record. Raises NotFound if absent."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        ...

    @abstractmethod
    async def query(
        self,
        collection_path: str,
        where: Optional[Where] = None,
        order_by: Optional[str] = None,
    ) -> List[Snapshot]:
        ...

    async def update_with(self, path: str, mutate: Mutator) -> Dict[str, Any]:
        """
        Conditional read-modify-write of a single record.

        mutate receives the current record and returns the fields to change
        (or None for no change). It may raise to abort; nothing is written
        then. The write only lands if the record is unchanged since the read.
        Returns the record as written.
        """
        raise StoreNotImplemented(f"{self.name} store has no conditional writes")

    async def subscribe(self, path: str) -> Subscription:
        raise StoreNotImplemented(f"{self.name} store has no change subscriptions")

    async def server_time_ms(self) -> int:
        raise StoreNotImplemented(f"{self.name} store has no server clock")

    async def close(self) -> None:
        return None
