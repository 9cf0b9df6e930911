import asyncio
import logging
import os
from typing import Optional, List, Dict, Any

from models.errors import NotFound
from services.store import (
    EntityStore, Mutator, Snapshot, Subscription, Where,
    check_where, is_collection_path, sort_snapshots, split_path,
)

logger = logging.getLogger(__name__)

# Read-only; the read_time of its snapshot is the server clock.
_CLOCK_PATH = "_meta/clock"


class FirestoreStore(EntityStore):
    """
    Async-friendly Firestore adapter using run_in_executor to avoid
    blocking the event loop. Switch to AsyncClient once stable.
    """

    name = "firestore"

    def __init__(
        self,
        project: Optional[str] = None,
        emulator_host: Optional[str] = None,
        client=None,
    ):
        if emulator_host:
            os.environ["FIRESTORE_EMULATOR_HOST"] = emulator_host
        # Lazy import so the service can be instantiated before GCP creds exist
        from google.cloud import firestore
        from google.api_core import exceptions as gcp_exceptions
        self._firestore = firestore
        self._gcp_exceptions = gcp_exceptions
        self.db = client or firestore.Client(project=project or None)
        self._last_time = 0

    def _run(self, fn):
        """Run a sync Firestore call in the default thread pool."""
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(None, fn)

    # ── Reference helpers ─────────────────────────────────────────────────────

    def _doc_ref(self, path: str):
        return self.db.document(*split_path(path))

    def _col_ref(self, path: str):
        return self.db.collection(*split_path(path))

    @staticmethod
    def _snapshots(docs) -> List[Snapshot]:
        return [Snapshot(d.id, d.to_dict() or {}) for d in docs]

    # ── Reads ─────────────────────────────────────────────────────────────────

    async def get(self, path: str) -> Optional[Dict[str, Any]]:
        doc = await self._run(lambda: self._doc_ref(path).get())
        if doc.exists:
            return doc.to_dict()
        return None

    async def query(
        self,
        collection_path: str,
        where: Optional[Where] = None,
        order_by: Optional[str] = None,
    ) -> List[Snapshot]:
        check_where(where)
        ref = self._col_ref(collection_path)
        if where is not None:
            field, op, value = where
            ref = ref.where(field, op, value)
        docs = await self._run(lambda: list(ref.stream()))
        # Sorted client-side: Firestore drops records missing the order field
        # and a filter + order on different fields needs a composite index.
        return sort_snapshots(self._snapshots(docs), order_by)

    # ── Writes ────────────────────────────────────────────────────────────────

    async def set(self, path: str, data: Dict[str, Any]) -> None:
        await self._run(lambda: self._doc_ref(path).set(data))

    async def add(self, collection_path: str, data: Dict[str, Any]) -> str:
        _, ref = await self._run(lambda: self._col_ref(collection_path).add(data))
        return ref.id

    async def update(self, path: str, changes: Dict[str, Any]) -> None:
        try:
            await self._run(lambda: self._doc_ref(path).update(changes))
        except self._gcp_exceptions.NotFound as exc:
            raise NotFound(f"No record at {path}") from exc

    async def delete(self, path: str) -> None:
        await self._run(lambda: self._doc_ref(path).delete())

    async def update_with(self, path: str, mutate: Mutator) -> Dict[str, Any]:
        ref = self._doc_ref(path)

        @self._firestore.transactional
        def _apply(transaction):
            snap = ref.get(transaction=transaction)
            if not snap.exists:
                raise NotFound(f"No record at {path}")
            current = snap.to_dict() or {}
            changes = mutate(dict(current))
            if changes:
                transaction.update(ref, changes)
                current.update(changes)
            return current

        return await self._run(lambda: _apply(self.db.transaction()))

    # ── Subscriptions ─────────────────────────────────────────────────────────

    async def subscribe(self, path: str) -> Subscription:
        loop = asyncio.get_running_loop()
        sub = Subscription(path)
        collection = is_collection_path(path)
        ref = self._col_ref(path) if collection else self._doc_ref(path)

        # on_snapshot fires on a background thread; hop back onto the loop.
        def _on_snapshot(docs, changes, read_time):
            if collection:
                value: Any = self._snapshots(docs)
            else:
                value = docs[0].to_dict() if docs and docs[0].exists else None
            loop.call_soon_threadsafe(sub.push, value)

        watch = await self._run(lambda: ref.on_snapshot(_on_snapshot))
        sub.set_closer(lambda: self._run(watch.unsubscribe))
        return sub

    # ── Clock ─────────────────────────────────────────────────────────────────

    async def server_time_ms(self) -> int:
        snap = await self._run(lambda: self._doc_ref(_CLOCK_PATH).get())
        stamp = int(snap.read_time.timestamp() * 1000)
        self._last_time = max(self._last_time, stamp)
        return self._last_time

    async def close(self) -> None:
        await self._run(self.db.close)
