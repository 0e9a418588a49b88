"""
In-memory traverser store.

Keeps TraverserRecord objects in a dict. Suitable for tests, local
development and single-process bots that do not need durability.
Deferred requests are kept FIFO; every request queued is eventually
returned by dequeue_state, none is overwritten.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from ..exceptions import TraverserNotFoundError
from ..interfaces import Store, Traverser
from ..models import QueuedState, TraverserRecord

logger = logging.getLogger(__name__)


class InMemoryTraverser(Traverser):
    """Traverser backed by a TraverserRecord owned by an InMemoryStore."""

    def __init__(self, record: TraverserRecord):
        self.record = record

    async def get_uuid(self) -> str:
        return self.record.uuid

    async def set_uuid(self, uuid: str) -> None:
        self.record.uuid = uuid

    async def get_platform(self) -> str:
        return self.record.platform

    async def set_platform(self, platform: str) -> None:
        self.record.platform = platform

    async def get_current_state(self) -> str:
        return self.record.current_state

    async def set_current_state(self, slug: str) -> None:
        self.record.current_state = slug

    async def get_last_update_time(self) -> Optional[datetime]:
        return self.record.last_update_time

    async def set_last_update_time(self, timestamp: datetime) -> None:
        self.record.last_update_time = timestamp

    async def enqueue_state(self, slug: str, payload: Any = None) -> None:
        self.record.queue.append(QueuedState(slug=slug, payload=payload))

    async def dequeue_state(self) -> Optional[QueuedState]:
        if not self.record.queue:
            return None
        return self.record.queue.pop(0)

    async def upsert(self, key: str, value: Any) -> None:
        self.record.data[key] = value

    async def fetch(self, key: str, default: Any = None) -> Any:
        return self.record.data.get(key, default)

    async def delete(self, key: str) -> None:
        self.record.data.pop(key, None)


class InMemoryStore(Store):
    """
    Dict-backed store.

    Usage:
        store = InMemoryStore()
        traverser = await store.create_traverser("user_123")
        await traverser.set_current_state("start")

        same = await store.fetch_traverser("user_123")
    """

    def __init__(self):
        self.records: Dict[str, TraverserRecord] = {}

    async def fetch_traverser(self, uuid: str) -> Traverser:
        record = self.records.get(uuid)
        if record is None:
            raise TraverserNotFoundError(uuid)
        return InMemoryTraverser(record)

    async def create_traverser(self, uuid: str) -> Traverser:
        if uuid in self.records:
            logger.warning("Replacing existing in-memory traverser record")
        record = TraverserRecord(uuid=uuid)
        self.records[uuid] = record
        return InMemoryTraverser(record)

    def snapshot(self, uuid: str) -> TraverserRecord:
        """Deep copy of a record, for inspection without aliasing."""
        record = self.records.get(uuid)
        if record is None:
            raise TraverserNotFoundError(uuid)
        return record.model_copy(deep=True)
