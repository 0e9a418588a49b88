"""
Redis-backed traverser store.

Redis Key Schema:
    {prefix}:traverser:{uuid}        - Hash: uuid, platform, current_state,
                                       last_update_time (ISO 8601)
    {prefix}:traverser:{uuid}:queue  - List of QueuedState JSON, oldest first
    {prefix}:traverser:{uuid}:data   - Hash of JSON-encoded data bag values

Deferred requests are pushed with RPUSH and consumed with LPOP, so each
request is dequeued exactly once even when two workers race on the same
traverser. Queue payloads and data bag values must be JSON-serializable.

With a TTL configured, every fetch and every write restarts the expiry of
all three keys together, so a traverser's record, queue and data bag
expire as one unit after the TTL passes without contact.

Redis errors propagate unchanged; the engine reports them as
CollaboratorError, distinct from TraverserNotFoundError.
"""

import json
import logging
from datetime import datetime
from typing import Any, Optional, Union

import redis.asyncio as redis

from ..config import EngineSettings
from ..constants import DATA_KEY, DEFAULT_KEY_PREFIX, QUEUE_KEY, START_STATE, TRAVERSER_KEY
from ..exceptions import TraverserNotFoundError
from ..interfaces import Store, Traverser
from ..models import QueuedState

logger = logging.getLogger(__name__)


def _text(value: Union[str, bytes, None]) -> Optional[str]:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return value


class RedisTraverser(Traverser):
    """Traverser whose fields live in Redis; every call is a round trip."""

    def __init__(
        self,
        client: redis.Redis,
        uuid: str,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        ttl: Optional[int] = None,
    ):
        self._redis = client
        self._uuid = uuid
        self._key_prefix = key_prefix
        self._ttl = ttl

    @property
    def key(self) -> str:
        return TRAVERSER_KEY.format(prefix=self._key_prefix, uuid=self._uuid)

    @property
    def queue_key(self) -> str:
        return QUEUE_KEY.format(prefix=self._key_prefix, uuid=self._uuid)

    @property
    def data_key(self) -> str:
        return DATA_KEY.format(prefix=self._key_prefix, uuid=self._uuid)

    async def _get_field(self, field: str) -> Optional[str]:
        return _text(await self._redis.hget(self.key, field))

    async def _set_field(self, field: str, value: str) -> None:
        await self._redis.hset(self.key, field, value)
        await self.touch()

    async def touch(self) -> None:
        """Restart the inactivity TTL on every key of this traverser together."""
        if self._ttl:
            for key in (self.key, self.queue_key, self.data_key):
                await self._redis.expire(key, self._ttl)

    # UUID
    async def get_uuid(self) -> str:
        return await self._get_field("uuid") or self._uuid

    async def set_uuid(self, uuid: str) -> None:
        await self._set_field("uuid", uuid)

    # Platform
    async def get_platform(self) -> str:
        return await self._get_field("platform") or ""

    async def set_platform(self, platform: str) -> None:
        await self._set_field("platform", platform)

    # State
    async def get_current_state(self) -> str:
        slug = await self._get_field("current_state")
        if slug is None:
            # Record expired or was deleted since it was fetched
            raise TraverserNotFoundError(self._uuid)
        return slug

    async def set_current_state(self, slug: str) -> None:
        await self._set_field("current_state", slug)

    async def get_last_update_time(self) -> Optional[datetime]:
        value = await self._get_field("last_update_time")
        return datetime.fromisoformat(value) if value else None

    async def set_last_update_time(self, timestamp: datetime) -> None:
        await self._set_field("last_update_time", timestamp.isoformat())

    # Queue
    async def enqueue_state(self, slug: str, payload: Any = None) -> None:
        queued = QueuedState(slug=slug, payload=payload)
        await self._redis.rpush(self.queue_key, queued.model_dump_json())
        await self.touch()
        logger.debug(f"Queued state {slug}")

    async def dequeue_state(self) -> Optional[QueuedState]:
        data = await self._redis.lpop(self.queue_key)
        if data is None:
            return None
        return QueuedState.model_validate_json(data)

    # Data
    async def upsert(self, key: str, value: Any) -> None:
        await self._redis.hset(self.data_key, key, json.dumps(value))
        await self.touch()

    async def fetch(self, key: str, default: Any = None) -> Any:
        data = await self._redis.hget(self.data_key, key)
        if data is None:
            return default
        return json.loads(data)

    async def delete(self, key: str) -> None:
        await self._redis.hdel(self.data_key, key)
        await self.touch()


class RedisStore(Store):
    """
    Store keeping one Redis hash (plus queue and data keys) per traverser.

    Usage:
        client = RedisClient(settings.REDIS_URL)
        await client.connect()
        store = RedisStore.from_settings(client.client, settings)
    """

    def __init__(
        self,
        client: redis.Redis,
        key_prefix: str = DEFAULT_KEY_PREFIX,
        ttl: Optional[int] = None,
    ):
        """
        Initialize store.

        Args:
            client: Connected redis.asyncio client
            key_prefix: Namespace for every key written
            ttl: Seconds of inactivity after which records expire (None = never)
        """
        self._redis = client
        self.key_prefix = key_prefix
        self.ttl = ttl

    @classmethod
    def from_settings(cls, client: redis.Redis, settings: EngineSettings) -> "RedisStore":
        return cls(client, key_prefix=settings.FSM_KEY_PREFIX, ttl=settings.FSM_TRAVERSER_TTL)

    def _traverser(self, uuid: str) -> RedisTraverser:
        return RedisTraverser(self._redis, uuid, key_prefix=self.key_prefix, ttl=self.ttl)

    async def fetch_traverser(self, uuid: str) -> Traverser:
        traverser = self._traverser(uuid)
        if not await self._redis.exists(traverser.key):
            raise TraverserNotFoundError(uuid)
        # Any contact counts as activity
        await traverser.touch()
        return traverser

    async def create_traverser(self, uuid: str) -> Traverser:
        """Create a fresh record, discarding any leftover queue or data keys."""
        traverser = self._traverser(uuid)
        await self._redis.delete(traverser.key, traverser.queue_key, traverser.data_key)
        await self._redis.hset(
            traverser.key,
            mapping={
                "uuid": uuid,
                "platform": "",
                "current_state": START_STATE,
            },
        )
        await traverser.touch()
        logger.debug("Created traverser record")
        return traverser
