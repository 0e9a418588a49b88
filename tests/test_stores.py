"""
Tests for the in-memory and Redis traverser stores
"""

import json
from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
import redis.asyncio as redis

from chatfsm import (
    TRANSITION_INFO_KEY,
    EngineSettings,
    FSMEngine,
    InMemoryStore,
    RedisClient,
    RedisStore,
    TraverserNotFoundError,
    text_input_transformer,
)


class FakeRedis:
    """Just enough of redis.asyncio.Redis (decode_responses=True) for RedisStore."""

    def __init__(self):
        self.hashes = {}
        self.lists = {}
        self.expirations = {}

    async def exists(self, key):
        return int(key in self.hashes or key in self.lists)

    async def hget(self, key, field):
        return self.hashes.get(key, {}).get(field)

    async def hset(self, key, field=None, value=None, mapping=None):
        target = self.hashes.setdefault(key, {})
        if mapping:
            target.update({k: str(v) for k, v in mapping.items()})
        if field is not None:
            target[field] = str(value)
        return 1

    async def hdel(self, key, *fields):
        target = self.hashes.get(key, {})
        return sum(1 for f in fields if target.pop(f, None) is not None)

    async def rpush(self, key, *values):
        self.lists.setdefault(key, []).extend(values)
        return len(self.lists[key])

    async def lpop(self, key):
        items = self.lists.get(key)
        return items.pop(0) if items else None

    async def delete(self, *keys):
        removed = 0
        for key in keys:
            removed += int(self.hashes.pop(key, None) is not None)
            removed += int(self.lists.pop(key, None) is not None)
        return removed

    async def expire(self, key, seconds):
        if key not in self.hashes and key not in self.lists:
            return 0
        self.expirations[key] = seconds
        return 1


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def redis_store(fake_redis):
    return RedisStore(fake_redis, key_prefix="test")


class TestInMemoryStore:
    """Test the dict-backed store"""

    @pytest.mark.asyncio
    async def test_fetch_missing(self):
        with pytest.raises(TraverserNotFoundError) as exc_info:
            await InMemoryStore().fetch_traverser("nobody")

        assert exc_info.value.uuid == "nobody"

    @pytest.mark.asyncio
    async def test_create_then_fetch_shares_record(self):
        store = InMemoryStore()
        created = await store.create_traverser("user-1")
        await created.set_current_state("middle")

        fetched = await store.fetch_traverser("user-1")

        assert await fetched.get_current_state() == "middle"
        assert await fetched.get_uuid() == "user-1"

    @pytest.mark.asyncio
    async def test_queue_is_fifo(self):
        traverser = await InMemoryStore().create_traverser("user-1")
        await traverser.enqueue_state("a", 1)
        await traverser.enqueue_state("b", 2)

        first = await traverser.dequeue_state()
        second = await traverser.dequeue_state()

        assert (first.slug, first.payload) == ("a", 1)
        assert (second.slug, second.payload) == ("b", 2)
        assert await traverser.dequeue_state() is None

    @pytest.mark.asyncio
    async def test_data_bag(self):
        traverser = await InMemoryStore().create_traverser("user-1")

        await traverser.upsert("name", "Ada")
        await traverser.upsert("name", "Grace")
        assert await traverser.fetch("name") == "Grace"

        await traverser.delete("name")
        await traverser.delete("name")
        assert await traverser.fetch("name") is None
        assert await traverser.fetch("name", "fallback") == "fallback"

    @pytest.mark.asyncio
    async def test_snapshot_is_a_copy(self):
        store = InMemoryStore()
        traverser = await store.create_traverser("user-1")
        await traverser.upsert("items", [1])

        snapshot = store.snapshot("user-1")
        snapshot.data["items"].append(2)

        assert await traverser.fetch("items") == [1]


class TestRedisStore:
    """Test the Redis-backed store"""

    @pytest.mark.asyncio
    async def test_fetch_missing(self, redis_store):
        with pytest.raises(TraverserNotFoundError):
            await redis_store.fetch_traverser("nobody")

    @pytest.mark.asyncio
    async def test_create_writes_hash(self, redis_store, fake_redis):
        traverser = await redis_store.create_traverser("user-1")

        assert fake_redis.hashes["test:traverser:user-1"]["current_state"] == "start"
        assert await traverser.get_uuid() == "user-1"
        assert await traverser.get_platform() == ""
        assert await traverser.get_last_update_time() is None

    @pytest.mark.asyncio
    async def test_create_discards_leftovers(self, redis_store, fake_redis):
        fake_redis.lists["test:traverser:user-1:queue"] = ['{"slug": "old"}']
        fake_redis.hashes["test:traverser:user-1:data"] = {"k": "1"}

        traverser = await redis_store.create_traverser("user-1")

        assert await traverser.dequeue_state() is None
        assert await traverser.fetch("k") is None

    @pytest.mark.asyncio
    async def test_state_and_timestamp_round_trip(self, redis_store):
        await redis_store.create_traverser("user-1")
        traverser = await redis_store.fetch_traverser("user-1")
        stamp = datetime(2025, 10, 18, 10, 30, tzinfo=timezone.utc)

        await traverser.set_current_state("middle")
        await traverser.set_platform("telegram")
        await traverser.set_last_update_time(stamp)

        assert await traverser.get_current_state() == "middle"
        assert await traverser.get_platform() == "telegram"
        assert await traverser.get_last_update_time() == stamp

    @pytest.mark.asyncio
    async def test_queue_is_fifo_json(self, redis_store, fake_redis):
        traverser = await redis_store.create_traverser("user-1")
        await traverser.enqueue_state("a", {"n": 1})
        await traverser.enqueue_state("b", None)

        raw = fake_redis.lists["test:traverser:user-1:queue"]
        assert json.loads(raw[0])["slug"] == "a"

        first = await traverser.dequeue_state()
        second = await traverser.dequeue_state()
        assert (first.slug, first.payload) == ("a", {"n": 1})
        assert second.slug == "b"
        assert await traverser.dequeue_state() is None

    @pytest.mark.asyncio
    async def test_data_bag_json(self, redis_store, fake_redis):
        traverser = await redis_store.create_traverser("user-1")

        await traverser.upsert("slots", {"day": "monday"})
        assert fake_redis.hashes["test:traverser:user-1:data"]["slots"] == '{"day": "monday"}'
        assert await traverser.fetch("slots") == {"day": "monday"}

        await traverser.delete("slots")
        assert await traverser.fetch("slots", 0) == 0

    @pytest.mark.asyncio
    async def test_vanished_record_reports_not_found(self, redis_store, fake_redis):
        traverser = await redis_store.create_traverser("user-1")
        del fake_redis.hashes["test:traverser:user-1"]

        with pytest.raises(TraverserNotFoundError):
            await traverser.get_current_state()

    @pytest.mark.asyncio
    async def test_ttl_refreshed_on_write(self, fake_redis):
        store = RedisStore.from_settings(
            fake_redis, EngineSettings(FSM_KEY_PREFIX="bot", FSM_TRAVERSER_TTL=600)
        )
        traverser = await store.create_traverser("user-1")
        await traverser.enqueue_state("a")
        await traverser.upsert("k", 1)

        assert fake_redis.expirations == {
            "bot:traverser:user-1": 600,
            "bot:traverser:user-1:queue": 600,
            "bot:traverser:user-1:data": 600,
        }

    @pytest.mark.asyncio
    async def test_fetch_counts_as_activity(self, fake_redis, state_map, emitter):
        store = RedisStore(fake_redis, key_prefix="bot", ttl=60)
        engine = FSMEngine(state_map, store, text_input_transformer)
        await engine.step("whatsapp", "user-1", "hi", emitter)
        fake_redis.expirations.clear()

        result = await engine.step("whatsapp", "user-1", "nothing matches", emitter)

        assert result.reentered is True
        assert fake_redis.expirations["bot:traverser:user-1"] == 60

    @pytest.mark.asyncio
    async def test_transition_refreshes_data_bag_with_record(self, fake_redis, state_map, emitter):
        store = RedisStore(fake_redis, key_prefix="bot", ttl=60)
        engine = FSMEngine(state_map, store, text_input_transformer)
        await engine.step("whatsapp", "user-1", "hi", emitter)
        traverser = await store.fetch_traverser("user-1")
        await traverser.upsert("name", "Ada")
        fake_redis.expirations.clear()

        await engine.step("whatsapp", "user-1", "a", emitter)

        assert fake_redis.expirations == {
            "bot:traverser:user-1": 60,
            "bot:traverser:user-1:data": 60,
        }

    @pytest.mark.asyncio
    async def test_no_ttl_by_default(self, redis_store, fake_redis):
        traverser = await redis_store.create_traverser("user-1")
        await traverser.set_current_state("middle")

        assert fake_redis.expirations == {}

    @pytest.mark.asyncio
    async def test_engine_on_redis_store(self, redis_store, state_map, emitter, clock):
        engine = FSMEngine(state_map, redis_store, text_input_transformer, clock=clock)

        await engine.step("whatsapp", "user-1", "a", emitter)
        clock.advance(seconds=60)
        queued = await engine.trigger_state("whatsapp", "user-1", "start", {"id": 3}, emitter)
        await engine.step("whatsapp", "user-1", "hello", emitter)

        traverser = await redis_store.fetch_traverser("user-1")
        assert queued.applied is False
        assert await traverser.get_current_state() == "start"
        assert await traverser.fetch(TRANSITION_INFO_KEY) == {"id": 3}
        assert await traverser.get_platform() == "whatsapp"


class TestRedisClient:
    """Test connection lifecycle"""

    @pytest.mark.asyncio
    async def test_client_requires_connect(self):
        with pytest.raises(RuntimeError):
            RedisClient().client

    @pytest.mark.asyncio
    async def test_connect_and_close(self):
        connection = AsyncMock()
        with patch("chatfsm.redis_client.redis.from_url", return_value=connection) as from_url:
            client = RedisClient("redis://cache:6379")
            await client.connect()
            await client.connect()

            assert client.is_connected is True
            assert client.client is connection
            from_url.assert_called_once()
            connection.ping.assert_awaited_once()

            await client.close()
            await client.close()

        connection.aclose.assert_awaited_once()
        assert client.is_connected is False

    @pytest.mark.asyncio
    async def test_failed_connect(self):
        connection = AsyncMock()
        connection.ping.side_effect = redis.ConnectionError("refused")
        with patch("chatfsm.redis_client.redis.from_url", return_value=connection):
            client = RedisClient()
            with pytest.raises(redis.ConnectionError):
                await client.connect()

        assert client.is_connected is False
