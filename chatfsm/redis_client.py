"""
Redis client for traverser persistence.

This module provides async Redis connection pooling for RedisStore.
The connection URL comes from EngineSettings.REDIS_URL (default:
redis://localhost:6379).
"""

import logging
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisClient:
    """
    Redis client with connection pooling and lifecycle management.

    Features:
    - Async connection pooling (max 50 connections)
    - Automatic UTF-8 encoding/decoding
    - Connection lifecycle management

    Usage:
        client = RedisClient("redis://localhost:6379")
        await client.connect()

        store = RedisStore(client.client)
        ...

        await client.close()
    """

    def __init__(self, redis_url: str = "redis://localhost:6379", max_connections: int = 50):
        """Initialize Redis client (connection created on connect())."""
        self.redis_url = redis_url
        self.max_connections = max_connections
        self.redis: Optional[redis.Redis] = None
        self._connected = False

    async def connect(self) -> None:
        """
        Initialize Redis connection pool and verify it with PING.

        Raises:
            redis.RedisError: If connection fails
        """
        if self._connected:
            logger.warning("Redis client already connected, skipping reconnect")
            return

        logger.info("Connecting to Redis")

        try:
            self.redis = redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=self.max_connections,
                socket_connect_timeout=5,
                socket_keepalive=True,
            )

            await self.redis.ping()
            logger.info("Redis connection established successfully")
            self._connected = True

        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self.redis = None
            raise

    async def close(self) -> None:
        """
        Close Redis connection and release resources.

        Safe to call multiple times (idempotent).
        """
        if self.redis:
            try:
                await self.redis.aclose()
                logger.info("Redis connection closed")
            except redis.RedisError as e:
                logger.error(f"Error closing Redis connection: {e}")
            finally:
                self.redis = None
                self._connected = False

    @property
    def client(self) -> redis.Redis:
        """Connected redis.asyncio.Redis instance."""
        if not self._connected or not self.redis:
            raise RuntimeError("Redis client not connected. Call connect() first.")
        return self.redis

    @property
    def is_connected(self) -> bool:
        """Check if Redis client is connected."""
        return self._connected
