"""
Async Redis Client Wrapper for the Clinic Intake Service

Provides connection pooling and a process-wide singleton client. Used by the
patient repository and the notification stream sink.

Configuration is read from environment variables:
- CLINIC_REDIS_HOST: Redis server host (default: localhost)
- CLINIC_REDIS_PORT: Redis server port (default: 6379)
- CLINIC_REDIS_DB: Redis database number (default: 0)
- CLINIC_REDIS_PASSWORD: Redis password (optional, default: None)
- CLINIC_REDIS_MAX_CONNECTIONS: Connection pool size (default: 20)
- CLINIC_REDIS_SOCKET_TIMEOUT: Socket timeout in seconds (default: 5.0)
- CLINIC_REDIS_URL: Alternative connection string format (overrides individual settings)

Usage:
    from shared.redis_client import get_redis_client

    redis = await get_redis_client()
    await redis.set("clinic:patient:+911234", "{...}")
    await close_redis_client()
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None
_redis_pool: Optional[redis.ConnectionPool] = None
_lock = asyncio.Lock()


@dataclass
class RedisConfig:
    """Redis connection settings"""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    max_connections: int = 20
    socket_timeout: float = 5.0
    url: Optional[str] = None

    @staticmethod
    def from_env() -> 'RedisConfig':
        """Load configuration from environment variables"""
        return RedisConfig(
            host=os.getenv("CLINIC_REDIS_HOST", "localhost"),
            port=int(os.getenv("CLINIC_REDIS_PORT", "6379")),
            db=int(os.getenv("CLINIC_REDIS_DB", "0")),
            password=os.getenv("CLINIC_REDIS_PASSWORD") or None,
            max_connections=int(os.getenv("CLINIC_REDIS_MAX_CONNECTIONS", "20")),
            socket_timeout=float(os.getenv("CLINIC_REDIS_SOCKET_TIMEOUT", "5.0")),
            url=os.getenv("CLINIC_REDIS_URL") or None,
        )

    def get_redis_url(self) -> str:
        """Explicit URL wins; otherwise build one from the individual settings"""
        if self.url:
            return self.url
        auth = f":{self.password}@" if self.password else ""
        return f"redis://{auth}{self.host}:{self.port}/{self.db}"


async def get_redis_client(url: Optional[str] = None, retries: int = 3) -> redis.Redis:
    """
    Get or create the async Redis client.

    Args:
        url: Connection URL; falls back to RedisConfig.from_env()
        retries: PING attempts before giving up

    Returns:
        redis.Redis: Async Redis client instance

    Raises:
        redis.exceptions.ConnectionError: If connection fails after retries
    """
    global _redis_client, _redis_pool

    async with _lock:
        if _redis_client is not None:
            return _redis_client

        config = RedisConfig.from_env()
        target = url or config.get_redis_url()
        logger.info(f"Creating Redis connection pool for {target} (max_connections={config.max_connections})")

        # decode_responses=True: repository documents are JSON text
        _redis_pool = redis.ConnectionPool.from_url(
            target,
            max_connections=config.max_connections,
            socket_timeout=config.socket_timeout,
            socket_connect_timeout=config.socket_timeout,
            decode_responses=True,
        )
        client = redis.Redis(connection_pool=_redis_pool)

        for attempt in range(retries):
            try:
                await client.ping()
                logger.info(" Redis client connected successfully")
                break
            except redis.ConnectionError as e:
                if attempt < retries - 1:
                    delay = 2 ** attempt
                    logger.warning(
                        f"Redis connection attempt {attempt + 1}/{retries} failed: {e}. "
                        f"Retrying in {delay}s..."
                    )
                    await asyncio.sleep(delay)
                else:
                    logger.error(f" Redis connection failed after {retries} attempts: {e}")
                    await _redis_pool.disconnect()
                    _redis_pool = None
                    raise

        _redis_client = client
        return _redis_client


async def ping_redis(client: redis.Redis) -> bool:
    """True when PING succeeds"""
    try:
        return await client.ping() is True
    except Exception as e:
        logger.error(f"Redis PING failed: {e}")
        return False


async def close_redis_client():
    """Close the singleton client and its pool (application shutdown)"""
    global _redis_client, _redis_pool

    async with _lock:
        if _redis_client is not None:
            try:
                await _redis_client.aclose()
                logger.info("Redis client closed")
            except Exception as e:
                logger.error(f"Error closing Redis client: {e}")
            finally:
                _redis_client = None

        if _redis_pool is not None:
            try:
                await _redis_pool.disconnect()
                logger.info("Redis connection pool disconnected")
            except Exception as e:
                logger.error(f"Error disconnecting Redis pool: {e}")
            finally:
                _redis_pool = None
