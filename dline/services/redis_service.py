"""
Redis client singleton and the draft-point cache used by the live sync relay.

Redis is optional at runtime: when the server is unreachable every helper
returns a neutral value and the relay simply runs without draft caching.

Usage:
    from dline.services import redis_service

    await redis_service.save_draft(game_id, {"got_break": True})
    draft = await redis_service.get_draft(game_id)
"""

import json
import logging
import os
from typing import Optional, Dict

from redis.asyncio import Redis

from dline.utils.constants import DRAFT_CACHE_TTL_SECONDS

logger = logging.getLogger(__name__)

# Redis configuration from environment
REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)
REDIS_ENABLED = os.getenv("REDIS_ENABLED", "true").lower() == "true"

# Connection settings
SOCKET_CONNECT_TIMEOUT = 2
SOCKET_TIMEOUT = 5

_redis_client: Optional[Redis] = None


def _draft_key(game_id: int) -> str:
    return f"game:{game_id}:draft"


async def get_redis_client() -> Optional[Redis]:
    """
    Get or create the Redis client singleton.

    Returns:
        Connected client, or None if Redis is disabled or unreachable
    """
    global _redis_client

    if not REDIS_ENABLED:
        return None

    if _redis_client is not None:
        try:
            await _redis_client.ping()
            return _redis_client
        except Exception as e:
            logger.warning(f"Redis connection lost, recreating client: {e}")
            await close_redis_connection()

    client = Redis(
        host=REDIS_HOST,
        port=REDIS_PORT,
        db=REDIS_DB,
        password=REDIS_PASSWORD or None,
        decode_responses=True,
        socket_connect_timeout=SOCKET_CONNECT_TIMEOUT,
        socket_timeout=SOCKET_TIMEOUT,
    )
    try:
        await client.ping()
    except Exception as e:
        logger.warning(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}: {e}")
        await client.aclose()
        return None

    _redis_client = client
    logger.info(f"Connected to Redis at {REDIS_HOST}:{REDIS_PORT}/{REDIS_DB}")
    return _redis_client


async def close_redis_connection() -> None:
    """Close the shared client (called from the app lifespan on shutdown)."""
    global _redis_client

    if _redis_client is not None:
        try:
            await _redis_client.aclose()
            logger.info("Closed Redis connection")
        except Exception as e:
            logger.warning(f"Error closing Redis connection: {e}")
        finally:
            _redis_client = None


async def save_draft(game_id: int, draft: Dict) -> bool:
    """
    Cache the in-progress (unsaved) point for a game for five minutes.

    Returns:
        True if stored, False if Redis is unavailable
    """
    try:
        client = await get_redis_client()
        if client:
            await client.setex(_draft_key(game_id), DRAFT_CACHE_TTL_SECONDS, json.dumps(draft))
            return True
    except Exception as e:
        logger.warning(f"Redis SET error for game {game_id} draft: {e}")
    return False


async def get_draft(game_id: int) -> Optional[Dict]:
    """Return the cached draft point for a game, if any."""
    try:
        client = await get_redis_client()
        if client:
            raw = await client.get(_draft_key(game_id))
            return json.loads(raw) if raw else None
    except Exception as e:
        logger.warning(f"Redis GET error for game {game_id} draft: {e}")
    return None


async def clear_draft(game_id: int) -> bool:
    """Drop the cached draft once the point has been recorded."""
    try:
        client = await get_redis_client()
        if client:
            await client.delete(_draft_key(game_id))
            return True
    except Exception as e:
        logger.warning(f"Redis DELETE error for game {game_id} draft: {e}")
    return False
