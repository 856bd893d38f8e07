"""
Redis Configuration

Async Redis client used as the token revocation store.

The client is created and closed by the application lifespan and handed to
the components that need it; nothing in this module keeps a global
connection.
"""

from redis.asyncio import Redis, from_url


def create_redis_client(redis_url: str, timeout_seconds: float) -> Redis:
    """
    Build a Redis client with bounded socket timeouts.

    The connection is opened lazily; call ``ping`` to verify it.
    """
    return from_url(
        redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=timeout_seconds,
        socket_connect_timeout=timeout_seconds,
    )


async def close_redis(client: Redis | None) -> None:
    """Close a Redis client created by ``create_redis_client``."""
    if client is not None:
        await client.aclose()


__all__ = ["create_redis_client", "close_redis"]
