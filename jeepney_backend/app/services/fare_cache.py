"""
Fare quote cache backed by Redis.

Keys are namespaced by a per-route version counter. Any fare write bumps
the counter, which orphans every cached quote for that route at once.
Redis outages degrade to uncached resolution.
"""

import json
import logging
from typing import Any, Dict, Optional

from redis.exceptions import RedisError

from jeepney_backend.app.core.config import settings

logger = logging.getLogger(__name__)


def _version_key(route_id: int) -> str:
    return f"fare:version:{route_id}"


async def _route_version(redis, route_id: int) -> str:
    version = await redis.get(_version_key(route_id))
    return str(version or 0)


async def get_cached_quote(redis, route_id: int, from_id: int, to_id: int) -> Optional[Dict[str, Any]]:
    if redis is None:
        return None
    try:
        version = await _route_version(redis, route_id)
        raw = await redis.get(f"fare:quote:{route_id}:v{version}:{from_id}:{to_id}")
    except RedisError as exc:
        logger.warning("Fare cache read failed for route %s: %s", route_id, exc)
        return None
    if raw is None:
        return None
    return json.loads(raw)


async def cache_quote(redis, route_id: int, from_id: int, to_id: int, payload: Dict[str, Any]) -> None:
    if redis is None:
        return
    try:
        version = await _route_version(redis, route_id)
        await redis.set(
            f"fare:quote:{route_id}:v{version}:{from_id}:{to_id}",
            json.dumps(payload),
            ex=settings.fare_cache_ttl_seconds,
        )
    except RedisError as exc:
        logger.warning("Fare cache write failed for route %s: %s", route_id, exc)


async def invalidate_route(redis, *route_ids: Optional[int]) -> None:
    if redis is None:
        return
    for route_id in route_ids:
        if route_id is None:
            continue
        try:
            await redis.incr(_version_key(route_id))
        except RedisError as exc:
            # Stale quotes expire with the TTL
            logger.warning("Fare cache invalidation failed for route %s: %s", route_id, exc)
