"""
Redis cache for rendered stamp visuals.

Devices re-fetch passes in bursts after a push, and a given visual is fully
determined by its parameters, so the PNG is cached under a hash of them.
Cache failures are logged and ignored.
"""

import logging
from typing import Optional

import redis

from stampwallet.core.config import settings
from stampwallet.services.layout import get_profile
from stampwallet.services.strip_generator import (
    RenderResult,
    StampImageGenerator,
    StampVisual,
    content_tag,
    scaled_profile,
)

logger = logging.getLogger(__name__)

# Redis connection (lazy initialized)
_redis: Optional[redis.Redis] = None

KEY_PREFIX = "stamp_visual:"


def get_redis() -> redis.Redis:
    """Get or create Redis connection."""
    global _redis
    if _redis is None:
        try:
            _redis = redis.Redis.from_url(
                settings.redis_url,
                decode_responses=False,  # binary image data
            )
            _redis.ping()
            logger.info("Redis connection established")
        except redis.ConnectionError as e:
            _redis = None
            logger.warning(f"Redis connection failed: {e}. Caching disabled.")
            raise
    return _redis


def get_cached_render(cache_key: str) -> Optional[bytes]:
    """Cached PNG bytes, or None if not found or cache unavailable."""
    try:
        return get_redis().get(f"{KEY_PREFIX}{cache_key}")
    except Exception as e:
        logger.debug(f"Cache miss for {cache_key}: {e}")
        return None


def cache_render(cache_key: str, image: bytes) -> None:
    try:
        get_redis().setex(f"{KEY_PREFIX}{cache_key}", settings.render_cache_ttl, image)
    except Exception as e:
        logger.warning(f"Failed to cache stamp visual: {e}")


def render_with_cache(generator: StampImageGenerator, visual: StampVisual, scale: int = 1) -> RenderResult:
    """
    Render through the cache.

    Fallback renders are not cached so a transient asset outage does not
    pin a solid image for the whole TTL.
    """
    if not settings.render_cache_enabled:
        return generator.render(visual, scale)

    cache_key = visual.cache_key(scale)
    cached = get_cached_render(cache_key)
    if cached is not None:
        profile = scaled_profile(get_profile(visual.profile), scale)
        return RenderResult(
            image=cached,
            content_tag=content_tag(cached),
            width=profile.width,
            height=profile.height,
        )

    result = generator.render(visual, scale)
    if not result.fallback:
        cache_render(cache_key, result.image)
    return result


def render_all_resolutions(generator: StampImageGenerator, visual: StampVisual) -> dict[str, bytes]:
    """
    Pass images for @1x and @2x.

    Returns dict keyed by pass file name, e.g. 'strip.png', 'strip@2x.png'
    """
    name = get_profile(visual.profile).name
    return {
        f"{name}.png": render_with_cache(generator, visual, scale=1).image,
        f"{name}@2x.png": render_with_cache(generator, visual, scale=2).image,
    }
