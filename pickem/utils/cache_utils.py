"""
Cache utilities for the pick'em API
Provides a route caching decorator and prefix-wide invalidation
"""

import functools

from flask import current_app, request

from pickem import cache


def _generation_key(key_prefix):
    return f"{key_prefix}_generation"


def make_cache_key(key_prefix, *args, **kwargs):
    """Cache key from prefix generation, request path, query string and arguments"""
    generation = cache.get(_generation_key(key_prefix)) or 0
    path = request.full_path.rstrip("?")
    args_str = "_".join(str(arg) for arg in args)
    kwargs_str = "_".join(f"{k}_{v}" for k, v in sorted(kwargs.items()))
    return f"{key_prefix}_{generation}_{path}_{args_str}_{kwargs_str}".replace("/", "_")


def cached_route(timeout=300, key_prefix="view"):
    """
    Decorator for caching JSON-serializable route payloads

    Args:
        timeout: Cache timeout in seconds (default 5 minutes)
        key_prefix: Prefix for cache key, also the unit of invalidation
    """

    def decorator(f):
        @functools.wraps(f)
        def wrapped(*args, **kwargs):
            cache_key = make_cache_key(key_prefix, *args, **kwargs)

            result = cache.get(cache_key)
            if result is not None:
                current_app.logger.debug(f"Cache hit for key: {cache_key}")
                return result

            result = f(*args, **kwargs)
            cache.set(cache_key, result, timeout=timeout)
            current_app.logger.debug(f"Cache set for key: {cache_key}")

            return result

        return wrapped

    return decorator


def invalidate_cache(key_prefix):
    """
    Invalidate every cached payload under a prefix

    Bumps the prefix generation so old keys are never read again and expire
    on their own; works the same on SimpleCache and Redis.
    """
    key = _generation_key(key_prefix)
    cache.set(key, (cache.get(key) or 0) + 1, timeout=0)
    current_app.logger.debug(f"Cache invalidated for prefix: {key_prefix}")


def get_cache_stats():
    """Basic cache configuration for the status command"""
    return {
        "type": current_app.config.get("CACHE_TYPE", "Unknown"),
        "timeout": current_app.config.get("CACHE_DEFAULT_TIMEOUT", 300),
    }
