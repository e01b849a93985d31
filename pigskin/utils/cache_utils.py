"""
Cache utilities for leaderboard queries

Leaderboard reads are cached per (scope, season, week). Every recompute of a
season bumps that season's generation counter, which orphans all cached keys
for it without needing to enumerate them.
"""

import functools

from flask import current_app

from pigskin import cache


def _generation_key(season):
    return f"leaderboard_generation_{season}"


def get_leaderboard_generation(season):
    return cache.get(_generation_key(season)) or 0


def make_leaderboard_cache_key(scope, season, week=None):
    generation = get_leaderboard_generation(season)
    return f"leaderboard_{scope}_{season}_{week if week is not None else 'all'}_g{generation}"


def cached_leaderboard(timeout=None):
    """
    Decorator for caching leaderboard query results

    The wrapped function must take (scope, season, week=None) as its leading
    arguments.
    """

    def decorator(f):
        @functools.wraps(f)
        def wrapped(self, scope, season, week=None, *args, **kwargs):
            cache_key = make_leaderboard_cache_key(scope, season, week)

            result = cache.get(cache_key)
            if result is not None:
                current_app.logger.debug(f"Cache hit for key: {cache_key}")
                return result

            result = f(self, scope, season, week, *args, **kwargs)
            cache.set(
                cache_key,
                result,
                timeout=timeout or current_app.config.get("CACHE_DEFAULT_TIMEOUT", 300),
            )
            current_app.logger.debug(f"Cache set for key: {cache_key}")

            return result

        return wrapped

    return decorator


def invalidate_leaderboard_cache(season):
    """Invalidate every cached leaderboard for a season"""
    try:
        generation = get_leaderboard_generation(season) + 1
        cache.set(_generation_key(season), generation, timeout=0)
        current_app.logger.debug(
            f"Leaderboard cache generation for {season} bumped to {generation}"
        )
    except Exception as e:
        current_app.logger.error(f"Failed to invalidate leaderboard cache: {e}")


def get_cache_stats():
    """Get cache statistics"""
    return {
        "type": current_app.config.get("CACHE_TYPE", "Unknown"),
        "timeout": current_app.config.get("CACHE_DEFAULT_TIMEOUT", 300),
    }
