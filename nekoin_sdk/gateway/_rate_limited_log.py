"""
Thread-safe rate-limited logging utilities.

Background workers such as the block poller can fail repeatedly while a
node is unreachable; this keeps one line per distinct message per interval.
"""
import logging
import threading
from typing import Optional

from cachetools import TTLCache

logger = logging.getLogger(__name__)

# Keys expire after the default interval; entries logged with a longer
# interval are tracked in their own cache.
_DEFAULT_INTERVAL = 60
_caches = {}
_cache_lock = threading.RLock()


def _get_cache(interval: int) -> TTLCache:
    cache = _caches.get(interval)
    if cache is None:
        cache = TTLCache(maxsize=100, ttl=interval)
        _caches[interval] = cache
    return cache


def rate_limited_log(
    message: str,
    level: str = "warning",
    interval: int = _DEFAULT_INTERVAL,
    logger_instance: Optional[logging.Logger] = None
) -> bool:
    """
    Log a message with rate limiting, in a thread-safe manner.

    Args:
        message: Message to log
        level: Log level (debug, info, warning, error, critical)
        interval: Minimum interval between identical logs in seconds
        logger_instance: Logger to use (defaults to module logger)

    Returns:
        True if the message was emitted, False if it was suppressed
    """
    log_instance = logger_instance or logger
    log_method = getattr(log_instance, level.lower(), log_instance.warning)
    key = f"{level}:{message}"

    with _cache_lock:
        cache = _get_cache(interval)
        if key in cache:
            return False
        cache[key] = True

    log_method(message)
    return True


def reset() -> None:
    """Forget every suppressed message."""
    with _cache_lock:
        _caches.clear()
