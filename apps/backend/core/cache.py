"""
In-process extraction cache.

Maps normalized URLs to accepted extraction results with a TTL, bounded size
(oldest entry evicted first) and single-flight de-duplication: concurrent
requests for the same URL share one producer run instead of each starting a
cascade of their own.
"""
import time
import asyncio
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar
from urllib.parse import urlparse, urlunparse, parse_qsl, urlencode

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL_SECONDS = 24 * 60 * 60
DEFAULT_MAX_ENTRIES = 100

# Tracking parameters to strip from cache keys
TRACKING_PARAMS = {
    'utm_source', 'utm_medium', 'utm_campaign', 'utm_term', 'utm_content',
    'fbclid', 'gclid', '_ga', 'trk', 'trkinfo', 'trackingid', 'refid',
    'ref', 'source', 'src', 'from',
}


def normalize_url(url: str) -> str:
    """
    Normalize URL into a cache key:
    - Lowercase scheme and host, drop ``www.``
    - Strip tracking parameters and sort the rest
    - Remove trailing slashes and the fragment
    """
    try:
        parsed = urlparse(url.strip())

        netloc = parsed.netloc.lower()
        if netloc.startswith('www.'):
            netloc = netloc[4:]

        query_params = [
            (k, v) for k, v in parse_qsl(parsed.query, keep_blank_values=True)
            if k.lower() not in TRACKING_PARAMS and not k.lower().startswith('utm_')
        ]
        new_query = urlencode(sorted(query_params)) if query_params else ''

        path = parsed.path.rstrip('/')

        return urlunparse((
            parsed.scheme.lower(),
            netloc,
            path,
            parsed.params,
            new_query,
            ''
        ))
    except ValueError as e:
        logger.warning(f"[cache] Error normalizing URL {url}: {e}")
        return url


@dataclass(frozen=True)
class CacheEntry:
    """Immutable cached value."""
    url: str
    content: Any
    created_at: float
    ttl: float

    def is_expired(self, now: Optional[float] = None) -> bool:
        return (now if now is not None else time.time()) - self.created_at >= self.ttl


class ExtractionCache:
    """
    Thread-safe TTL cache keyed by normalized URL.

    Entries are never overwritten while they are live: the first accepted
    result for a URL stays until it expires or is invalidated.
    """

    def __init__(
        self,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize cache.

        Args:
            ttl_seconds: Default time-to-live for new entries
            max_entries: Maximum number of entries before the oldest is evicted
            clock: Time source (seconds), injectable for tests
        """
        self.ttl_seconds = ttl_seconds
        self.max_entries = max(1, max_entries)
        self._clock = clock
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._inflight: Dict[str, asyncio.Future] = {}
        self.hits = 0
        self.misses = 0

    def get(self, url: str) -> Optional[Any]:
        """Return cached content for URL, or None on miss or expiry."""
        key = normalize_url(url)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            if entry.is_expired(self._clock()):
                del self._entries[key]
                self.misses += 1
                logger.debug(f"[cache] Expired entry removed: {key}")
                return None
            self.hits += 1
            return entry.content

    def set(self, url: str, content: Any, ttl: Optional[float] = None) -> bool:
        """
        Store content for URL.

        Returns:
            True if stored, False if a live entry already existed
        """
        key = normalize_url(url)
        now = self._clock()
        with self._lock:
            existing = self._entries.get(key)
            if existing is not None and not existing.is_expired(now):
                logger.debug(f"[cache] Keeping existing entry for {key}")
                return False

            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                evicted_key, _ = self._entries.popitem(last=False)
                logger.info(f"[cache] Evicted oldest entry: {evicted_key}")

            self._entries[key] = CacheEntry(
                url=key,
                content=content,
                created_at=now,
                ttl=ttl if ttl is not None else self.ttl_seconds,
            )
            logger.info(f"[cache] Stored {key} ({len(self._entries)}/{self.max_entries})")
            return True

    def invalidate(self, url: str) -> bool:
        key = normalize_url(url)
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> int:
        """Remove every entry. Returns the number removed."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info(f"[cache] Cleared {count} entries")
        return count

    def cleanup(self) -> int:
        """Purge expired entries. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if e.is_expired(now)]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.info(f"[cache] Cleaned up {len(expired)} expired entries")
        return len(expired)

    def stats(self) -> Dict[str, Any]:
        now = self._clock()
        with self._lock:
            ages = [now - e.created_at for e in self._entries.values()]
            return {
                "size": len(self._entries),
                "max_size": self.max_entries,
                "ttl_seconds": self.ttl_seconds,
                "hits": self.hits,
                "misses": self.misses,
                "inflight": len(self._inflight),
                "oldest_entry_age": round(max(ages), 1) if ages else None,
                "newest_entry_age": round(min(ages), 1) if ages else None,
            }

    async def single_flight(self, url: str, producer: Callable[[], Awaitable[T]]) -> T:
        """
        Run ``producer`` at most once per URL at a time.

        Callers arriving while a run is in flight wait for its outcome (result
        or exception) instead of starting their own. Scoped to the running
        event loop.
        """
        key = normalize_url(url)
        with self._lock:
            future = self._inflight.get(key)
            leader = future is None
            if leader:
                future = asyncio.get_running_loop().create_future()
                # Mark the outcome retrieved even when no follower awaits it
                future.add_done_callback(lambda f: f.cancelled() or f.exception())
                self._inflight[key] = future

        if not leader:
            logger.info(f"[cache] Joining in-flight extraction for {key}")
            return await asyncio.shield(future)

        try:
            result = await producer()
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            raise
        else:
            future.set_result(result)
            return result
        finally:
            with self._lock:
                self._inflight.pop(key, None)
