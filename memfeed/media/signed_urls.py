"""In-memory cache of signed storage URLs with request coalescing.

Timeline thumbnails, hero transitions and the lightbox often resolve the same
object in the same frame. Each (bucket, path) key has at most one outstanding
signing request; everyone else awaits it.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import unquote, urlsplit

from ..models import MediaKind, PrimaryMedia
from ..remote.protocols import UrlSigner

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600
DETAIL_TTL_SECONDS = 7200
DEFAULT_SAFETY_MARGIN_SECONDS = 5.0

CacheKey = Tuple[str, str]
FlightKey = Tuple[str, str, Optional[str]]


def normalize_storage_path(path: str) -> str:
    """Normalize a storage path, extracting it from a full public URL if necessary.

    Supabase public URLs look like ``/storage/v1/object/public/<bucket>/<path>``;
    everything after the bucket segment is the object path. Anything else is
    returned unchanged.
    """
    if not path.startswith(("http://", "https://")):
        return path

    segments = [s for s in urlsplit(path).path.split("/") if s]
    try:
        public_index = segments.index("public")
    except ValueError:
        return path

    object_segments = segments[public_index + 2 :]
    if not object_segments:
        return path
    storage_path = unquote("/".join(object_segments))
    logger.debug("Extracted storage path from URL: %s", storage_path)
    return storage_path


@dataclass
class CacheEntry:
    url: str
    issued_at: float
    ttl: float

    def is_valid(self, now: float, safety_margin: float) -> bool:
        return now < self.issued_at + self.ttl - safety_margin


class SignedUrlCache:
    """Maps (bucket, object path) to a time-limited URL.

    Entries are invalidated lazily on access once ``now`` reaches
    ``issued_at + ttl - safety_margin``. Failed fetches are never cached.
    """

    def __init__(
        self,
        signer: UrlSigner,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        detail_ttl_seconds: int = DETAIL_TTL_SECONDS,
        safety_margin: float = DEFAULT_SAFETY_MARGIN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the cache.

        Args:
            signer: Signed-URL issuer
            ttl_seconds: Requested validity for timeline thumbnails
            detail_ttl_seconds: Requested validity for detail view media
            safety_margin: Seconds before expiry at which an entry stops being served
            clock: Monotonic time source in seconds (injectable for tests)
        """
        self._signer = signer
        self.ttl_seconds = ttl_seconds
        self.detail_ttl_seconds = detail_ttl_seconds
        self.safety_margin = safety_margin
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._inflight: Dict[FlightKey, asyncio.Future] = {}

    @property
    def size(self) -> int:
        return len(self._entries)

    def peek(self, bucket: str, path: str) -> Optional[str]:
        """Return a still-valid cached URL without touching the network."""
        key = (bucket, normalize_storage_path(path))
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.is_valid(self._clock(), self.safety_margin):
            return entry.url
        del self._entries[key]
        return None

    async def resolve(self, bucket: str, path: str) -> str:
        """Get a signed URL for a storage object, using the cache if possible.

        Args:
            bucket: Storage bucket name
            path: Object path (or full public URL)

        Returns:
            Signed URL

        Raises:
            MemfeedError: Whatever the signer raised; nothing is cached
        """
        return await self._resolve(bucket, path, self.ttl_seconds, None)

    async def resolve_for_detail(self, bucket: str, path: str, access_token: Optional[str] = None) -> str:
        """Get a signed URL for detail view media.

        Requests the longer detail TTL and, when given, signs with an explicit
        access token instead of the ambient session (e.g. a lightbox opened from
        search results).
        """
        return await self._resolve(bucket, path, self.detail_ttl_seconds, access_token)

    async def resolve_media(self, media: PrimaryMedia, photo_bucket: str, video_bucket: str) -> Tuple[str, Optional[str]]:
        """Resolve (media_url, poster_url) for a record's primary media.

        Video posters live in the photo bucket.
        """
        bucket = photo_bucket if media.kind == MediaKind.PHOTO else video_bucket
        if media.poster_path:
            url, poster = await asyncio.gather(
                self.resolve(bucket, media.path),
                self.resolve(photo_bucket, media.poster_path),
            )
            return url, poster
        return await self.resolve(bucket, media.path), None

    def clear_expired(self) -> int:
        """Drop entries past their safety margin. Returns the number removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if not e.is_valid(now, self.safety_margin)]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    async def _resolve(self, bucket: str, path: str, ttl: int, access_token: Optional[str]) -> str:
        key = (bucket, normalize_storage_path(path))

        entry = self._entries.get(key)
        if entry is not None:
            if entry.is_valid(self._clock(), self.safety_margin):
                logger.debug("Using cached signed URL for %s/%s", *key)
                return entry.url
            del self._entries[key]

        # Callers with an explicit token never join a fetch made with another session
        flight = (key[0], key[1], access_token)
        pending = self._inflight.get(flight)
        if pending is None:
            pending = asyncio.ensure_future(self._fetch(key, ttl, access_token))
            self._inflight[flight] = pending
            pending.add_done_callback(lambda fut, flight=flight: self._fetch_done(flight, fut))

        # Shield so a cancelled caller doesn't cancel the fetch others are awaiting
        return await asyncio.shield(pending)

    def _fetch_done(self, flight: FlightKey, fut: asyncio.Future) -> None:
        if self._inflight.get(flight) is fut:
            del self._inflight[flight]
        if not fut.cancelled():
            # Mark the exception retrieved; waiters already received it
            fut.exception()

    async def _fetch(self, key: CacheKey, ttl: int, access_token: Optional[str]) -> str:
        bucket, path = key
        issued_at = self._clock()
        logger.debug("Generating signed URL for bucket=%s, path=%s", bucket, path)
        try:
            url, granted_ttl = await self._signer.sign(bucket, path, ttl, access_token=access_token)
        except Exception as e:
            logger.warning("Failed to generate signed URL for bucket=%s, path=%s: %s", bucket, path, e)
            raise

        self._entries[key] = CacheEntry(url=url, issued_at=issued_at, ttl=granted_ttl)
        return url
