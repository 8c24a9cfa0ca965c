"""Supabase (PostgREST + Storage) client for the feed, search and media layers."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union
from urllib.parse import quote

import httpx

from ..config import Config
from ..exceptions import (
    AuthRequiredError,
    MemfeedError,
    NetworkUnavailableError,
    NotFoundError,
    ValidationError,
)
from ..models import MemoryType

logger = logging.getLogger(__name__)

MAX_FEED_BATCH_SIZE = 100
MAX_SEARCH_PAGE_SIZE = 50


def memory_type_param(memory_type: Optional[MemoryType]) -> str:
    """RPC filter value; ``all`` means no filter."""
    return memory_type.api_value if memory_type is not None else "all"


def map_http_error(error: httpx.HTTPError, context: str) -> MemfeedError:
    """Translate an httpx error into the memfeed error taxonomy."""
    if isinstance(error, httpx.TimeoutException):
        return NetworkUnavailableError(f"{context} timed out", cause=error)
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        detail = _error_detail(error.response)
        message = f"{context} failed with status {status}: {detail}"
        if status in (401, 403):
            return AuthRequiredError(message, cause=error)
        if status == 404:
            return NotFoundError(message, cause=error)
        if status in (400, 422):
            return ValidationError(message, cause=error)
        if status >= 500:
            return NetworkUnavailableError(message, cause=error)
        return MemfeedError(message, cause=error)
    return NetworkUnavailableError(f"Unable to connect: {context} failed: {error}", cause=error)


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body.get("msg") or body)
    return str(body)


class SupabaseClient:
    """Async client for the memory feed RPCs and storage URL signing.

    Implements the FeedSource, SearchSource and UrlSigner contracts. One
    instance wraps one httpx.AsyncClient; close it with ``aclose()`` or use it
    as an async context manager.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        access_token: Optional[str] = None,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """Initialize the client.

        Args:
            url: Project URL, e.g. ``https://xyz.supabase.co``
            api_key: Anon (publishable) key sent as ``apikey``
            access_token: User session JWT; falls back to the api key
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.url = url.rstrip("/")
        self.api_key = api_key
        self.access_token = access_token
        self._client = httpx.AsyncClient(base_url=self.url, timeout=timeout, transport=transport)

    @classmethod
    def from_config(cls, config: Config, transport: Optional[httpx.AsyncBaseTransport] = None) -> "SupabaseClient":
        """Build a client from memfeed configuration.

        Raises:
            AuthRequiredError: If the project URL or key is not configured
        """
        if not config.supabase_url or not config.supabase_key:
            raise AuthRequiredError("Supabase URL and key are not configured (see 'memfeed config set')")
        return cls(
            config.supabase_url,
            config.supabase_key,
            access_token=config.access_token,
            timeout=config.request_timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "SupabaseClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self, access_token: Optional[str] = None) -> Dict[str, str]:
        token = access_token or self.access_token or self.api_key
        return {
            "apikey": self.api_key,
            "Authorization": f"Bearer {token}",
            "Content-Type": "application/json",
        }

    async def rpc(self, name: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Call a PostgREST function and return its decoded JSON body.

        Raises:
            MemfeedError: A taxonomy error mapped from the HTTP failure
        """
        try:
            response = await self._client.post(f"/rest/v1/rpc/{name}", json=params or {}, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPError as e:
            error = map_http_error(e, f"RPC {name}")
            logger.warning("%s", error)
            raise error from e

        if not response.content:
            return None
        return response.json()

    # FeedSource

    async def get_page(
        self,
        cursor_effective_date: Optional[datetime],
        cursor_id: Optional[str],
        page_size: int,
        memory_type: Optional[MemoryType],
    ) -> List[Dict[str, Any]]:
        params = {
            "p_cursor_created_at": cursor_effective_date.isoformat() if cursor_effective_date else None,
            "p_cursor_id": cursor_id,
            "p_batch_size": min(max(page_size, 1), MAX_FEED_BATCH_SIZE),
            "p_memory_type": memory_type_param(memory_type),
        }
        rows = await self.rpc("get_unified_timeline_feed", params)
        if not isinstance(rows, list):
            raise MemfeedError("Invalid response format from get_unified_timeline_feed")
        return rows

    async def get_years(self, memory_type: Optional[MemoryType]) -> List[int]:
        rows = await self.rpc("get_unified_timeline_years", {"p_memory_type": memory_type_param(memory_type)})
        if not isinstance(rows, list):
            raise MemfeedError("Invalid response format from get_unified_timeline_years")

        years = []
        for entry in rows:
            if isinstance(entry, int):
                years.append(entry)
            elif isinstance(entry, dict) and entry.get("year") is not None:
                years.append(int(entry["year"]))
            else:
                raise MemfeedError(f"Unexpected year entry from get_unified_timeline_years: {entry!r}")
        return sorted(years, reverse=True)

    # SearchSource

    async def search(
        self,
        query: str,
        page: int,
        page_size: int,
        memory_type: Optional[MemoryType],
    ) -> Union[List[Dict[str, Any]], Dict[str, Any]]:
        params: Dict[str, Any] = {
            "p_query": query,
            "p_page": page,
            "p_page_size": min(max(page_size, 1), MAX_SEARCH_PAGE_SIZE),
        }
        if memory_type is not None:
            params["p_memory_type"] = memory_type.api_value
        response = await self.rpc("search_memories", params)
        if not isinstance(response, (list, dict)):
            raise MemfeedError("Invalid response format from search_memories")
        return response

    async def get_recent_searches(self) -> List[Dict[str, Any]]:
        rows = await self.rpc("get_recent_searches")
        if not isinstance(rows, list):
            raise MemfeedError("Invalid response format from get_recent_searches")
        return rows

    async def upsert_recent_search(self, query: str) -> None:
        query = query.strip()
        if not query:
            return
        await self.rpc("upsert_recent_search", {"p_query": query})

    async def clear_recent_searches(self) -> None:
        await self.rpc("clear_recent_searches")

    # UrlSigner

    async def sign(
        self,
        bucket: str,
        path: str,
        expires_in: int,
        access_token: Optional[str] = None,
    ) -> Tuple[str, int]:
        """Create a signed URL for a private storage object.

        Args:
            bucket: Storage bucket
            path: Object path inside the bucket
            expires_in: Requested validity in seconds
            access_token: Sign with this session instead of the client's

        Returns:
            (absolute signed URL, granted ttl in seconds)
        """
        endpoint = f"/storage/v1/object/sign/{quote(bucket)}/{quote(path.lstrip('/'))}"
        try:
            response = await self._client.post(
                endpoint, json={"expiresIn": expires_in}, headers=self._headers(access_token)
            )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise map_http_error(e, f"Signing {bucket}/{path}") from e

        body = response.json()
        signed = (body.get("signedURL") or body.get("signedUrl")) if isinstance(body, dict) else None
        if not signed:
            raise MemfeedError(f"Storage returned no signed URL for {bucket}/{path}")
        if signed.startswith(("http://", "https://")):
            return signed, expires_in
        return f"{self.url}/storage/v1/{signed.lstrip('/')}", expires_in
