"""Remote data sources: contracts and the Supabase HTTP client."""

from .protocols import FeedSource, SearchSource, UrlSigner
from .supabase import SupabaseClient

__all__ = ["FeedSource", "SearchSource", "SupabaseClient", "UrlSigner"]
