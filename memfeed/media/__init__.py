"""Signed media URL caching."""

from .signed_urls import CacheEntry, SignedUrlCache, normalize_storage_path

__all__ = ["CacheEntry", "SignedUrlCache", "normalize_storage_path"]
