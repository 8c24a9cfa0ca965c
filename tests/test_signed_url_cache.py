"""Tests for the signed URL cache."""

import asyncio

import pytest

from conftest import FakeSigner
from memfeed.exceptions import AuthRequiredError, NetworkUnavailableError
from memfeed.media import CacheEntry, SignedUrlCache, normalize_storage_path
from memfeed.models import MediaKind, PrimaryMedia


class SessionlessSigner(FakeSigner):
    """Rejects signing without an explicit access token."""

    async def sign(self, bucket, path, expires_in, access_token=None):
        if access_token is None:
            await asyncio.sleep(0)
            raise AuthRequiredError("no ambient session")
        return await super().sign(bucket, path, expires_in, access_token=access_token)


class TestNormalizeStoragePath:
    def test_plain_path_unchanged(self):
        assert normalize_storage_path("user-1/photo.jpg") == "user-1/photo.jpg"

    def test_public_url_extracts_object_path(self):
        url = "https://xyz.supabase.co/storage/v1/object/public/memories-photos/user-1/a%20b.jpg"
        assert normalize_storage_path(url) == "user-1/a b.jpg"

    def test_other_url_unchanged(self):
        url = "https://example.com/image.jpg"
        assert normalize_storage_path(url) == url


class TestCacheEntry:
    def test_validity_respects_safety_margin(self):
        entry = CacheEntry(url="u", issued_at=0.0, ttl=60)

        assert entry.is_valid(54.0, 5.0)
        assert not entry.is_valid(56.0, 5.0)
        assert not entry.is_valid(55.0, 5.0)


class TestSignedUrlCache:
    @pytest.mark.asyncio
    async def test_hit_avoids_network(self, signer, clock):
        cache = SignedUrlCache(signer, clock=clock)

        first = await cache.resolve("memories-photos", "u1/a.jpg")
        second = await cache.resolve("memories-photos", "u1/a.jpg")

        assert first == second
        assert len(signer.calls) == 1
        assert cache.size == 1

    @pytest.mark.asyncio
    async def test_concurrent_callers_share_one_fetch(self, signer, clock):
        cache = SignedUrlCache(signer, clock=clock)
        signer.gate = asyncio.Event()

        tasks = [asyncio.create_task(cache.resolve("memories-photos", "u1/a.jpg")) for _ in range(10)]
        await asyncio.sleep(0)
        signer.gate.set()
        urls = await asyncio.gather(*tasks)

        assert len(signer.calls) == 1
        assert len(set(urls)) == 1

    @pytest.mark.asyncio
    async def test_entry_expires_at_safety_margin(self, clock):
        signer = FakeSigner(ttl=60)
        cache = SignedUrlCache(signer, ttl_seconds=60, safety_margin=5.0, clock=clock)

        await cache.resolve("memories-photos", "u1/a.jpg")
        clock.advance(54)
        assert cache.peek("memories-photos", "u1/a.jpg") is not None
        await cache.resolve("memories-photos", "u1/a.jpg")
        assert len(signer.calls) == 1

        clock.advance(2)
        assert cache.peek("memories-photos", "u1/a.jpg") is None
        await cache.resolve("memories-photos", "u1/a.jpg")
        assert len(signer.calls) == 2

    @pytest.mark.asyncio
    async def test_failures_are_not_cached(self, signer, clock):
        cache = SignedUrlCache(signer, clock=clock)
        signer.failing_paths.add("u1/a.jpg")

        with pytest.raises(NetworkUnavailableError):
            await cache.resolve("memories-photos", "u1/a.jpg")
        assert cache.size == 0

        signer.failing_paths.clear()
        url = await cache.resolve("memories-photos", "u1/a.jpg")

        assert url.startswith("https://cdn.example/")
        assert len(signer.calls) == 2

    @pytest.mark.asyncio
    async def test_concurrent_failure_reaches_every_caller(self, signer, clock):
        cache = SignedUrlCache(signer, clock=clock)
        signer.failing_paths.add("u1/a.jpg")
        signer.gate = asyncio.Event()

        tasks = [asyncio.create_task(cache.resolve("memories-photos", "u1/a.jpg")) for _ in range(3)]
        await asyncio.sleep(0)
        signer.gate.set()
        results = await asyncio.gather(*tasks, return_exceptions=True)

        assert all(isinstance(r, NetworkUnavailableError) for r in results)
        assert len(signer.calls) == 1

    @pytest.mark.asyncio
    async def test_buckets_do_not_share_entries(self, signer, clock):
        cache = SignedUrlCache(signer, clock=clock)

        photo = await cache.resolve("memories-photos", "u1/a")
        video = await cache.resolve("memories-videos", "u1/a")

        assert photo != video
        assert len(signer.calls) == 2

    @pytest.mark.asyncio
    async def test_public_url_and_path_share_entry(self, signer, clock):
        cache = SignedUrlCache(signer, clock=clock)
        url = "https://xyz.supabase.co/storage/v1/object/public/memories-photos/u1/a.jpg"

        await cache.resolve("memories-photos", url)
        await cache.resolve("memories-photos", "u1/a.jpg")

        assert len(signer.calls) == 1
        assert signer.calls[0][1] == "u1/a.jpg"

    @pytest.mark.asyncio
    async def test_detail_uses_longer_ttl_and_explicit_token(self, signer, clock):
        cache = SignedUrlCache(signer, ttl_seconds=3600, detail_ttl_seconds=7200, clock=clock)

        await cache.resolve_for_detail("memories-photos", "u1/a.jpg", access_token="jwt-123")

        assert signer.calls == [("memories-photos", "u1/a.jpg", 7200, "jwt-123")]

    @pytest.mark.asyncio
    async def test_detail_with_token_does_not_join_ambient_fetch(self, clock):
        signer = SessionlessSigner()
        cache = SignedUrlCache(signer, clock=clock)

        ambient, detail = await asyncio.gather(
            cache.resolve("memories-photos", "u1/a.jpg"),
            cache.resolve_for_detail("memories-photos", "u1/a.jpg", access_token="jwt-123"),
            return_exceptions=True,
        )

        assert isinstance(ambient, AuthRequiredError)
        assert detail.startswith("https://cdn.example/memories-photos/u1/a.jpg")
        assert signer.calls == [("memories-photos", "u1/a.jpg", 7200, "jwt-123")]
        assert await cache.resolve("memories-photos", "u1/a.jpg") == detail

    @pytest.mark.asyncio
    async def test_resolve_media_signs_poster_in_photo_bucket(self, signer, clock):
        cache = SignedUrlCache(signer, clock=clock)
        media = PrimaryMedia(kind=MediaKind.VIDEO, path="u1/v.mp4", poster_path="u1/v.jpg")

        url, poster = await cache.resolve_media(media, "memories-photos", "memories-videos")

        assert "memories-videos/u1/v.mp4" in url
        assert "memories-photos/u1/v.jpg" in poster

    @pytest.mark.asyncio
    async def test_clear_expired(self, clock):
        cache = SignedUrlCache(FakeSigner(ttl=60), ttl_seconds=60, clock=clock)
        await cache.resolve("memories-photos", "old")
        clock.advance(30)
        await cache.resolve("memories-photos", "new")
        clock.advance(30)

        assert cache.clear_expired() == 1
        assert cache.size == 1
        cache.clear()
        assert cache.size == 0
