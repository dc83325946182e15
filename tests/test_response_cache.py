"""Tests for ResponseCache keying, TTL handling and failure swallowing."""

from unittest.mock import AsyncMock, MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from shared.cache.ResponseCache import ResponseCache, hash_str, normalize_question


class TestKeys:

    def test_question_is_normalized(self, cache):
        assert cache.build_answer_key("pdf-1", "  What IS this? ") == cache.build_answer_key("pdf-1", "what is this?")

    def test_key_layout(self, cache):
        key = cache.build_answer_key("pdf-1", "Hello")
        assert key == f"chat:pdf-1:{hash_str(normalize_question('Hello'))}"
        assert key.startswith(cache.build_document_prefix("pdf-1"))

    def test_documents_do_not_share_keys(self, cache):
        assert cache.build_answer_key("pdf-1", "q") != cache.build_answer_key("pdf-2", "q")


class TestRoundTrip:

    async def test_set_uses_default_ttl(self, cache, fake_redis):
        key = cache.build_answer_key("pdf-1", "q")
        await cache.set(key, {"answer": "a", "context": []})
        assert fake_redis.ttls[key] == 3600
        assert await cache.get(key) == {"answer": "a", "context": []}

    async def test_ttl_from_config(self, helper_config, fake_redis, monkeypatch):
        monkeypatch.setenv("CHAT_CACHE_TTL", "60")
        cache = ResponseCache(helper_config=helper_config, redis_client=fake_redis)
        await cache.set("k", "v")
        assert fake_redis.ttls["k"] == 60

    async def test_miss_returns_none(self, cache):
        assert await cache.get("chat:none:none") is None

    async def test_delete_by_pattern_only_hits_prefix(self, cache, fake_redis):
        await cache.set(cache.build_answer_key("pdf-1", "a"), "x")
        await cache.set(cache.build_answer_key("pdf-1", "b"), "x")
        await cache.set(cache.build_answer_key("pdf-2", "a"), "x")
        removed = await cache.delete_by_pattern(cache.build_document_prefix("pdf-1"))
        assert removed == 2
        assert list(fake_redis.store) == [cache.build_answer_key("pdf-2", "a")]


class TestBackendFailures:

    def _broken_cache(self, helper_config):
        redis = MagicMock()
        redis.get = AsyncMock(side_effect=RedisConnectionError("down"))
        redis.set = AsyncMock(side_effect=RedisConnectionError("down"))
        redis.delete = AsyncMock(side_effect=RedisConnectionError("down"))
        redis.scan_iter = MagicMock(side_effect=RedisConnectionError("down"))
        return ResponseCache(helper_config=helper_config, redis_client=redis)

    async def test_get_error_is_a_miss(self, helper_config):
        assert await self._broken_cache(helper_config).get("k") is None

    async def test_set_error_is_swallowed(self, helper_config):
        await self._broken_cache(helper_config).set("k", {"a": 1})

    async def test_delete_errors_are_swallowed(self, helper_config):
        cache = self._broken_cache(helper_config)
        await cache.delete("k")
        assert await cache.delete_by_pattern("chat:pdf-1:") == 0
