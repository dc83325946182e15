"""Best-effort Redis cache for chat answers.

A cache failure must never fail a request: every backend error is logged and
swallowed, and reads fall back to a miss.
"""

import hashlib
import json
from typing import Any

from redis.asyncio import Redis
from redis.exceptions import RedisError

from shared.helper.HelperConfig import HelperConfig


def normalize_question(question: str) -> str:
    return question.strip().lower()


def hash_str(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


class ResponseCache:
    """Short-TTL memoization of (document, normalized question) → answer payload."""

    KEY_PREFIX = "chat"

    def __init__(self, helper_config: HelperConfig, redis_client: Redis) -> None:
        self.logging = helper_config.get_logger()
        self._redis = redis_client
        self.default_ttl = helper_config.get_int_val("CHAT_CACHE_TTL", default=3600, minimum=1)

    ##########################################
    ################ KEYS ####################
    ##########################################

    def build_answer_key(self, pdf_id: str, question: str) -> str:
        """Key for a cached answer; case and surrounding whitespace of the question are ignored."""
        return f"{self.KEY_PREFIX}:{pdf_id}:{hash_str(normalize_question(question))}"

    def build_document_prefix(self, pdf_id: str) -> str:
        return f"{self.KEY_PREFIX}:{pdf_id}:"

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def get(self, key: str) -> Any | None:
        """Return the cached value (JSON decoded when possible) or None on miss or error."""
        try:
            value = await self._redis.get(key)
        except (RedisError, OSError) as e:
            self.logging.error("Cache get error for %s: %s", key, e)
            return None
        if value is None:
            return None
        try:
            return json.loads(value)
        except (TypeError, ValueError):
            return value

    async def set(self, key: str, value: Any, ttl: int | None = None) -> None:
        """Store a value with a TTL in seconds (SET key value EX ttl)."""
        string_value = value if isinstance(value, str) else json.dumps(value)
        try:
            await self._redis.set(key, string_value, ex=ttl or self.default_ttl)
            self.logging.debug("Cache set: %s", key)
        except (RedisError, OSError) as e:
            self.logging.error("Cache set error for %s: %s", key, e)

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
            self.logging.debug("Cache deleted: %s", key)
        except (RedisError, OSError) as e:
            self.logging.error("Cache delete error for %s: %s", key, e)

    async def delete_by_pattern(self, prefix: str) -> int:
        """Delete every key starting with prefix, scanning instead of KEYS.

        Returns:
            int: Number of deleted keys (0 on error).
        """
        try:
            keys = [key async for key in self._redis.scan_iter(match=f"{prefix}*", count=100)]
            if keys:
                await self._redis.delete(*keys)
                self.logging.debug("Deleted %d cache keys for pattern %s*", len(keys), prefix)
            return len(keys)
        except (RedisError, OSError) as e:
            self.logging.error("Cache delete_by_pattern error for %s*: %s", prefix, e)
            return 0

    async def close(self) -> None:
        try:
            await self._redis.aclose()
        except (RedisError, OSError) as e:
            self.logging.error("Cache close error: %s", e)
