"""Redis backed chat session store.

Sessions are JSON strings under ``chat_session:<session_id>``. The sorted set
``owner:<owner_id>:sessions`` (scored by last update) and the set
``document:<document_id>:sessions`` index them.
"""

from redis.asyncio import Redis
from redis.exceptions import WatchError

from shared.helper.HelperConfig import HelperConfig
from shared.models.chat import ChatMessage, ChatSession
from shared.models.document import utcnow
from shared.repositories.ChatRepositoryInterface import ChatRepositoryInterface


class ChatRepositoryRedis(ChatRepositoryInterface):
    def __init__(self, helper_config: HelperConfig, redis_client: Redis):
        super().__init__(helper_config=helper_config)
        self._redis = redis_client

    @staticmethod
    def _key(session_id: str) -> str:
        return f"chat_session:{session_id}"

    @staticmethod
    def _owner_key(owner_id: str) -> str:
        return f"owner:{owner_id}:sessions"

    @staticmethod
    def _document_key(document_id: str) -> str:
        return f"document:{document_id}:sessions"

    async def get(self, session_id: str) -> ChatSession | None:
        raw = await self._redis.get(self._key(session_id))
        return ChatSession.model_validate_json(raw) if raw else None

    async def create(self, session: ChatSession) -> ChatSession:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self._key(session.session_id), session.model_dump_json())
            pipe.zadd(self._owner_key(session.owner_id), {session.session_id: session.updated_at.timestamp()})
            pipe.sadd(self._document_key(session.document_id), session.session_id)
            await pipe.execute()
        return session

    async def append_messages(self, session_id: str, messages: list[ChatMessage]) -> ChatSession | None:
        key = self._key(session_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    if raw is None:
                        return None
                    session = ChatSession.model_validate_json(raw)
                    session.messages.extend(messages)
                    session.updated_at = utcnow()
                    pipe.multi()
                    pipe.set(key, session.model_dump_json())
                    pipe.zadd(self._owner_key(session.owner_id), {session_id: session.updated_at.timestamp()})
                    await pipe.execute()
                    return session
                except WatchError:
                    self.logging.debug("Concurrent append to %s, retrying", key)
                    continue

    async def delete(self, session_id: str) -> bool:
        session = await self.get(session_id)
        if session is None:
            return False
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.delete(self._key(session_id))
            pipe.zrem(self._owner_key(session.owner_id), session_id)
            pipe.srem(self._document_key(session.document_id), session_id)
            await pipe.execute()
        return True

    async def _load_many(self, session_ids: list[str]) -> list[ChatSession]:
        if not session_ids:
            return []
        raws = await self._redis.mget([self._key(sid) for sid in session_ids])
        return [ChatSession.model_validate_json(raw) for raw in raws if raw]

    async def list_by_owner(self, owner_id: str, limit: int = 20) -> list[ChatSession]:
        session_ids = await self._redis.zrevrange(self._owner_key(owner_id), 0, -1)
        sessions = [s for s in await self._load_many(session_ids) if s.is_active]
        return sessions[:limit]

    async def list_by_document(self, owner_id: str, document_id: str) -> list[ChatSession]:
        session_ids = list(await self._redis.smembers(self._document_key(document_id)))
        sessions = [
            s for s in await self._load_many(session_ids)
            if s.owner_id == owner_id and s.is_active
        ]
        sessions.sort(key=lambda s: s.updated_at, reverse=True)
        return sessions

    async def delete_by_document(self, document_id: str) -> int:
        session_ids = list(await self._redis.smembers(self._document_key(document_id)))
        removed = 0
        for session_id in session_ids:
            if await self.delete(session_id):
                removed += 1
        await self._redis.delete(self._document_key(document_id))
        return removed
