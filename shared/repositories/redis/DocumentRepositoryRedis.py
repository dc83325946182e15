"""Redis backed document store.

Each Document is a JSON string under ``document:<id>``; a sorted set
``owner:<owner_id>:documents`` scored by creation time drives listings.
The set ``documents:unfinished`` holds the ids of pending and processing
documents so a restarted process can find work it has to re-queue.
"""

from typing import Any

from redis.asyncio import Redis
from redis.exceptions import WatchError

from shared.helper.HelperConfig import HelperConfig
from shared.models.document import Document, ProcessingStatus, utcnow
from shared.repositories.DocumentRepositoryInterface import DocumentRepositoryInterface

UNFINISHED_KEY = "documents:unfinished"


class DocumentRepositoryRedis(DocumentRepositoryInterface):
    def __init__(self, helper_config: HelperConfig, redis_client: Redis):
        super().__init__(helper_config=helper_config)
        self._redis = redis_client

    @staticmethod
    def _key(document_id: str) -> str:
        return f"document:{document_id}"

    @staticmethod
    def _owner_key(owner_id: str) -> str:
        return f"owner:{owner_id}:documents"

    @staticmethod
    def _track_unfinished(pipe, document: Document) -> None:
        if document.is_unfinished():
            pipe.sadd(UNFINISHED_KEY, document.id)
        else:
            pipe.srem(UNFINISHED_KEY, document.id)

    async def _load_many(self, document_ids: list[str]) -> list[Document]:
        if not document_ids:
            return []
        raws = await self._redis.mget([self._key(doc_id) for doc_id in document_ids])
        return [Document.model_validate_json(raw) for raw in raws if raw]

    async def get(self, document_id: str) -> Document | None:
        raw = await self._redis.get(self._key(document_id))
        return Document.model_validate_json(raw) if raw else None

    async def create(self, document: Document) -> Document:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self._key(document.id), document.model_dump_json())
            pipe.zadd(self._owner_key(document.owner_id), {document.id: document.created_at.timestamp()})
            self._track_unfinished(pipe, document)
            await pipe.execute()
        return document

    async def update(self, document_id: str, **fields: Any) -> Document | None:
        key = self._key(document_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    if raw is None:
                        return None
                    current = Document.model_validate_json(raw)
                    updated = Document.model_validate({**current.model_dump(), **fields, "updated_at": utcnow()})
                    pipe.multi()
                    pipe.set(key, updated.model_dump_json())
                    self._track_unfinished(pipe, updated)
                    await pipe.execute()
                    return updated
                except WatchError:
                    self.logging.debug("Concurrent update of %s, retrying", key)
                    continue

    async def delete(self, document_id: str) -> bool:
        document = await self.get(document_id)
        if document is None:
            return False
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.delete(self._key(document_id))
            pipe.zrem(self._owner_key(document.owner_id), document_id)
            pipe.srem(UNFINISHED_KEY, document_id)
            await pipe.execute()
        return True

    async def list_by_owner(
        self,
        owner_id: str,
        status: ProcessingStatus | None = None,
        skip: int = 0,
        limit: int = 10,
    ) -> tuple[list[Document], int]:
        ids = await self._redis.zrevrange(self._owner_key(owner_id), 0, -1)
        documents = await self._load_many(ids)
        if status is not None:
            documents = [doc for doc in documents if doc.processing_status == status]
        return documents[skip: skip + limit], len(documents)

    async def list_unfinished(self) -> list[Document]:
        ids = list(await self._redis.smembers(UNFINISHED_KEY))
        documents = [doc for doc in await self._load_many(ids) if doc.is_unfinished()]
        documents.sort(key=lambda doc: doc.created_at)
        return documents
