"""In-process document store, for development and tests."""

from typing import Any

from shared.helper.HelperConfig import HelperConfig
from shared.models.document import Document, ProcessingStatus, utcnow
from shared.repositories.DocumentRepositoryInterface import DocumentRepositoryInterface


class DocumentRepositoryMemory(DocumentRepositoryInterface):
    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._documents: dict[str, Document] = {}

    async def get(self, document_id: str) -> Document | None:
        document = self._documents.get(document_id)
        return document.model_copy(deep=True) if document else None

    async def create(self, document: Document) -> Document:
        self._documents[document.id] = document.model_copy(deep=True)
        return document

    async def update(self, document_id: str, **fields: Any) -> Document | None:
        current = self._documents.get(document_id)
        if current is None:
            return None
        updated = current.model_copy(update={**fields, "updated_at": utcnow()}, deep=True)
        self._documents[document_id] = updated
        return updated.model_copy(deep=True)

    async def delete(self, document_id: str) -> bool:
        return self._documents.pop(document_id, None) is not None

    async def list_by_owner(
        self,
        owner_id: str,
        status: ProcessingStatus | None = None,
        skip: int = 0,
        limit: int = 10,
    ) -> tuple[list[Document], int]:
        matches = [
            doc for doc in self._documents.values()
            if doc.owner_id == owner_id and (status is None or doc.processing_status == status)
        ]
        matches.sort(key=lambda doc: doc.created_at, reverse=True)
        page = [doc.model_copy(deep=True) for doc in matches[skip: skip + limit]]
        return page, len(matches)

    async def list_unfinished(self) -> list[Document]:
        unfinished = sorted(
            (doc for doc in self._documents.values() if doc.is_unfinished()),
            key=lambda doc: doc.created_at,
        )
        return [doc.model_copy(deep=True) for doc in unfinished]
