from abc import ABC, abstractmethod
from typing import Any

from shared.helper.HelperConfig import HelperConfig
from shared.models.document import Document, ProcessingStatus


class DocumentRepositoryInterface(ABC):
    """Persistence of Document records, keyed by document id."""

    def __init__(self, helper_config: HelperConfig):
        self.logging = helper_config.get_logger()

    @abstractmethod
    async def get(self, document_id: str) -> Document | None:
        pass

    @abstractmethod
    async def create(self, document: Document) -> Document:
        pass

    @abstractmethod
    async def update(self, document_id: str, **fields: Any) -> Document | None:
        """Apply field changes and bump updated_at.

        Returns:
            Document | None: The updated record, or None if it no longer exists.
        """
        pass

    @abstractmethod
    async def delete(self, document_id: str) -> bool:
        pass

    @abstractmethod
    async def list_by_owner(
        self,
        owner_id: str,
        status: ProcessingStatus | None = None,
        skip: int = 0,
        limit: int = 10,
    ) -> tuple[list[Document], int]:
        """List an owner's documents, newest first.

        Returns:
            tuple[list[Document], int]: The requested page and the total match count.
        """
        pass

    async def get_for_owner(self, document_id: str, owner_id: str) -> Document | None:
        """Return the document only if it belongs to owner_id."""
        document = await self.get(document_id)
        if document is None or document.owner_id != owner_id:
            return None
        return document

    @abstractmethod
    async def list_unfinished(self) -> list[Document]:
        """Every document, of any owner, that is still pending or processing."""
        pass
