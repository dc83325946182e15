"""Pydantic models for uploaded PDF documents."""

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProcessingStatus(str, Enum):
    """Lifecycle of a document's processing and embedding."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Document(BaseModel):
    """A user uploaded PDF and the state of its ingestion.

    The record is created by the document service at upload time and afterwards
    mutated only by the ingestion pipeline (status, page count, vector ids).

    Attributes:
        id:                 Opaque document id, also used as ingestion job id.
        owner_id:           Id of the uploading user; every read is scoped by it.
        filename:           Sanitised display name.
        original_name:      File name as sent by the client.
        file_size:          Size of the raw upload in bytes.
        storage_url:        URL of the stored blob.
        storage_public_id:  Id of the blob in the storage backend.
        page_count:         Number of pages, known once extraction succeeded.
        processing_status:  Overall processing state.
        embedding_status:   Embedding/vector state.
        processing_error:   Last error message, set when processing failed.
        vector_ids:         Ids of the vectors written for this document, in chunk order.
        metadata:           PDF info dictionary (Title, Author, ...) read during extraction.
    """

    id: str
    owner_id: str
    filename: str
    original_name: str
    file_size: int
    storage_url: str | None = None
    storage_public_id: str | None = None
    page_count: int | None = None
    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    embedding_status: ProcessingStatus = ProcessingStatus.PENDING
    processing_error: str | None = None
    vector_ids: list[str] = []
    metadata: dict[str, str] = {}
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    def is_ready(self) -> bool:
        """A document may be chatted with only once both stages completed."""
        return (
            self.processing_status == ProcessingStatus.COMPLETED
            and self.embedding_status == ProcessingStatus.COMPLETED
        )

    def is_unfinished(self) -> bool:
        return self.processing_status in (ProcessingStatus.PENDING, ProcessingStatus.PROCESSING)


class DocumentSummary(BaseModel):
    """Public view of a document, without vector ids."""

    id: str
    filename: str
    original_name: str
    storage_url: str | None = None
    file_size: int
    page_count: int | None = None
    processing_status: ProcessingStatus
    embedding_status: ProcessingStatus
    processing_error: str | None = None
    metadata: dict[str, str] = {}
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_document(cls, document: Document) -> "DocumentSummary":
        return cls(**document.model_dump(exclude={"vector_ids", "owner_id", "storage_public_id"}))


class DocumentPage(BaseModel):
    """One page of a paginated document listing."""

    documents: list[DocumentSummary]
    total: int
    current_page: int
    total_pages: int


class JobProgress(BaseModel):
    state: str
    progress: int


class DocumentStatus(BaseModel):
    """Status snapshot returned while a document is being ingested."""

    processing_status: ProcessingStatus
    embedding_status: ProcessingStatus
    is_ready: bool
    page_count: int | None = None
    processing_error: str | None = None
    job_status: JobProgress | None = None
