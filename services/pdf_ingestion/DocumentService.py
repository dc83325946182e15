"""Document operations: upload, listing, status, deletion and explicit retry."""

import math
import os
import re
import uuid

from services.pdf_ingestion.IngestionService import JOB_NAME, IngestionPayload
from services.pdf_ingestion.JobQueue import JobQueue
from shared.cache.ResponseCache import ResponseCache
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.storage.StorageClientInterface import StorageClientInterface
from shared.exceptions import DuplicateJobError, NotFoundError, RetryNotAllowedError, ValidationError
from shared.helper.HelperConfig import HelperConfig
from shared.models.document import (
    Document,
    DocumentPage,
    DocumentStatus,
    DocumentSummary,
    JobProgress,
    ProcessingStatus,
)
from shared.models.job import JobStatus, QueueStats
from shared.repositories.ChatRepositoryInterface import ChatRepositoryInterface
from shared.repositories.DocumentRepositoryInterface import DocumentRepositoryInterface

PDF_MAGIC = b"%PDF"
_UNSAFE_FILENAME_CHARS = re.compile(r"[^\w.\- ]+")


def sanitize_filename(name: str) -> str:
    """Strip directories and unusual characters from a client supplied file name."""
    base = os.path.basename((name or "").replace("\\", "/")).strip()
    return _UNSAFE_FILENAME_CHARS.sub("_", base) or "document.pdf"


class DocumentService:
    """Entry points that create, inspect and remove Documents.

    Uploading stores the original file, creates a pending Document and
    enqueues its ingestion job under the document id.
    """

    def __init__(
        self,
        helper_config: HelperConfig,
        documents: DocumentRepositoryInterface,
        chats: ChatRepositoryInterface,
        storage: StorageClientInterface,
        rag_client: RAGClientInterface,
        cache: ResponseCache,
        queue: JobQueue,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._documents = documents
        self._chats = chats
        self._storage = storage
        self._rag_client = rag_client
        self._cache = cache
        self._queue = queue
        self.max_file_size = helper_config.get_int_val("MAX_FILE_SIZE", default=10485760, minimum=1)

    ##########################################
    ################ UPLOAD ##################
    ##########################################

    def _validate_upload(self, filename: str, data: bytes) -> None:
        if not data:
            raise ValidationError("No file uploaded.")
        if not filename.lower().endswith(".pdf") or not data.startswith(PDF_MAGIC):
            raise ValidationError("Invalid file type. Only PDF files are allowed.")
        if len(data) > self.max_file_size:
            raise ValidationError(f"File too large. Maximum size is {self.max_file_size} bytes.")

    async def upload(self, owner_id: str, filename: str, data: bytes) -> DocumentSummary:
        """Store a PDF and queue it for ingestion.

        Args:
            owner_id (str): Uploading user.
            filename (str): File name as sent by the client.
            data (bytes): Raw PDF content.

        Returns:
            DocumentSummary: The new Document, still pending.

        Raises:
            ValidationError: If the upload is empty, not a PDF, or too large.
        """
        original_name = filename or ""
        self._validate_upload(original_name, data)

        blob = await self._storage.do_store(data, original_name, owner_id)
        document = Document(
            id=str(uuid.uuid4()),
            owner_id=owner_id,
            filename=sanitize_filename(original_name),
            original_name=original_name,
            file_size=len(data),
            storage_url=blob.url,
            storage_public_id=blob.public_id,
        )
        await self._documents.create(document)
        await self._enqueue(document, data)

        self.logging.info("Uploaded PDF %s (%s, %d bytes) for %s", document.id, document.filename, len(data), owner_id)
        return DocumentSummary.from_document(document)

    async def _enqueue(self, document: Document, data: bytes) -> None:
        payload = IngestionPayload(
            pdf_id=document.id,
            owner_id=document.owner_id,
            filename=document.filename,
            pdf_bytes=data,
        )
        await self._queue.enqueue(document.id, JOB_NAME, payload)

    ##########################################
    ################ READS ###################
    ##########################################

    async def _get_owned(self, owner_id: str, document_id: str) -> Document:
        document = await self._documents.get_for_owner(document_id, owner_id)
        if document is None:
            raise NotFoundError(f"PDF {document_id} not found.")
        return document

    async def list_documents(
        self,
        owner_id: str,
        status: ProcessingStatus | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> DocumentPage:
        if page < 1 or limit < 1:
            raise ValidationError("page and limit must be positive.")
        documents, total = await self._documents.list_by_owner(
            owner_id, status=status, skip=(page - 1) * limit, limit=limit
        )
        return DocumentPage(
            documents=[DocumentSummary.from_document(doc) for doc in documents],
            total=total,
            current_page=page,
            total_pages=math.ceil(total / limit),
        )

    async def get_document(self, owner_id: str, document_id: str) -> DocumentSummary:
        return DocumentSummary.from_document(await self._get_owned(owner_id, document_id))

    async def get_status(self, owner_id: str, document_id: str) -> DocumentStatus:
        document = await self._get_owned(owner_id, document_id)
        job = await self._queue.get_status(document_id)
        return DocumentStatus(
            processing_status=document.processing_status,
            embedding_status=document.embedding_status,
            is_ready=document.is_ready(),
            page_count=document.page_count,
            processing_error=document.processing_error,
            job_status=JobProgress(state=job.state.value, progress=job.progress) if job else None,
        )

    ##########################################
    ################ DELETE ##################
    ##########################################

    async def delete_document(self, owner_id: str, document_id: str) -> None:
        """Remove a Document and everything derived from it.

        Vectors are removed by id and by document filter, so chunks written
        by a failed or still running attempt go as well. A job still running
        for the document finds the record gone and discards its result.
        """
        document = await self._get_owned(owner_id, document_id)

        if document.storage_public_id:
            await self._storage.do_delete(document.storage_public_id)
        if document.vector_ids:
            await self._rag_client.do_delete_by_ids(document.vector_ids)
        await self._rag_client.do_delete_by_document(document_id)
        await self._cache.delete_by_pattern(self._cache.build_document_prefix(document_id))
        removed_sessions = await self._chats.delete_by_document(document_id)
        await self._documents.delete(document_id)

        self.logging.info("Deleted PDF %s (%d chat sessions)", document_id, removed_sessions)

    ##########################################
    ################ RETRY ###################
    ##########################################

    async def retry(self, owner_id: str, document_id: str) -> DocumentSummary:
        """Re-run ingestion for a failed Document from a fresh attempt cycle.

        Raises:
            NotFoundError: If the document or its stored file is missing.
            RetryNotAllowedError: If the document is not in failed state.
            DuplicateJobError: If an ingestion job for it is still queued or running.
        """
        document = await self._get_owned(owner_id, document_id)
        if document.processing_status != ProcessingStatus.FAILED:
            raise RetryNotAllowedError("Can only retry failed PDFs.")

        job = await self._queue.get_status(document_id)
        if job is not None and not job.state.is_terminal:
            raise DuplicateJobError(f"PDF {document_id} is already queued.")

        data = await self._load_upload(document)
        updated = await self._reset(document_id)
        await self._enqueue(updated, data)
        self.logging.info("Re-queued failed PDF %s", document_id)
        return DocumentSummary.from_document(updated)

    async def _load_upload(self, document: Document) -> bytes:
        if not document.storage_public_id:
            raise NotFoundError(f"Stored file for PDF {document.id} not found.")
        try:
            return await self._storage.do_fetch(document.storage_public_id)
        except FileNotFoundError as e:
            raise NotFoundError(f"Stored file for PDF {document.id} not found.") from e

    async def _reset(self, document_id: str) -> Document:
        updated = await self._documents.update(
            document_id,
            processing_status=ProcessingStatus.PENDING,
            embedding_status=ProcessingStatus.PENDING,
            processing_error=None,
        )
        if updated is None:
            raise NotFoundError(f"PDF {document_id} not found.")
        return updated

    ##########################################
    ############### QUEUE ADMIN ##############
    ##########################################

    async def get_queue_stats(self) -> QueueStats:
        return await self._queue.get_stats()

    async def retry_failed_jobs(self) -> list[str]:
        """Re-run every dead-lettered ingestion job whose Document still exists and is failed."""
        retried: list[str] = []
        for status in await self._queue.get_failed():
            document = await self._documents.get(status.id)
            if document is None or document.processing_status != ProcessingStatus.FAILED:
                continue

            # a job without payload starts over from the stored file
            job = self._queue.get_job(status.id)
            data = None
            if job is None or job.payload is None:
                try:
                    data = await self._load_upload(document)
                except NotFoundError as e:
                    self.logging.warning("Skipping failed job %s: %s", status.id, e)
                    continue

            updated = await self._reset(status.id)
            if data is None:
                await self._queue.retry_job(status.id)
            else:
                await self._enqueue(updated, data)
            retried.append(status.id)
        self.logging.info("Retried %d failed ingestion jobs", len(retried))
        return retried

    ##########################################
    ############### RECOVERY #################
    ##########################################

    async def recover_unfinished(self) -> list[str]:
        """Re-queue Documents a previous process left pending or processing.

        Queued jobs live only in memory, so after a restart nothing would pick
        these Documents up again. Called once on startup, after the queue was
        started. Each one restarts from its stored file with a fresh attempt
        cycle; one whose file is gone is marked failed instead.

        Returns:
            list[str]: Ids of the re-queued Documents.
        """
        recovered: list[str] = []
        for document in await self._documents.list_unfinished():
            job = await self._queue.get_status(document.id)
            if job is not None and not job.state.is_terminal:
                continue
            try:
                data = await self._load_upload(document)
                updated = await self._reset(document.id)
            except NotFoundError as e:
                self.logging.error("Cannot recover PDF %s: %s", document.id, e)
                await self._documents.update(
                    document.id,
                    processing_status=ProcessingStatus.FAILED,
                    embedding_status=ProcessingStatus.FAILED,
                    processing_error=f"Recovery after restart failed: {e}",
                )
                continue
            await self._enqueue(updated, data)
            recovered.append(document.id)

        if recovered:
            self.logging.info("Re-queued %d unfinished PDFs after restart", len(recovered), color="yellow")
        return recovered

    async def cleanup_failed_jobs(self) -> int:
        return await self._queue.cleanup_failed()

    async def get_failed_jobs(self) -> list[JobStatus]:
        return await self._queue.get_failed()
