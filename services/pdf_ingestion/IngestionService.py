"""Ingestion pipeline.

Turns an uploaded PDF into queryable vectors: extract text, chunk it per
page, embed the chunks in small batches, upsert the vectors and record the
result on the Document. Runs as the processor of the ingestion JobQueue, so
concurrency exists across documents only; one document's stages run
sequentially.
"""

import asyncio
import uuid

from pydantic import BaseModel

from services.pdf_ingestion.Chunker import Chunker, clean_text, split_pages
from services.pdf_ingestion.JobQueue import JobQueue, ProgressReporter
from services.pdf_ingestion.TextExtractor import TextExtractor
from shared.clients.embed.EmbedClientInterface import EmbedClientInterface
from shared.clients.rag.RAGClientInterface import RAGClientInterface
from shared.clients.rag.models.VectorPoint import VectorPoint, VectorRecord
from shared.exceptions import ExtractionError
from shared.helper.HelperConfig import HelperConfig
from shared.models.chunk import PageChunk
from shared.models.document import ProcessingStatus, utcnow
from shared.models.job import Job
from shared.repositories.DocumentRepositoryInterface import DocumentRepositoryInterface

JOB_NAME = "process-pdf"


class IngestionPayload(BaseModel):
    """What a queued ingestion job carries."""

    pdf_id: str
    owner_id: str
    filename: str
    pdf_bytes: bytes


class IngestionResult(BaseModel):
    pdf_id: str
    page_count: int = 0
    chunk_count: int = 0
    vector_count: int = 0
    skipped: bool = False


def make_vector_id(pdf_id: str, chunk_index: int) -> str:
    """Deterministic UUID5 vector id, so a retried attempt overwrites instead of duplicating."""
    return str(uuid.uuid5(uuid.NAMESPACE_OID, f"pdf:{pdf_id}:{chunk_index}"))


class IngestionService:
    """Processor for ingestion jobs plus the hooks deciding the user-visible status."""

    def __init__(
        self,
        helper_config: HelperConfig,
        documents: DocumentRepositoryInterface,
        extractor: TextExtractor,
        chunker: Chunker,
        embed_client: EmbedClientInterface,
        rag_client: RAGClientInterface,
    ) -> None:
        self.logging = helper_config.get_logger()
        self._documents = documents
        self._extractor = extractor
        self._chunker = chunker
        self._embed_client = embed_client
        self._rag_client = rag_client
        self.embed_batch_size = helper_config.get_int_val("EMBED_BATCH_SIZE", default=10, minimum=1)
        self.embed_batch_delay = helper_config.get_number_val("EMBED_BATCH_DELAY", default=0.1)

    def register(self, queue: JobQueue) -> None:
        """Attach the processor and the status hooks to a queue."""
        queue.process(self.process)
        queue.on_active(self.handle_active)
        queue.on_failed(self.handle_failed)

    ##########################################
    ############### PROCESSOR ################
    ##########################################

    async def process(self, job: Job, report_progress: ProgressReporter) -> dict:
        """Run one ingestion attempt.

        Args:
            job (Job): The queued job; payload is an IngestionPayload.
            report_progress (ProgressReporter): Coroutine recording 0..100 progress.

        Returns:
            dict: Serialized IngestionResult.

        Raises:
            ExtractionError, EmbeddingError, VectorIndexError: Propagated so the
                queue can apply its retry policy.
        """
        payload = IngestionPayload.model_validate(job.payload)
        pdf_id = payload.pdf_id

        document = await self._documents.update(
            pdf_id,
            processing_status=ProcessingStatus.PROCESSING,
            embedding_status=ProcessingStatus.PROCESSING,
        )
        if document is None:
            self.logging.warning("Document %s was deleted before processing, skipping job.", pdf_id)
            return IngestionResult(pdf_id=pdf_id, skipped=True).model_dump()

        self.logging.info("Processing PDF %s (%s), attempt %d", pdf_id, payload.filename, job.attempts_made)
        await report_progress(10)

        # extract
        extracted = await self._extractor.do_extract(payload.pdf_bytes)
        await self._documents.update(pdf_id, page_count=extracted.page_count, metadata=extracted.info)
        await report_progress(30)

        # chunk
        pages = split_pages(clean_text(extracted.text), extracted.page_count)
        work = self._chunker.chunk_pages(pages)
        if not work:
            raise ExtractionError("PDF text produced no chunks.")
        self.logging.info("PDF %s: %d pages, %d chunks", pdf_id, extracted.page_count, len(work))
        await report_progress(40)

        # vectors left behind by an earlier failed attempt
        if job.attempts_made > 1:
            await self._rag_client.do_delete_by_document(pdf_id)

        # embed
        records = await self._embed_chunks(work, payload, report_progress)
        await report_progress(80)

        # store
        vector_ids = await self._rag_client.do_upsert(records)
        await report_progress(90)

        # finalize
        updated = await self._documents.update(
            pdf_id,
            processing_status=ProcessingStatus.COMPLETED,
            embedding_status=ProcessingStatus.COMPLETED,
            processing_error=None,
            vector_ids=vector_ids,
        )
        if updated is None:
            self.logging.warning("Document %s was deleted during processing, removing its vectors.", pdf_id)
            await self._rag_client.do_delete_by_document(pdf_id)
            return IngestionResult(pdf_id=pdf_id, skipped=True).model_dump()

        await report_progress(100)
        self.logging.info("PDF %s processed: %d vectors stored", pdf_id, len(vector_ids), color="green")
        return IngestionResult(
            pdf_id=pdf_id,
            page_count=extracted.page_count,
            chunk_count=len(work),
            vector_count=len(vector_ids),
        ).model_dump()

    async def _embed_chunks(
        self,
        work: list[PageChunk],
        payload: IngestionPayload,
        report_progress: ProgressReporter,
    ) -> list[VectorRecord]:
        """Embed chunks in sequential sub-batches, reporting progress from 40 to 80."""
        records: list[VectorRecord] = []
        total = len(work)
        created_at = utcnow().isoformat()

        for start in range(0, total, self.embed_batch_size):
            batch = work[start:start + self.embed_batch_size]
            vectors = await self._embed_client.do_embed_batch([chunk.text for chunk in batch])
            for offset, (chunk, vector) in enumerate(zip(batch, vectors)):
                chunk_index = start + offset
                records.append(
                    VectorRecord(
                        id=make_vector_id(payload.pdf_id, chunk_index),
                        vector=vector,
                        payload=VectorPoint(
                            pdf_id=payload.pdf_id,
                            owner_id=payload.owner_id,
                            text=chunk.text,
                            page_number=chunk.page_number,
                            chunk_index=chunk_index,
                            created_at=created_at,
                        ),
                    )
                )

            done = min(start + self.embed_batch_size, total)
            await report_progress(40 + (done * 40) // total)
            # stay under provider rate limits
            if done < total and self.embed_batch_delay > 0:
                await asyncio.sleep(self.embed_batch_delay)

        return records

    ##########################################
    ################ HOOKS ###################
    ##########################################

    async def handle_active(self, job: Job) -> None:
        if job.attempts_made > 1:
            self.logging.info(
                "Retrying job %s (attempt %d/%d)", job.id, job.attempts_made, job.options.max_attempts
            )

    async def handle_failed(self, job: Job, error: Exception, will_retry: bool) -> None:
        """Record a failed attempt on the Document.

        While attempts remain the Document stays processing and only the error
        is recorded. After the last attempt it becomes failed.
        """
        if will_retry:
            fields = {
                "processing_status": ProcessingStatus.PROCESSING,
                "embedding_status": ProcessingStatus.PROCESSING,
                "processing_error": f"Attempt {job.attempts_made}/{job.options.max_attempts} failed: {error}",
            }
        else:
            fields = {
                "processing_status": ProcessingStatus.FAILED,
                "embedding_status": ProcessingStatus.FAILED,
                "processing_error": f"Failed after {job.attempts_made} attempts: {error}",
            }
        if await self._documents.update(job.id, **fields) is None:
            self.logging.debug("Document %s no longer exists, failure not recorded.", job.id)
