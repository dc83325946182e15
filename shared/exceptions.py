"""Error taxonomy shared by the ingestion pipeline, the chat path and the API layer."""


class PipelineError(Exception):
    """Base class for every error raised by the PDF chat backend."""


class ExtractionError(PipelineError):
    """The uploaded buffer is not a readable PDF or carries no text layer."""


class EmbeddingError(PipelineError):
    """The embedding provider rejected or failed a request."""


class VectorIndexError(PipelineError):
    """A write, query or delete against the vector index failed."""


class LLMError(PipelineError):
    """The language model call failed or returned an unusable reply."""


class NotReadyError(PipelineError):
    """Chat was attempted on a document whose ingestion has not completed."""

    def __init__(self, document_id: str, processing_status: str, embedding_status: str) -> None:
        super().__init__(f"Document {document_id} is still being processed. Please wait.")
        self.document_id = document_id
        self.processing_status = processing_status
        self.embedding_status = embedding_status


class NotFoundError(PipelineError):
    """A document or chat session does not exist or belongs to someone else."""


class ValidationError(PipelineError):
    """Malformed request input (message length, id format, file type)."""


class RetryNotAllowedError(PipelineError):
    """An explicit retry was requested for a document that has not failed."""


class DuplicateJobError(PipelineError):
    """A job with the same id is already waiting, delayed or running."""


class JobCancelledError(PipelineError):
    """A running job was cancelled before it finished, e.g. by a shutdown timeout."""
