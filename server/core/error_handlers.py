"""Maps the backend's error taxonomy onto HTTP responses."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from shared.exceptions import (
    DuplicateJobError,
    EmbeddingError,
    ExtractionError,
    LLMError,
    NotFoundError,
    NotReadyError,
    PipelineError,
    RetryNotAllowedError,
    ValidationError,
    VectorIndexError,
)

# most specific first
STATUS_CODES: list[tuple[type[PipelineError], int]] = [
    (NotFoundError, 404),
    (NotReadyError, 409),
    (RetryNotAllowedError, 409),
    (DuplicateJobError, 409),
    (ValidationError, 422),
    (ExtractionError, 422),
    (EmbeddingError, 502),
    (VectorIndexError, 502),
    (LLMError, 502),
]


def status_code_for(error: PipelineError) -> int:
    for error_class, status_code in STATUS_CODES:
        if isinstance(error, error_class):
            return status_code
    return 500


async def handle_pipeline_error(request: Request, error: PipelineError) -> JSONResponse:
    status_code = status_code_for(error)
    content: dict = {"detail": str(error)}
    if isinstance(error, NotReadyError):
        content["processing_status"] = error.processing_status
        content["embedding_status"] = error.embedding_status

    logger = request.app.state.logging
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, error)
    else:
        logger.info("%s %s rejected (%d): %s", request.method, request.url.path, status_code, error)
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PipelineError, handle_pipeline_error)
