from fastapi import APIRouter, Depends, Request

from server.dependencies.auth import verify_api_key
from server.models.responses import CleanupResponse, RetryFailedResponse
from shared.models.job import JobStatus, QueueStats

router = APIRouter(prefix="/admin/queue", tags=["admin"], dependencies=[Depends(verify_api_key)])


@router.get("/stats")
async def get_queue_stats(request: Request) -> QueueStats:
    return await request.app.state.document_service.get_queue_stats()


@router.get("/failed")
async def get_failed_jobs(request: Request) -> list[JobStatus]:
    """Dead-lettered ingestion jobs, i.e. jobs that used up all attempts."""
    return await request.app.state.document_service.get_failed_jobs()


@router.post("/retry-failed")
async def retry_failed_jobs(request: Request) -> RetryFailedResponse:
    retried = await request.app.state.document_service.retry_failed_jobs()
    return RetryFailedResponse(retried=retried, total=len(retried))


@router.post("/cleanup-failed")
async def cleanup_failed_jobs(request: Request) -> CleanupResponse:
    removed = await request.app.state.document_service.cleanup_failed_jobs()
    return CleanupResponse(removed=removed)
