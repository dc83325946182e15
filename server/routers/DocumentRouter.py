from fastapi import APIRouter, Depends, File, Query, Request, UploadFile

from server.dependencies.auth import get_owner_id, verify_api_key
from server.models.responses import MessageResponse
from shared.models.document import DocumentPage, DocumentStatus, DocumentSummary, ProcessingStatus

router = APIRouter(prefix="/pdfs", tags=["pdfs"], dependencies=[Depends(verify_api_key)])


@router.post("", status_code=201)
async def upload_pdf(
    request: Request,
    file: UploadFile = File(...),
    owner_id: str = Depends(get_owner_id),
) -> DocumentSummary:
    """Store an uploaded PDF and queue it for processing.

    Args:
        request (Request): FastAPI request (provides app.state.document_service).
        file (UploadFile): Multipart file field named "file".
        owner_id (str): Uploading user.

    Returns:
        DocumentSummary: The new document in pending state.
    """
    data = await file.read()
    document_service = request.app.state.document_service
    return await document_service.upload(owner_id, file.filename or "", data)


@router.get("")
async def list_pdfs(
    request: Request,
    status: ProcessingStatus | None = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    owner_id: str = Depends(get_owner_id),
) -> DocumentPage:
    document_service = request.app.state.document_service
    return await document_service.list_documents(owner_id, status=status, page=page, limit=limit)


@router.get("/{pdf_id}")
async def get_pdf(request: Request, pdf_id: str, owner_id: str = Depends(get_owner_id)) -> DocumentSummary:
    return await request.app.state.document_service.get_document(owner_id, pdf_id)


@router.get("/{pdf_id}/status")
async def get_pdf_status(request: Request, pdf_id: str, owner_id: str = Depends(get_owner_id)) -> DocumentStatus:
    """Processing and embedding status plus live job progress."""
    return await request.app.state.document_service.get_status(owner_id, pdf_id)


@router.delete("/{pdf_id}")
async def delete_pdf(request: Request, pdf_id: str, owner_id: str = Depends(get_owner_id)) -> MessageResponse:
    await request.app.state.document_service.delete_document(owner_id, pdf_id)
    return MessageResponse(message="PDF deleted successfully")


@router.post("/{pdf_id}/retry")
async def retry_pdf(request: Request, pdf_id: str, owner_id: str = Depends(get_owner_id)) -> DocumentSummary:
    """Re-queue a document whose processing failed."""
    return await request.app.state.document_service.retry(owner_id, pdf_id)
