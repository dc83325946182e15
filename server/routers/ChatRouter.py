from fastapi import APIRouter, Depends, Query, Request

from server.dependencies.auth import get_owner_id, verify_api_key
from server.models.requests import ChatMessageRequest
from server.models.responses import ChatSessionSummary, MessageResponse
from shared.models.chat import ChatReply, ChatSession

router = APIRouter(prefix="/chat", tags=["chat"], dependencies=[Depends(verify_api_key)])


@router.post("/{pdf_id}")
async def send_message(
    request: Request,
    pdf_id: str,
    body: ChatMessageRequest,
    owner_id: str = Depends(get_owner_id),
) -> ChatReply:
    """Ask a question about a processed PDF.

    Args:
        request (Request): FastAPI request (provides app.state.chat_service).
        pdf_id (str): Document to ask about.
        body (ChatMessageRequest): Question and optional session id to continue.
        owner_id (str): Asking user.

    Returns:
        ChatReply: Answer, page citations, session id and cache flag.
    """
    chat_service = request.app.state.chat_service
    return await chat_service.send_message(owner_id, pdf_id, body.message, session_id=body.session_id)


@router.get("/history")
async def get_history(
    request: Request,
    limit: int = Query(20, ge=1, le=100),
    owner_id: str = Depends(get_owner_id),
) -> list[ChatSessionSummary]:
    sessions = await request.app.state.chat_service.get_history(owner_id, limit=limit)
    return [ChatSessionSummary.from_session(session) for session in sessions]


@router.get("/session/{session_id}")
async def get_session(request: Request, session_id: str, owner_id: str = Depends(get_owner_id)) -> ChatSession:
    return await request.app.state.chat_service.get_session(owner_id, session_id)


@router.get("/pdf/{pdf_id}/sessions")
async def get_pdf_sessions(
    request: Request,
    pdf_id: str,
    owner_id: str = Depends(get_owner_id),
) -> list[ChatSessionSummary]:
    sessions = await request.app.state.chat_service.list_document_sessions(owner_id, pdf_id)
    return [ChatSessionSummary.from_session(session) for session in sessions]


@router.delete("/session/{session_id}")
async def delete_session(request: Request, session_id: str, owner_id: str = Depends(get_owner_id)) -> MessageResponse:
    await request.app.state.chat_service.delete_session(owner_id, session_id)
    return MessageResponse(message="Chat session deleted successfully")
