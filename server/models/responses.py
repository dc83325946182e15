from datetime import datetime

from pydantic import BaseModel

from shared.models.chat import ChatSession


class MessageResponse(BaseModel):
    message: str


class ChatSessionSummary(BaseModel):
    """Session listing entry without the full message history."""

    session_id: str
    document_id: str
    message_count: int
    last_message: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_session(cls, session: ChatSession) -> "ChatSessionSummary":
        return cls(
            session_id=session.session_id,
            document_id=session.document_id,
            message_count=len(session.messages),
            last_message=session.messages[-1].content if session.messages else None,
            created_at=session.created_at,
            updated_at=session.updated_at,
        )


class RetryFailedResponse(BaseModel):
    retried: list[str]
    total: int


class CleanupResponse(BaseModel):
    removed: int


class HealthResponse(BaseModel):
    status: str
    version: str
