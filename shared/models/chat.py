"""Pydantic models for chat sessions and answers."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

from shared.models.document import utcnow


class ContextCitation(BaseModel):
    """A retrieved chunk as shown to the caller: truncated preview, page and score."""

    page_number: int
    content: str
    score: float


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str
    timestamp: datetime = Field(default_factory=utcnow)
    context: list[ContextCitation] = []


class ChatSession(BaseModel):
    """An ordered conversation of one owner about one document.

    Messages are only ever appended. Several sessions may exist for the same
    (owner, document) pair.
    """

    session_id: str
    owner_id: str
    document_id: str
    messages: list[ChatMessage] = []
    is_active: bool = True
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class ChatAnswer(BaseModel):
    """The cacheable part of a reply."""

    answer: str
    context: list[ContextCitation] = []


class ChatReply(ChatAnswer):
    """Reply returned to the caller of send_message."""

    session_id: str
    cached: bool = False
