from pydantic import BaseModel


class ChatMessageRequest(BaseModel):
    message: str
    session_id: str | None = None
