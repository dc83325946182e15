"""Models for vectors stored in and returned from a RAG backend."""

from pydantic import BaseModel


class VectorPoint(BaseModel):
    """Metadata payload stored alongside each chunk vector.

    pdf_id and owner_id are mandatory. Every query is scoped by pdf_id so a
    document's chunks can never leak into another document's answers.

    Attributes:
        pdf_id:       Id of the owning document.
        owner_id:     Id of the document's owner.
        text:         Full chunk text, used to build prompts.
        page_number:  Approximate 1-based page the chunk was taken from.
        chunk_index:  Zero-based position of the chunk within the document.
        created_at:   ISO-8601 time the vector was written.
    """

    pdf_id: str
    owner_id: str
    text: str
    page_number: int = 0
    chunk_index: int
    created_at: str


class VectorRecord(BaseModel):
    """A point to upsert: generated id, embedding values and metadata."""

    id: str
    vector: list[float]
    payload: VectorPoint


class VectorMatch(BaseModel):
    """A similarity query hit."""

    id: str
    score: float
    pdf_id: str
    text: str
    page_number: int
    chunk_index: int
