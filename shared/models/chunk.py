from pydantic import BaseModel


class TextChunk(BaseModel):
    """A window of text produced by the chunker, with its span in the source text."""

    text: str
    start_index: int
    end_index: int


class PageText(BaseModel):
    """An approximate page slice of the extracted text (1-based page number)."""

    page_number: int
    text: str


class PageChunk(BaseModel):
    """A chunk ready for embedding, tagged with the page it came from."""

    text: str
    page_number: int


class ExtractedText(BaseModel):
    """Output of the text extractor."""

    text: str
    page_count: int
    info: dict = {}
