"""PDF text extraction with pdfplumber."""

import asyncio
import io

import pdfplumber

from shared.exceptions import ExtractionError
from shared.helper.HelperConfig import HelperConfig
from shared.models.chunk import ExtractedText


def _stringify_info(info: dict) -> dict[str, str]:
    """PDF info dictionaries may hold bytes or indirect objects; keep printable strings only."""
    result: dict[str, str] = {}
    for key, value in (info or {}).items():
        if isinstance(value, bytes):
            value = value.decode("utf-8", errors="ignore")
        if isinstance(value, (str, int, float)):
            result[str(key)] = str(value)
    return result


class TextExtractor:
    """Extracts the full text layer and the page count of a PDF buffer.

    No OCR is attempted: a PDF without a text layer is rejected with
    ExtractionError.
    """

    PAGE_SEPARATOR = "\n\n"

    def __init__(self, helper_config: HelperConfig) -> None:
        self.logging = helper_config.get_logger()

    def extract(self, data: bytes) -> ExtractedText:
        """Synchronously parse a PDF buffer.

        Args:
            data (bytes): Raw PDF content.

        Returns:
            ExtractedText: Full text, page count and document info.

        Raises:
            ExtractionError: If the buffer is empty, unreadable, or has no text.
        """
        if not data:
            raise ExtractionError("Empty PDF buffer.")
        try:
            with pdfplumber.open(io.BytesIO(data)) as pdf:
                page_count = len(pdf.pages)
                texts = [page.extract_text() or "" for page in pdf.pages]
                info = _stringify_info(pdf.metadata)
        except Exception as e:
            # pdfminer raises a variety of parser errors for broken files
            raise ExtractionError(f"Failed to parse PDF: {e}") from e

        text = self.PAGE_SEPARATOR.join(texts)
        if not text.strip():
            raise ExtractionError("PDF contains no extractable text layer.")

        self.logging.debug("Extracted %d characters from %d pages", len(text), page_count)
        return ExtractedText(text=text, page_count=page_count, info=info)

    async def do_extract(self, data: bytes) -> ExtractedText:
        """Parse a PDF buffer in a worker thread so the event loop stays responsive."""
        return await asyncio.to_thread(self.extract, data)
