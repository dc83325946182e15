"""Text cleaning, page splitting and overlapping chunking for extracted PDF text."""

import math
import re
from collections.abc import Iterator

from shared.helper.HelperConfig import HelperConfig
from shared.models.chunk import PageChunk, PageText, TextChunk

_WHITESPACE = re.compile(r"\s+")


def clean_text(text: str) -> str:
    """Collapse every whitespace run (newlines included) into a single space and trim."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text).strip()


def split_pages(text: str, num_pages: int) -> list[PageText]:
    """Partition text into num_pages contiguous slices of roughly equal length.

    This is an approximation of the real page layout, which is lost once the
    text has been flattened. Slices that are empty after trimming are dropped,
    so fewer than num_pages entries may come back.

    Args:
        text (str): Cleaned document text.
        num_pages (int): Page count reported by the extractor.

    Returns:
        list[PageText]: Non-empty slices with their 1-based page number.
    """
    if not text:
        return []
    num_pages = max(num_pages, 1)
    slice_len = math.ceil(len(text) / num_pages)
    pages: list[PageText] = []
    for i in range(num_pages):
        page = text[i * slice_len:(i + 1) * slice_len].strip()
        if page:
            pages.append(PageText(page_number=i + 1, text=page))
    return pages


class ChunkSequence:
    """Lazy, restartable sequence of overlapping windows over a text.

    Windows start at 0 and advance by size - overlap characters. The last
    window may be shorter than size. Iteration stops at the first window that
    reaches the end of the text, so no window lies entirely inside its
    predecessor.
    """

    def __init__(self, text: str, size: int = 1000, overlap: int = 200) -> None:
        if size <= 0:
            raise ValueError(f"Chunk size must be positive, got {size}.")
        if overlap < 0 or overlap >= size:
            raise ValueError(f"Chunk overlap must be in [0, {size}), got {overlap}.")
        self.text = text or ""
        self.size = size
        self.overlap = overlap

    def __iter__(self) -> Iterator[TextChunk]:
        length = len(self.text)
        step = self.size - self.overlap
        start = 0
        while start < length:
            end = min(start + self.size, length)
            yield TextChunk(text=self.text[start:end], start_index=start, end_index=end)
            if end >= length:
                break
            start += step

    def __len__(self) -> int:
        length = len(self.text)
        if length == 0:
            return 0
        if length <= self.size:
            return 1
        return math.ceil((length - self.size) / (self.size - self.overlap)) + 1


def chunk_text(text: str, size: int = 1000, overlap: int = 200) -> ChunkSequence:
    """Return the overlapping windows of text.

    Raises:
        ValueError: If size is not positive or overlap is not in [0, size).
    """
    return ChunkSequence(text, size=size, overlap=overlap)


class Chunker:
    """Turns page slices into the flat, ordered list of chunks to embed."""

    def __init__(self, helper_config: HelperConfig) -> None:
        self.logging = helper_config.get_logger()
        self.chunk_size = helper_config.get_int_val("CHUNK_SIZE", default=1000, minimum=1)
        self.chunk_overlap = helper_config.get_int_val("CHUNK_OVERLAP", default=200, minimum=0)
        # fail at startup rather than on the first upload
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"CHUNK_OVERLAP ({self.chunk_overlap}) must be smaller than CHUNK_SIZE ({self.chunk_size})."
            )

    def chunk(self, text: str) -> ChunkSequence:
        return chunk_text(text, size=self.chunk_size, overlap=self.chunk_overlap)

    def chunk_pages(self, pages: list[PageText]) -> list[PageChunk]:
        """Chunk every page and flatten the result, keeping page order.

        Args:
            pages (list[PageText]): Output of split_pages.

        Returns:
            list[PageChunk]: Chunk texts tagged with their page number.
        """
        work: list[PageChunk] = []
        for page in pages:
            for chunk in self.chunk(page.text):
                work.append(PageChunk(text=chunk.text, page_number=page.page_number))
        self.logging.debug("Split %d pages into %d chunks", len(pages), len(work))
        return work
