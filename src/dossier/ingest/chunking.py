"""Boundary-aware text chunking."""

import logging
import math

from pydantic import BaseModel

from dossier.ingest.extractor import CHARS_PER_PAGE
from dossier.models import Chunk, Document

logger = logging.getLogger(__name__)

SENTENCE_TERMINATORS = (". ", "! ", "? ", "\n")


class TextSegment(BaseModel):
    """A stripped slice of the source text and its offsets."""
    text: str
    start: int
    end: int


class TextChunker:
    """Split text into overlapping windows that prefer sentence boundaries."""

    def __init__(self, chunk_size: int = 1000, overlap: int = 200):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if overlap < 0 or overlap >= chunk_size:
            raise ValueError("Overlap must be less than chunk_size")
        self.chunk_size = chunk_size
        self.overlap = overlap

    def _find_cut(self, window: str) -> int:
        """Return the cut offset inside a full window."""
        midpoint = len(window) // 2

        sentence_end = max(
            (window.rfind(term) + len(term) for term in SENTENCE_TERMINATORS if term in window),
            default=-1,
        )
        if sentence_end > midpoint:
            return sentence_end

        space = max(window.rfind(" "), window.rfind("\t"))
        if space > midpoint:
            return space + 1

        return len(window)

    def iteration_ceiling(self, length: int) -> int:
        """Most windows :meth:`split` cuts before giving up on ``length`` characters."""
        return math.ceil(length / (self.chunk_size - self.overlap)) + 100

    def split(self, text: str) -> list[TextSegment]:
        if len(text) <= self.chunk_size:
            if not text.strip():
                return []
            return [TextSegment(text=text, start=0, end=len(text))]

        segments: list[TextSegment] = []
        ceiling = self.iteration_ceiling(len(text))
        start = 0
        iterations = 0

        while start < len(text):
            if iterations >= ceiling:
                logger.warning(
                    f"Chunking stopped after {iterations} iterations at offset {start}/{len(text)}"
                )
                break
            iterations += 1

            end = min(start + self.chunk_size, len(text))
            if end < len(text):
                end = start + self._find_cut(text[start:end])

            piece = text[start:end]
            stripped = piece.strip()
            if stripped:
                offset = start + (len(piece) - len(piece.lstrip()))
                segments.append(TextSegment(text=stripped, start=offset, end=offset + len(stripped)))

            if end >= len(text):
                break

            next_start = end - self.overlap
            if next_start <= start:
                next_start = start + max(1, self.chunk_size // 2)
            start = next_start

        logger.debug(f"Split {len(text)} characters into {len(segments)} segments")
        return segments

    def chunk(self, document: Document, text: str) -> list[Chunk]:
        """Turn a document's extracted text into chunk records."""
        doc_type = document.metadata.get("type", "unknown")
        return [
            Chunk(
                id=f"{document.id}-chunk-{index}",
                document_id=document.id,
                project_id=document.project_id,
                index=index,
                text=segment.text,
                metadata={
                    "page": segment.start // CHARS_PER_PAGE + 1,
                    "type": doc_type,
                    "document_name": document.name,
                    "start": segment.start,
                    "end": segment.end,
                },
            )
            for index, segment in enumerate(self.split(text))
        ]


def split(text: str, max_size: int = 1000, overlap: int = 200) -> list[TextSegment]:
    return TextChunker(max_size, overlap).split(text)


def chunk_document(document: Document, text: str, max_size: int = 1000, overlap: int = 200) -> list[Chunk]:
    return TextChunker(max_size, overlap).chunk(document, text)
