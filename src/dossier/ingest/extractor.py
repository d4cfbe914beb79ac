"""Text extraction from uploaded files.

Each supported format has one routine registered under its MIME type. The
routines are synchronous and pure so the ingest stage can push them to a
worker thread.
"""

import csv
import io
import json
import logging
import math
from pathlib import PurePath
from typing import Any, Callable

from pydantic import BaseModel, Field

from dossier.errors import ExtractionFailedError, UnsupportedInputError

logger = logging.getLogger(__name__)

CHARS_PER_PAGE = 3000

PDF = "application/pdf"
DOCX = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

EXTENSION_TYPES = {
    ".pdf": PDF,
    ".docx": DOCX,
    ".csv": "text/csv",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".json": "application/json",
}

GENERIC_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


class Extraction(BaseModel):
    """Text pulled out of a file plus what we learned about it."""
    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)


Extractor = Callable[[bytes, str], Extraction]

_EXTRACTORS: dict[str, Extractor] = {}


def register(*mime_types: str):
    """Register an extraction routine for one or more MIME types."""
    def decorator(func: Extractor) -> Extractor:
        for mime_type in mime_types:
            _EXTRACTORS[mime_type] = func
        return func
    return decorator


def supported_types() -> list[str]:
    return sorted(_EXTRACTORS)


def estimate_pages(text: str) -> int:
    return max(1, math.ceil(len(text) / CHARS_PER_PAGE))


def guess_mime_type(filename: str, mime_type: str | None = None) -> str:
    """Resolve the effective MIME type, falling back to the file extension."""
    mime_type = (mime_type or "").split(";")[0].strip().lower()
    if mime_type in GENERIC_TYPES or mime_type not in _EXTRACTORS:
        by_extension = EXTENSION_TYPES.get(PurePath(filename).suffix.lower())
        if by_extension:
            return by_extension
    return mime_type or "application/octet-stream"


def _decode(data: bytes) -> str:
    if data.startswith(b"\xef\xbb\xbf"):
        return data.decode("utf-8-sig", errors="replace")
    return data.decode("utf-8", errors="replace")


@register("text/plain", "text/markdown")
def extract_text(data: bytes, filename: str) -> Extraction:
    text = _decode(data)
    return Extraction(text=text, metadata={"type": "text", "pages": estimate_pages(text)})


@register(PDF)
def extract_pdf(data: bytes, filename: str) -> Extraction:
    import pypdf

    try:
        reader = pypdf.PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except Exception as e:
        raise ExtractionFailedError(filename, f"Could not read PDF: {e}") from e

    empty_pages = [i + 1 for i, page in enumerate(pages) if not page.strip()]
    metadata: dict[str, Any] = {"type": "pdf", "pages": len(pages)}
    if empty_pages:
        metadata["warnings"] = [f"{len(empty_pages)} page(s) without extractable text"]
        metadata["empty_pages"] = empty_pages
    return Extraction(text="\n\n".join(pages), metadata=metadata)


@register(DOCX)
def extract_docx(data: bytes, filename: str) -> Extraction:
    from docx import Document as DocxDocument

    try:
        doc = DocxDocument(io.BytesIO(data))
    except Exception as e:
        raise ExtractionFailedError(filename, f"Could not read DOCX: {e}") from e

    parts = [para.text for para in doc.paragraphs if para.text.strip()]
    for table in doc.tables:
        for row in table.rows:
            cells = [cell.text.strip() for cell in row.cells]
            if any(cells):
                parts.append(" | ".join(cells))

    text = "\n".join(parts)
    metadata: dict[str, Any] = {
        "type": "docx",
        "pages": estimate_pages(text),
        "paragraphs": len(doc.paragraphs),
        "tables": len(doc.tables),
    }
    if not doc.paragraphs:
        metadata["warnings"] = ["Document has no paragraphs"]
    return Extraction(text=text, metadata=metadata)


@register("text/csv")
def extract_csv(data: bytes, filename: str) -> Extraction:
    try:
        rows = list(csv.reader(io.StringIO(_decode(data))))
    except csv.Error as e:
        raise ExtractionFailedError(filename, f"Invalid CSV: {e}") from e

    rows = [row for row in rows if any(cell.strip() for cell in row)]
    if not rows:
        return Extraction(text="", metadata={"type": "csv", "pages": 1, "rows": 0, "columns": 0})

    header, body = rows[0], rows[1:]
    lines = []
    for row in body:
        pairs = [
            f"{header[i] if i < len(header) else f'column_{i + 1}'}: {value}"
            for i, value in enumerate(row)
        ]
        lines.append(" | ".join(pairs))

    text = "\n".join(lines) if lines else " | ".join(header)
    return Extraction(text=text, metadata={
        "type": "csv",
        "pages": estimate_pages(text),
        "rows": len(body),
        "columns": len(header),
    })


@register("application/json")
def extract_json(data: bytes, filename: str) -> Extraction:
    try:
        parsed = json.loads(_decode(data))
    except json.JSONDecodeError as e:
        raise ExtractionFailedError(filename, f"Invalid JSON: {e}") from e

    text = json.dumps(parsed, indent=2, ensure_ascii=False)
    metadata: dict[str, Any] = {"type": "json", "pages": estimate_pages(text)}
    if isinstance(parsed, dict):
        metadata["keys"] = len(parsed)
    elif isinstance(parsed, list):
        metadata["items"] = len(parsed)
    return Extraction(text=text, metadata=metadata)


def _extract_unknown(data: bytes, filename: str) -> Extraction:
    text = _decode(data)
    if b"\x00" in data or (text and text.count("�") / len(text) > 0.1):
        raise UnsupportedInputError(f"Unsupported binary file: {filename}")
    return Extraction(text=text, metadata={"type": "unknown", "pages": estimate_pages(text)})


def extract(data: bytes, mime_type: str | None, filename: str) -> Extraction:
    """
    Extract plain text from a file.

    Args:
        data: Raw file bytes
        mime_type: Declared MIME type (may be generic or missing)
        filename: Original file name, used for the extension fallback

    Returns:
        Extraction whose text is never empty

    Raises:
        UnsupportedInputError: The content is binary in an unknown format
        ExtractionFailedError: A known format could not be parsed
    """
    resolved = guess_mime_type(filename, mime_type)
    extractor = _EXTRACTORS.get(resolved, _extract_unknown)
    result = extractor(data, filename)

    if not result.text.strip():
        logger.warning(f"No textual content extracted from {filename}")
        result = Extraction(
            text=f"[No textual content found in {filename}]",
            metadata={**result.metadata, "empty": True},
        )

    result.metadata.setdefault("mime_type", resolved)
    result.metadata["characters"] = len(result.text)
    return result
