"""
Document ingestion: upload checks, text extraction and chunking.
"""

from dossier.ingest.chunking import TextChunker, TextSegment, chunk_document, split
from dossier.ingest.extractor import Extraction, extract, guess_mime_type, supported_types
from dossier.ingest.upload import UploadFile, check_upload, save_upload

__all__ = [
    "TextChunker",
    "TextSegment",
    "chunk_document",
    "split",
    "Extraction",
    "extract",
    "guess_mime_type",
    "supported_types",
    "UploadFile",
    "check_upload",
    "save_upload",
]
