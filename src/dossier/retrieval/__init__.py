"""
Similarity retrieval and context formatting.
"""

from dossier.retrieval.retriever import (
    NO_RELEVANT_CONTEXT,
    Retriever,
    cosine_similarity,
    extract_citations,
    format_context,
)

__all__ = [
    "NO_RELEVANT_CONTEXT",
    "Retriever",
    "cosine_similarity",
    "extract_citations",
    "format_context",
]
