"""Similarity retrieval over a project's embedded chunks."""

import logging
import math

from dossier.embeddings.store import EmbeddingStore
from dossier.models import Citation, DocumentRef, RetrievalResult
from dossier.storage.base import ProjectRepository

logger = logging.getLogger(__name__)

NO_RELEVANT_CONTEXT = "No relevant context found in the documents."

SNIPPET_LENGTH = 200


def cosine_similarity(a: list[float], b: list[float]) -> float:
    """Calculate cosine similarity between two vectors."""
    if len(a) != len(b):
        raise ValueError("Vectors must have the same dimension")
    dot_product = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(x * x for x in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return dot_product / (norm_a * norm_b)


def _ranked(results: list[RetrievalResult]) -> list[RetrievalResult]:
    return sorted(results, key=lambda r: (-r.similarity, r.chunk_id))


class Retriever:
    """Exact linear cosine scan over one project's vectors."""

    def __init__(self, store: EmbeddingStore, repository: ProjectRepository):
        self.store = store
        self.repository = repository

    async def retrieve(
        self,
        project_id: str,
        query: str,
        top_k: int = 8,
        min_similarity: float = 0.3,
    ) -> list[RetrievalResult]:
        """
        Find the chunks most similar to a query.

        Args:
            project_id: Project to search
            query: Free text query
            top_k: Maximum number of results
            min_similarity: Results scoring below this are dropped

        Returns:
            Results by descending similarity, ties broken by chunk ID.
            Empty when the project has no embedded chunks.

        Raises:
            ProviderUnavailableError: If the query cannot be embedded
        """
        candidates = await self.repository.list_embedded_chunks(project_id)
        if not candidates:
            logger.info(f"Project {project_id} has no embedded chunks to search")
            return []

        query_vector = await self.store.embed_query(query)

        results = []
        skipped = 0
        for candidate in candidates:
            if len(candidate.vector) != len(query_vector):
                skipped += 1
                continue
            similarity = cosine_similarity(query_vector, candidate.vector)
            if similarity < min_similarity:
                continue
            results.append(RetrievalResult(
                chunk_id=candidate.chunk.id,
                text=candidate.chunk.text,
                similarity=similarity,
                document=DocumentRef(
                    id=candidate.chunk.document_id,
                    name=candidate.document_name,
                    page=candidate.chunk.page,
                ),
            ))

        if skipped:
            logger.warning(f"Skipped {skipped} chunk(s) whose vector dimension differs from the query")

        return _ranked(results)[:top_k]

    async def retrieve_by_section(
        self,
        project_id: str,
        keywords: list[str],
        top_k: int = 8,
        min_similarity: float = 0.3,
    ) -> list[RetrievalResult]:
        """Retrieve for each keyword, then merge and de-duplicate by chunk ID."""
        if not keywords:
            return []

        per_keyword = math.ceil(top_k / len(keywords))
        merged: dict[str, RetrievalResult] = {}
        for keyword in keywords:
            try:
                results = await self.retrieve(project_id, keyword, per_keyword, min_similarity)
            except Exception as e:
                logger.warning(f"Retrieval for keyword '{keyword}' failed: {e}")
                continue
            for result in results:
                merged.setdefault(result.chunk_id, result)

        return _ranked(list(merged.values()))[:top_k]


def format_context(results: list[RetrievalResult]) -> str:
    """Render results as numbered passages with ``[[name:page]]`` markers."""
    if not results:
        return NO_RELEVANT_CONTEXT
    return "\n\n".join(
        f"[{i}] {r.text} [[{r.document.name}:{r.document.page}]]"
        for i, r in enumerate(results, start=1)
    )


def extract_citations(results: list[RetrievalResult], section: str, project_id: str) -> list[Citation]:
    citations = []
    for r in results:
        snippet = r.text if len(r.text) <= SNIPPET_LENGTH else r.text[:SNIPPET_LENGTH] + "..."
        citations.append(Citation(
            project_id=project_id,
            document_id=r.document.id,
            document_name=r.document.name,
            section=section,
            page=r.document.page,
            snippet=snippet,
            confidence=r.similarity,
        ))
    return citations
