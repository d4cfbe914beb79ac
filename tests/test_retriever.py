"""Tests for similarity retrieval."""

import pytest

from dossier.embeddings import EmbeddingStore, FakeEmbedding
from dossier.models import DocumentRef, Embedding, RetrievalResult
from dossier.retrieval import (
    NO_RELEVANT_CONTEXT,
    Retriever,
    cosine_similarity,
    extract_citations,
    format_context,
)


class BrokenQueryEmbedding(FakeEmbedding):
    """Refuses to embed one query."""

    async def embed_query(self, text):
        if text == "explode":
            raise RuntimeError("provider down")
        return await super().embed_query(text)


def result(chunk_id: str, text: str, similarity: float, name: str = "a.txt", page: int = 1) -> RetrievalResult:
    return RetrievalResult(
        chunk_id=chunk_id,
        text=text,
        similarity=similarity,
        document=DocumentRef(id="d1", name=name, page=page),
    )


@pytest.fixture
def retriever(store, repository):
    return Retriever(store, repository)


class TestCosine:
    """Tests for cosine similarity."""

    def test_values(self):
        assert cosine_similarity([1.0, 0.0], [1.0, 0.0]) == pytest.approx(1.0)
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == pytest.approx(0.0)
        assert cosine_similarity([1.0, 0.0], [-2.0, 0.0]) == pytest.approx(-1.0)

    def test_zero_vector(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_dimension_mismatch(self):
        with pytest.raises(ValueError):
            cosine_similarity([1.0], [1.0, 2.0])


class TestRetrieve:
    """Tests for ranked retrieval."""

    @pytest.mark.asyncio
    async def test_empty_project_skips_the_provider(self, retriever, store, seed):
        await seed({"a.txt": ["budget plan"]})
        assert await retriever.retrieve("p1", "budget", min_similarity=0.0) == []
        assert store.provider.calls == 0

    @pytest.mark.asyncio
    async def test_best_match_first(self, retriever, store, seed):
        await seed({
            "a.txt": ["security audit of the network", "budget and costs overview"],
            "b.txt": ["roadmap with phases and milestones"],
        })
        await store.embed_project("p1")

        results = await retriever.retrieve("p1", "budget and costs overview", top_k=3, min_similarity=-1.0)
        assert results[0].chunk_id == "p1-d0-chunk-1"
        assert results[0].similarity == pytest.approx(1.0, abs=1e-5)
        assert results[0].document.name == "a.txt"
        assert results[0].document.page == 2
        similarities = [r.similarity for r in results]
        assert similarities == sorted(similarities, reverse=True)

    @pytest.mark.asyncio
    async def test_deterministic_and_ties_by_chunk_id(self, retriever, store, seed):
        await seed({
            "b.txt": ["identical passage about governance"],
            "a.txt": ["identical passage about governance"],
        })
        await store.embed_project("p1")

        first = await retriever.retrieve("p1", "governance passage", min_similarity=-1.0)
        second = await retriever.retrieve("p1", "governance passage", min_similarity=-1.0)
        assert [r.chunk_id for r in first] == ["p1-d0-chunk-0", "p1-d1-chunk-0"]
        assert first == second

    @pytest.mark.asyncio
    async def test_threshold_and_top_k(self, retriever, store, seed):
        await seed({"a.txt": [f"topic {i} discussion" for i in range(6)] + ["unrelated words entirely"]})
        await store.embed_project("p1")

        strict = await retriever.retrieve("p1", "topic 3 discussion", top_k=10, min_similarity=0.99)
        assert [r.chunk_id for r in strict] == ["p1-d0-chunk-3"]

        limited = await retriever.retrieve("p1", "topic discussion", top_k=2, min_similarity=0.0)
        assert len(limited) == 2

    @pytest.mark.asyncio
    async def test_skips_vectors_of_another_dimension(self, retriever, repository, store, seed):
        await seed({"a.txt": ["alpha text", "beta text"]})
        await store.embed_project("p1")
        await repository.save_embeddings([Embedding(chunk_id="p1-d0-chunk-1", vector=[1.0, 0.0])])

        results = await retriever.retrieve("p1", "alpha text", min_similarity=-1.0)
        assert [r.chunk_id for r in results] == ["p1-d0-chunk-0"]


class TestRetrieveBySection:
    """Tests for multi-keyword retrieval."""

    @pytest.mark.asyncio
    async def test_merges_without_duplicates(self, retriever, store, seed):
        await seed({"a.txt": ["budget costs", "budget roadmap", "roadmap phases"]})
        await store.embed_project("p1")

        results = await retriever.retrieve_by_section("p1", ["budget", "roadmap"], top_k=4, min_similarity=0.1)
        ids = [r.chunk_id for r in results]
        assert len(ids) == len(set(ids))
        assert set(ids) == {"p1-d0-chunk-0", "p1-d0-chunk-1", "p1-d0-chunk-2"}

    @pytest.mark.asyncio
    async def test_failing_keyword_is_skipped(self, repository, seed):
        store = EmbeddingStore(BrokenQueryEmbedding(dimension=64), repository, delay=0)
        retriever = Retriever(store, repository)
        await seed({"a.txt": ["budget costs"]})
        await store.embed_project("p1")

        results = await retriever.retrieve_by_section("p1", ["explode", "budget"], top_k=4, min_similarity=0.1)
        assert [r.chunk_id for r in results] == ["p1-d0-chunk-0"]

    @pytest.mark.asyncio
    async def test_no_keywords(self, retriever):
        assert await retriever.retrieve_by_section("p1", [], top_k=4) == []


class TestFormatting:
    """Tests for context and citation formatting."""

    def test_format_context(self):
        context = format_context([
            result("c1", "First passage.", 0.9, "a.txt", 1),
            result("c2", "Second passage.", 0.8, "b.pdf", 4),
        ])
        assert context == "[1] First passage. [[a.txt:1]]\n\n[2] Second passage. [[b.pdf:4]]"

    def test_empty_context_sentinel(self):
        assert format_context([]) == NO_RELEVANT_CONTEXT

    def test_extract_citations(self):
        long_text = "x" * 250
        citations = extract_citations([result("c1", long_text, 0.75, page=3)], "budget", "p1")
        assert len(citations) == 1
        citation = citations[0]
        assert citation.snippet == "x" * 200 + "..."
        assert (citation.section, citation.page, citation.confidence) == ("budget", 3, 0.75)
        assert citation.project_id == "p1"
        assert citation.document_name == "a.txt"
