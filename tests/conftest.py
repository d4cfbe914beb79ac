"""
Test configuration and fixtures.
"""

import asyncio
from typing import Any

import pytest

from dossier.embeddings import EmbeddingStore, FakeEmbedding
from dossier.models import Chunk, Document, DocumentStatus, Project, RagOptions
from dossier.providers.base import LLMProvider
from dossier.storage import MemoryRepository, SQLiteRepository
from dossier.utils.config import Settings

KEYWORD_TEXT = (
    "The audit of the current situation shows that the budget and costs of the "
    "architecture are too high. Our roadmap plans phases and milestones for security, "
    "compliance and governance. The context and stakes include risks, mitigation and "
    "KPI monitoring. Recommendations cover the vision, the strategy, the process "
    "workflow and the benchmark of best practices."
)


def words(count: int) -> str:
    """Return ``count`` words of keyword-rich prose."""
    vocabulary = KEYWORD_TEXT.split()
    return " ".join(vocabulary[i % len(vocabulary)] for i in range(count))


class ScriptedLLM(LLMProvider):
    """Text generator returning canned answers."""

    name = "scripted"
    default_model = "scripted-1"

    def __init__(self, reply: str = "Generated analysis [[a.txt:1]].", fail: bool = False):
        self.reply = reply
        self.fail = fail
        self.prompts: list[list[dict[str, Any]]] = []
        self.gate: asyncio.Event | None = None

    async def complete(self, messages, *, model=None, temperature=0.7, max_tokens=1500, **kwargs):
        self.prompts.append(messages)
        if self.gate is not None:
            await self.gate.wait()
        if self.fail:
            raise RuntimeError("model overloaded")
        return {"content": self.reply, "usage": {}, "finish_reason": "stop"}

    def get_available_models(self) -> list[str]:
        return [self.default_model]


@pytest.fixture
def settings(tmp_path):
    """Settings writing everything under a temporary directory."""
    return Settings(
        data_dir=str(tmp_path / "data"),
        database_path=str(tmp_path / "data" / "dossier.db"),
        upload_dir=str(tmp_path / "data" / "uploads"),
        embed_delay=0,
        rag=RagOptions(chunk_size=500, overlap=50, top_k=4, min_similarity=0.02),
    )


@pytest.fixture
def embedding():
    return FakeEmbedding(dimension=256)


@pytest.fixture
def repository():
    return MemoryRepository()


@pytest.fixture(params=["memory", "sqlite"])
def any_repository(request, tmp_path):
    """Each repository backend in turn."""
    if request.param == "memory":
        return MemoryRepository()
    return SQLiteRepository(str(tmp_path / "repo.db"))


@pytest.fixture
def store(embedding, repository):
    return EmbeddingStore(embedding, repository, batch_size=5, delay=0, timeout=5)


@pytest.fixture
def seed(repository):
    """Create a project whose documents are already chunked.

    Takes ``{document name: [chunk text, ...]}`` and returns the project.
    """
    async def _seed(documents: dict[str, list[str]], project_id: str = "p1") -> Project:
        project = Project(id=project_id, title="Seeded project", rag_options=RagOptions(min_similarity=0.0))
        await repository.save_project(project)
        chunks = []
        for doc_no, (name, texts) in enumerate(documents.items()):
            document = Document(
                id=f"{project_id}-d{doc_no}",
                project_id=project_id,
                name=name,
                path=f"/tmp/{name}",
                size=sum(len(t) for t in texts),
                mime_type="text/plain",
                status=DocumentStatus.PROCESSED,
            )
            await repository.save_document(document)
            chunks.extend(
                Chunk(
                    id=f"{document.id}-chunk-{i}",
                    document_id=document.id,
                    project_id=project_id,
                    index=i,
                    text=text,
                    metadata={"page": i + 1},
                )
                for i, text in enumerate(texts)
            )
        await repository.replace_chunks(project_id, chunks)
        return project
    return _seed


@pytest.fixture
def llm():
    return ScriptedLLM()
