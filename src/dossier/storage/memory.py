"""In-memory project storage for testing."""

from datetime import datetime
from typing import Optional

from dossier.embeddings.codec import decode_vector, encode_vector
from dossier.errors import NotFoundError, PipelineStateConflictError
from dossier.models import (
    Chunk,
    Citation,
    DataTable,
    Diagram,
    Document,
    Embedding,
    Project,
    ProjectStatus,
    Report,
)
from dossier.storage.base import EmbeddedChunk, ProjectRepository


class MemoryRepository(ProjectRepository):
    """Dict-backed repository. Records are copied on the way in and out."""

    def __init__(self):
        self._projects: dict[str, Project] = {}
        self._documents: dict[str, Document] = {}
        self._chunks: dict[str, Chunk] = {}
        self._vectors: dict[str, tuple[bytes, Embedding]] = {}
        self._citations: dict[str, list[Citation]] = {}
        self._reports: dict[str, Report] = {}
        self._diagrams: dict[str, list[Diagram]] = {}
        self._tables: dict[str, list[DataTable]] = {}

    async def save_project(self, project: Project) -> None:
        self._projects[project.id] = project.model_copy(deep=True)

    async def get_project(self, project_id: str) -> Optional[Project]:
        project = self._projects.get(project_id)
        return project.model_copy(deep=True) if project else None

    async def transition_status(
        self,
        project_id: str,
        allowed: frozenset[ProjectStatus],
        target: ProjectStatus,
        last_error: Optional[str] = None,
        update_error: bool = False,
    ) -> tuple[ProjectStatus, Project]:
        # No await between the check and the write
        project = self._projects.get(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        previous = project.status
        if previous not in allowed:
            raise PipelineStateConflictError(project_id, previous.value, target.value)
        project.status = target
        if update_error:
            project.last_error = last_error
        project.updated_at = datetime.now()
        return previous, project.model_copy(deep=True)

    async def list_projects(self) -> list[Project]:
        projects = sorted(self._projects.values(), key=lambda p: p.created_at, reverse=True)
        return [p.model_copy(deep=True) for p in projects]

    async def delete_project(self, project_id: str) -> bool:
        if project_id not in self._projects:
            return False

        del self._projects[project_id]
        for doc_id in [d.id for d in self._documents.values() if d.project_id == project_id]:
            await self.delete_document(doc_id)
        self._drop_chunks(project_id)
        self._citations.pop(project_id, None)
        self._reports.pop(project_id, None)
        self._diagrams.pop(project_id, None)
        self._tables.pop(project_id, None)
        return True

    async def save_document(self, document: Document) -> None:
        self._documents[document.id] = document.model_copy(deep=True)

    async def get_document(self, document_id: str) -> Optional[Document]:
        document = self._documents.get(document_id)
        return document.model_copy(deep=True) if document else None

    async def list_documents(self, project_id: str) -> list[Document]:
        documents = [d for d in self._documents.values() if d.project_id == project_id]
        documents.sort(key=lambda d: d.uploaded_at)
        return [d.model_copy(deep=True) for d in documents]

    async def delete_document(self, document_id: str) -> bool:
        if self._documents.pop(document_id, None) is None:
            return False

        for chunk_id in [c.id for c in self._chunks.values() if c.document_id == document_id]:
            del self._chunks[chunk_id]
            self._vectors.pop(chunk_id, None)
        return True

    def _drop_chunks(self, project_id: str) -> None:
        for chunk_id in [c.id for c in self._chunks.values() if c.project_id == project_id]:
            del self._chunks[chunk_id]
            self._vectors.pop(chunk_id, None)

    async def replace_chunks(self, project_id: str, chunks: list[Chunk]) -> None:
        self._drop_chunks(project_id)
        for chunk in chunks:
            self._chunks[chunk.id] = chunk.model_copy(deep=True)

    async def list_chunks(self, project_id: str) -> list[Chunk]:
        order = {d.id: i for i, d in enumerate(await self.list_documents(project_id))}
        chunks = [c for c in self._chunks.values() if c.project_id == project_id]
        chunks.sort(key=lambda c: (order.get(c.document_id, len(order)), c.index))
        return [c.model_copy(deep=True) for c in chunks]

    async def count_chunks(self, project_id: str) -> int:
        return sum(1 for c in self._chunks.values() if c.project_id == project_id)

    async def save_embeddings(self, embeddings: list[Embedding]) -> None:
        for embedding in embeddings:
            if embedding.chunk_id not in self._chunks:
                continue
            self._vectors[embedding.chunk_id] = (encode_vector(embedding.vector), embedding)

    async def replace_embeddings(self, project_id: str, embeddings: list[Embedding]) -> None:
        for chunk_id in await self.embedded_chunk_ids(project_id):
            del self._vectors[chunk_id]
        await self.save_embeddings(embeddings)

    async def get_embedding(self, chunk_id: str) -> Optional[Embedding]:
        stored = self._vectors.get(chunk_id)
        if stored is None:
            return None
        blob, embedding = stored
        return Embedding(chunk_id=chunk_id, vector=decode_vector(blob), created_at=embedding.created_at)

    async def embedded_chunk_ids(self, project_id: str) -> set[str]:
        return {
            chunk_id for chunk_id in self._vectors
            if self._chunks[chunk_id].project_id == project_id
        }

    async def count_embeddings(self, project_id: str) -> int:
        return len(await self.embedded_chunk_ids(project_id))

    async def list_embedded_chunks(self, project_id: str) -> list[EmbeddedChunk]:
        results = []
        for chunk in await self.list_chunks(project_id):
            stored = self._vectors.get(chunk.id)
            if stored is None:
                continue
            document = self._documents.get(chunk.document_id)
            results.append(EmbeddedChunk(
                chunk=chunk,
                document_name=document.name if document else "",
                vector=decode_vector(stored[0]),
            ))
        return results

    async def replace_citations(self, project_id: str, citations: list[Citation]) -> None:
        self._citations[project_id] = [c.model_copy() for c in citations]

    async def list_citations(self, project_id: str) -> list[Citation]:
        return [c.model_copy() for c in self._citations.get(project_id, [])]

    async def save_report(self, report: Report) -> None:
        self._reports[report.project_id] = report.model_copy()

    async def get_report(self, project_id: str) -> Optional[Report]:
        report = self._reports.get(project_id)
        return report.model_copy() if report else None

    async def replace_artifacts(
        self,
        project_id: str,
        diagrams: list[Diagram],
        tables: list[DataTable],
    ) -> None:
        self._diagrams[project_id] = [d.model_copy() for d in diagrams]
        self._tables[project_id] = [t.model_copy() for t in tables]

    async def list_diagrams(self, project_id: str) -> list[Diagram]:
        return [d.model_copy() for d in self._diagrams.get(project_id, [])]

    async def list_tables(self, project_id: str) -> list[DataTable]:
        return [t.model_copy() for t in self._tables.get(project_id, [])]
