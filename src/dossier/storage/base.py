"""Persistence interface for projects and everything they own."""

from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel

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


class EmbeddedChunk(BaseModel):
    """A chunk joined with its document name and decoded vector."""
    chunk: Chunk
    document_name: str
    vector: list[float]


class ProjectRepository(ABC):
    """Abstract base class for project storage backends.

    Deleting a project cascades to its documents, chunks, embeddings,
    citations, report and artifacts. Deleting a document cascades to its
    chunks and their embeddings.
    """

    # Projects

    @abstractmethod
    async def save_project(self, project: Project) -> None:
        """Insert or update a project.

        Args:
            project: Project to save
        """
        pass

    @abstractmethod
    async def get_project(self, project_id: str) -> Optional[Project]:
        """Load a project by ID.

        Args:
            project_id: Project ID

        Returns:
            Project or None if not found
        """
        pass

    @abstractmethod
    async def list_projects(self) -> list[Project]:
        """List projects, newest first."""
        pass

    @abstractmethod
    async def transition_status(
        self,
        project_id: str,
        allowed: frozenset[ProjectStatus],
        target: ProjectStatus,
        last_error: Optional[str] = None,
        update_error: bool = False,
    ) -> tuple[ProjectStatus, Project]:
        """Set a project's status only if its current status is in ``allowed``.

        The check and the write are one atomic step for every caller sharing
        the storage, not just the current process.

        Args:
            project_id: Project ID
            allowed: Statuses the project may currently be in
            target: New status
            last_error: Value written to ``last_error`` when ``update_error``
            update_error: Whether ``last_error`` is overwritten

        Returns:
            The previous status and the updated project

        Raises:
            NotFoundError: If the project does not exist
            PipelineStateConflictError: If the current status is not allowed
        """
        pass

    @abstractmethod
    async def delete_project(self, project_id: str) -> bool:
        """Delete a project and everything it owns.

        Args:
            project_id: Project ID

        Returns:
            True if deleted
        """
        pass

    # Documents

    @abstractmethod
    async def save_document(self, document: Document) -> None:
        pass

    @abstractmethod
    async def get_document(self, document_id: str) -> Optional[Document]:
        pass

    @abstractmethod
    async def list_documents(self, project_id: str) -> list[Document]:
        """List a project's documents in upload order."""
        pass

    @abstractmethod
    async def delete_document(self, document_id: str) -> bool:
        pass

    # Chunks

    @abstractmethod
    async def replace_chunks(self, project_id: str, chunks: list[Chunk]) -> None:
        """Replace the project's whole chunk set in one transaction.

        All embeddings of the project are discarded with the old chunks.

        Args:
            project_id: Project ID
            chunks: The new chunk set
        """
        pass

    @abstractmethod
    async def list_chunks(self, project_id: str) -> list[Chunk]:
        """List chunks ordered by document upload order, then index."""
        pass

    @abstractmethod
    async def count_chunks(self, project_id: str) -> int:
        pass

    # Embeddings

    @abstractmethod
    async def save_embeddings(self, embeddings: list[Embedding]) -> None:
        """Insert or overwrite vectors in one transaction.

        Args:
            embeddings: Vectors keyed by chunk ID
        """
        pass

    @abstractmethod
    async def replace_embeddings(self, project_id: str, embeddings: list[Embedding]) -> None:
        """Drop every vector of the project and insert the given ones atomically.

        Args:
            project_id: Project ID
            embeddings: The new vector set
        """
        pass

    @abstractmethod
    async def get_embedding(self, chunk_id: str) -> Optional[Embedding]:
        pass

    @abstractmethod
    async def embedded_chunk_ids(self, project_id: str) -> set[str]:
        pass

    @abstractmethod
    async def count_embeddings(self, project_id: str) -> int:
        pass

    @abstractmethod
    async def list_embedded_chunks(self, project_id: str) -> list[EmbeddedChunk]:
        """List every chunk of the project that has a vector."""
        pass

    # Report and artifacts

    @abstractmethod
    async def replace_citations(self, project_id: str, citations: list[Citation]) -> None:
        pass

    @abstractmethod
    async def list_citations(self, project_id: str) -> list[Citation]:
        pass

    @abstractmethod
    async def save_report(self, report: Report) -> None:
        """Insert or update the project's report."""
        pass

    @abstractmethod
    async def get_report(self, project_id: str) -> Optional[Report]:
        pass

    @abstractmethod
    async def replace_artifacts(
        self,
        project_id: str,
        diagrams: list[Diagram],
        tables: list[DataTable],
    ) -> None:
        """Replace every diagram and table of the project."""
        pass

    @abstractmethod
    async def list_diagrams(self, project_id: str) -> list[Diagram]:
        pass

    @abstractmethod
    async def list_tables(self, project_id: str) -> list[DataTable]:
        pass
