"""Domain records for projects, documents, chunks and generated artifacts."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator


class ProjectStatus(str, Enum):
    """Lifecycle status of a project."""
    DRAFT = "draft"
    UPLOADING = "uploading"
    INGESTING = "ingesting"
    INGESTED = "ingested"
    EMBEDDING = "embedding"
    EMBEDDED = "embedded"
    GENERATING = "generating"
    GENERATED = "generated"
    EXPORTED = "exported"
    ERROR = "error"


class DocumentStatus(str, Enum):
    """Processing status of an uploaded document."""
    PENDING = "pending"
    PROCESSING = "processing"
    PROCESSED = "processed"
    ERROR = "error"


class RagOptions(BaseModel):
    """Per-project chunking and retrieval knobs."""
    chunk_size: int = 1000
    overlap: int = 200
    top_k: int = 8
    min_similarity: float = 0.3

    @model_validator(mode="after")
    def _check_sizes(self) -> "RagOptions":
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= self.overlap < self.chunk_size:
            raise ValueError("overlap must be in [0, chunk_size)")
        if self.top_k <= 0:
            raise ValueError("top_k must be positive")
        return self


class Project(BaseModel):
    """The aggregate root owning documents, chunks and the report."""
    id: str
    title: str
    client: str = "Client"
    lead: str = "Consultant"
    language: str = "en"
    methodologies: list[str] = Field(default_factory=list)
    rag_options: RagOptions = Field(default_factory=RagOptions)
    status: ProjectStatus = ProjectStatus.DRAFT
    last_error: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: datetime = Field(default_factory=datetime.now)


class Document(BaseModel):
    """One uploaded source file."""
    id: str
    project_id: str
    name: str
    path: str
    size: int
    mime_type: str
    status: DocumentStatus = DocumentStatus.PENDING
    error: Optional[str] = None
    pages: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    uploaded_at: datetime = Field(default_factory=datetime.now)
    processed_at: Optional[datetime] = None


class Chunk(BaseModel):
    """A contiguous slice of a document's extracted text."""
    id: str
    document_id: str
    project_id: str
    index: int
    text: str
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def page(self) -> int:
        return int(self.metadata.get("page", 1))


class Embedding(BaseModel):
    """The vector attached to a single chunk."""
    chunk_id: str
    vector: list[float]
    created_at: datetime = Field(default_factory=datetime.now)

    @property
    def dimension(self) -> int:
        return len(self.vector)


class Citation(BaseModel):
    """Link from a report section back to the chunk that supports it."""
    project_id: str
    document_id: str
    document_name: str = ""
    section: str
    page: int = 1
    snippet: str
    confidence: float = 0.0


class Report(BaseModel):
    """The generated document of a project."""
    project_id: str
    markdown: str
    generated_at: datetime = Field(default_factory=datetime.now)
    export_path: Optional[str] = None


class Diagram(BaseModel):
    """A Mermaid diagram generated for a project."""
    project_id: str
    kind: str
    title: str
    mermaid: str


class DataTable(BaseModel):
    """A CSV table generated for a project."""
    project_id: str
    name: str
    title: str
    csv: str


class DocumentRef(BaseModel):
    """Where a retrieved chunk comes from."""
    id: str
    name: str
    page: int = 1


class RetrievalResult(BaseModel):
    """A scored chunk returned by the retriever."""
    chunk_id: str
    text: str
    similarity: float
    document: DocumentRef
