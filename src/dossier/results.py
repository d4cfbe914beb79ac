"""Structured payloads returned by every pipeline boundary."""

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

from .errors import DossierError
from .models import Citation, DocumentStatus, ProjectStatus, RetrievalResult


class StageResult(BaseModel):
    """Common success/failure envelope."""
    project_id: str
    success: bool = True
    status: Optional[ProjectStatus] = None
    error_kind: Optional[str] = None
    message: str = ""
    retryable: bool = True

    @classmethod
    def failure(cls, project_id: str, error: DossierError, **kwargs: Any):
        """Build a rejecting result from a pipeline error."""
        return cls(
            project_id=project_id,
            success=False,
            error_kind=error.kind,
            message=error.message,
            retryable=error.retryable,
            **kwargs,
        )


class UploadOutcome(BaseModel):
    name: str
    outcome: Literal["uploaded", "duplicate", "error"]
    document_id: Optional[str] = None
    error: Optional[str] = None


class UploadResult(StageResult):
    files: list[UploadOutcome] = Field(default_factory=list)

    @property
    def uploaded(self) -> int:
        return sum(1 for f in self.files if f.outcome == "uploaded")


class DocumentOutcome(BaseModel):
    id: str
    name: str
    status: DocumentStatus
    chunks_count: int = 0
    error: Optional[str] = None


class IngestResult(StageResult):
    processed_documents: int = 0
    error_documents: int = 0
    total_chunks: int = 0
    new_chunks: int = 0
    documents: list[DocumentOutcome] = Field(default_factory=list)


class EmbedResult(StageResult):
    newly_embedded: int = 0
    already_embedded: int = 0
    failed: int = 0
    total_chunks: int = 0
    dimension: int = 0


class GenerateResult(StageResult):
    report_length: int = 0
    sections: int = 0
    diagrams: int = 0
    tables: int = 0
    citations: int = 0


class SearchResponse(StageResult):
    query: str = ""
    results: list[RetrievalResult] = Field(default_factory=list)
    context: str = ""
    citations: list[Citation] = Field(default_factory=list)
    total_results: int = 0


class ExportResult(StageResult):
    path: Optional[str] = None
    files: list[str] = Field(default_factory=list)


class Diagnostics(StageResult):
    """Snapshot of a project's pipeline progress."""
    documents_total: int = 0
    document_statuses: dict[str, int] = Field(default_factory=dict)
    chunks_total: int = 0
    chunks_with_embeddings: int = 0
    chunks_without_embeddings: int = 0
    embedding_progress: int = 0
    has_report: bool = False
    citations: int = 0
    diagrams: int = 0
    tables: int = 0
    providers: dict[str, Any] = Field(default_factory=dict)
