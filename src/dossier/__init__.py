"""
Dossier - turn business documents into a cited, multi-section report.
"""

from dossier.embeddings import (
    BaseEmbedding,
    DummyEmbedding,
    EmbeddingStore,
    FakeEmbedding,
    LocalEmbedding,
    OpenAIEmbedding,
)
from dossier.errors import (
    DossierError,
    ExtractionFailedError,
    MissingPrerequisiteError,
    NotFoundError,
    PipelineStateConflictError,
    ProviderUnavailableError,
    UnknownArtifactKindError,
    UnsupportedInputError,
)
from dossier.ingest import UploadFile, chunk_document, extract, split
from dossier.models import (
    Chunk,
    Citation,
    DataTable,
    Diagram,
    Document,
    DocumentStatus,
    Embedding,
    Project,
    ProjectStatus,
    RagOptions,
    Report,
    RetrievalResult,
)
from dossier.pipeline import DossierService, ProjectStateMachine, create_service
from dossier.providers import AnthropicProvider, LLMProvider, OpenAIProvider, create_provider
from dossier.retrieval import NO_RELEVANT_CONTEXT, Retriever, format_context
from dossier.storage import MemoryRepository, ProjectRepository, SQLiteRepository
from dossier.utils import Settings, get_logger, load_config, set_log_level

__version__ = "0.1.0"
__all__ = [
    # Service
    "DossierService",
    "create_service",
    "ProjectStateMachine",
    # Models
    "Chunk",
    "Citation",
    "DataTable",
    "Diagram",
    "Document",
    "DocumentStatus",
    "Embedding",
    "Project",
    "ProjectStatus",
    "RagOptions",
    "Report",
    "RetrievalResult",
    # Errors
    "DossierError",
    "ExtractionFailedError",
    "MissingPrerequisiteError",
    "NotFoundError",
    "PipelineStateConflictError",
    "ProviderUnavailableError",
    "UnknownArtifactKindError",
    "UnsupportedInputError",
    # Ingest
    "UploadFile",
    "chunk_document",
    "extract",
    "split",
    # Embeddings
    "BaseEmbedding",
    "DummyEmbedding",
    "EmbeddingStore",
    "FakeEmbedding",
    "LocalEmbedding",
    "OpenAIEmbedding",
    # Retrieval
    "NO_RELEVANT_CONTEXT",
    "Retriever",
    "format_context",
    # Providers
    "LLMProvider",
    "OpenAIProvider",
    "AnthropicProvider",
    "create_provider",
    # Storage
    "ProjectRepository",
    "MemoryRepository",
    "SQLiteRepository",
    # Utils
    "Settings",
    "get_logger",
    "load_config",
    "set_log_level",
]
