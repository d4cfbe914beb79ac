"""
Configuration utilities.
"""

import os
from pathlib import Path
from typing import Optional

import yaml

from pydantic import BaseModel, Field

from dossier.models import RagOptions


DEFAULT_MIME_TYPES = [
    "application/pdf",
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "text/csv",
    "text/plain",
    "text/markdown",
    "application/json",
]

DEFAULT_EXTENSIONS = [".pdf", ".docx", ".csv", ".txt", ".md", ".json"]


class Config(BaseModel):
    """Base configuration class."""

    @classmethod
    def from_yaml(cls, path: Path) -> "Config":
        """Load configuration from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    @classmethod
    def from_file(cls, path: str | Path) -> "Config":
        """Load configuration from file (YAML or JSON)."""
        path = Path(path)

        if path.suffix in (".yaml", ".yml"):
            return cls.from_yaml(path)
        elif path.suffix == ".json":
            import json
            with open(path) as f:
                data = json.load(f)
            return cls(**data)
        else:
            raise ValueError(f"Unsupported config file format: {path.suffix}")


class Settings(Config):
    """Configuration for the document-to-report pipeline."""
    # Storage
    data_dir: str = "data"
    database_path: str = "data/dossier.db"
    upload_dir: str = "data/uploads"

    # Upload boundary
    max_file_size: int = 50 * 1024 * 1024
    allowed_mime_types: list[str] = Field(default_factory=lambda: list(DEFAULT_MIME_TYPES))
    allowed_extensions: list[str] = Field(default_factory=lambda: list(DEFAULT_EXTENSIONS))

    # Defaults for new projects
    rag: RagOptions = Field(default_factory=RagOptions)

    # Embeddings
    embedding_provider: str = "openai"
    embedding_model: str = "text-embedding-3-small"
    embed_batch_size: int = 5
    embed_delay: float = 0.1
    embed_concurrency: int = 1

    # Ingestion
    ingest_concurrency: int = 4

    # Timeouts (seconds)
    provider_timeout: float = 30.0
    extraction_timeout: float = 60.0
    generation_timeout: float = 120.0

    # Text generation
    llm_provider: Optional[str] = None
    llm_model: Optional[str] = None
    max_tokens: int = 1500
    temperature: float = 0.7
    max_words: int = 800

    # Logging
    log_level: str = "INFO"

    # Provider credentials
    openai_api_key: Optional[str] = None
    anthropic_api_key: Optional[str] = None

    def with_env(self) -> "Settings":
        """Return a copy with missing API keys taken from the environment."""
        return self.model_copy(update={
            "openai_api_key": self.openai_api_key or os.environ.get("OPENAI_API_KEY"),
            "anthropic_api_key": self.anthropic_api_key or os.environ.get("ANTHROPIC_API_KEY"),
        })


def load_config(path: str | Path = "dossier.yaml") -> Settings:
    """
    Load pipeline settings from file.

    Args:
        path: Path to config file

    Returns:
        Settings instance
    """
    path = Path(path)

    if not path.exists():
        return Settings()

    return Settings.from_file(path)
