"""
Project persistence backends.
"""

from dossier.storage.base import EmbeddedChunk, ProjectRepository
from dossier.storage.memory import MemoryRepository
from dossier.storage.sqlite import SQLiteRepository

__all__ = [
    "EmbeddedChunk",
    "ProjectRepository",
    "MemoryRepository",
    "SQLiteRepository",
]
