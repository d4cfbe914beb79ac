"""
Diagram and table generators.

Importing this package registers every built-in generator.
"""

from dossier.artifacts import diagrams, tables  # noqa: F401
from dossier.artifacts.registry import DIAGRAMS, TABLES, ArtifactRegistry
from dossier.artifacts.tables import rice_score

__all__ = [
    "ArtifactRegistry",
    "DIAGRAMS",
    "TABLES",
    "rice_score",
]
