"""Name-keyed registries of pure artifact generators."""

from typing import Callable

from dossier.errors import UnknownArtifactKindError
from dossier.models import Project

Generator = Callable[[str, Project], str]


class ArtifactRegistry:
    """Map artifact kinds to ``(title, generator)`` pairs.

    Generators take the retrieved context and the project and return the
    artifact body. They must not read the clock or any other ambient state.
    """

    def __init__(self, name: str):
        self.name = name
        self._generators: dict[str, tuple[str, Generator]] = {}

    def register(self, kind: str, title: str):
        """Decorator adding a generator under ``kind``."""
        def decorator(func: Generator) -> Generator:
            if kind in self._generators:
                raise ValueError(f"{self.name} kind already registered: {kind}")
            self._generators[kind] = (title, func)
            return func
        return decorator

    def kinds(self) -> list[str]:
        return list(self._generators)

    def title(self, kind: str) -> str:
        if kind not in self._generators:
            raise UnknownArtifactKindError(kind)
        return self._generators[kind][0]

    def generate(self, kind: str, context: str, project: Project) -> str:
        if kind not in self._generators:
            raise UnknownArtifactKindError(kind)
        return self._generators[kind][1](context, project)

    def __contains__(self, kind: str) -> bool:
        return kind in self._generators

    def __len__(self) -> int:
        return len(self._generators)


DIAGRAMS = ArtifactRegistry("diagram")
TABLES = ArtifactRegistry("table")
