"""Abstract interface for embedding providers."""

from abc import ABC, abstractmethod


class BaseEmbedding(ABC):
    """Abstract base class for embedding models."""

    name: str = "embedding"
    max_input_chars: int = 8000

    @abstractmethod
    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        pass

    @abstractmethod
    async def embed_query(self, text: str) -> list[float]:
        pass

    @property
    @abstractmethod
    def dimension(self) -> int:
        pass

    def describe(self) -> dict:
        return {"provider": self.name, "dimension": self.dimension}
