"""Embedding model implementations."""

import asyncio
import hashlib
import logging
import math
import re
from typing import Optional

from dossier.embeddings.base import BaseEmbedding

logger = logging.getLogger(__name__)


class DummyEmbedding(BaseEmbedding):
    """A dummy embedding model for testing."""

    name = "dummy"

    def __init__(self, dimension: int = 384):
        self._dimension = dimension

    @property
    def dimension(self) -> int:
        return self._dimension

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [[0.0] * self._dimension for _ in texts]

    async def embed_query(self, text: str) -> list[float]:
        return [0.0] * self._dimension


class FakeEmbedding(BaseEmbedding):
    """Deterministic bag-of-words embedding.

    Every lowercase word is hashed to one signed bucket and the result is
    L2-normalized, so texts sharing words have positive cosine similarity.
    """

    name = "fake"

    def __init__(self, dimension: int = 384, seed: int = 42):
        self._dimension = dimension
        self.seed = seed
        self.calls = 0

    @property
    def dimension(self) -> int:
        return self._dimension

    def _hash_text(self, text: str) -> list[float]:
        vector = [0.0] * self._dimension
        for token in re.findall(r"\w+", text.lower()):
            digest = hashlib.sha256(f"{self.seed}:{token}".encode()).digest()
            index = int.from_bytes(digest[:4], "little") % self._dimension
            vector[index] += 1.0 if digest[4] & 1 else -1.0

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.calls += 1
        return [self._hash_text(text) for text in texts]

    async def embed_query(self, text: str) -> list[float]:
        self.calls += 1
        return self._hash_text(text)


class OpenAIEmbedding(BaseEmbedding):
    """OpenAI embedding model."""

    name = "openai"

    MODEL_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    def __init__(self, model: str = "text-embedding-3-small", api_key: Optional[str] = None):
        self.model = model
        self.api_key = api_key
        self._client = None

    @property
    def dimension(self) -> int:
        return self.MODEL_DIMENSIONS.get(self.model, 1536)

    def _get_client(self):
        if self._client is None:
            try:
                from openai import AsyncOpenAI
                kwargs = {}
                if self.api_key:
                    kwargs["api_key"] = self.api_key
                self._client = AsyncOpenAI(**kwargs)
            except ImportError:
                raise ImportError("OpenAI embedding requires 'openai'. pip install openai")
        return self._client

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        client = self._get_client()
        response = await client.embeddings.create(model=self.model, input=texts)
        data = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in data]

    async def embed_query(self, text: str) -> list[float]:
        client = self._get_client()
        response = await client.embeddings.create(model=self.model, input=text)
        return response.data[0].embedding

    def describe(self) -> dict:
        return {**super().describe(), "model": self.model, "configured": bool(self.api_key)}


class LocalEmbedding(BaseEmbedding):
    """Local embedding model using sentence-transformers."""

    name = "local"

    MODEL_DIMENSIONS = {
        "all-MiniLM-L6-v2": 384,
        "all-mpnet-base-v2": 768,
        "paraphrase-multilingual-MiniLM-L12-v2": 384,
    }

    def __init__(self, model_name: str = "all-MiniLM-L6-v2", device: Optional[str] = None, normalize: bool = True):
        self.model_name = model_name
        self.device = device
        self.normalize = normalize
        self._model = None

    @property
    def dimension(self) -> int:
        if self._model is not None:
            return self._model.get_sentence_embedding_dimension()
        return self.MODEL_DIMENSIONS.get(self.model_name, 384)

    def _get_model(self):
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
                self._model = SentenceTransformer(self.model_name, device=self.device)
            except ImportError:
                raise ImportError("Local embedding requires 'sentence-transformers'. pip install dossier[local]")
        return self._model

    async def embed_documents(self, texts: list[str]) -> list[list[float]]:
        model = self._get_model()
        loop = asyncio.get_event_loop()
        embeddings = await loop.run_in_executor(
            None, lambda: model.encode(texts, normalize_embeddings=self.normalize, convert_to_numpy=True)
        )
        return embeddings.tolist()

    async def embed_query(self, text: str) -> list[float]:
        embeddings = await self.embed_documents([text])
        return embeddings[0]

    def describe(self) -> dict:
        return {**super().describe(), "model": self.model_name}


def create_embedding(settings) -> BaseEmbedding:
    """Build the embedding provider named in the settings."""
    factories = {
        "openai": lambda: OpenAIEmbedding(model=settings.embedding_model, api_key=settings.openai_api_key),
        "local": lambda: LocalEmbedding(model_name=settings.embedding_model),
        "fake": lambda: FakeEmbedding(),
        "dummy": lambda: DummyEmbedding(),
    }
    if settings.embedding_provider not in factories:
        raise ValueError(
            f"Unknown embedding provider: {settings.embedding_provider}. "
            f"Available: {', '.join(factories)}"
        )
    return factories[settings.embedding_provider]()
