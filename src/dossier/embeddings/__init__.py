"""
Embedding providers, the vector codec and the embedding store.
"""

from dossier.embeddings.base import BaseEmbedding
from dossier.embeddings.codec import decode_vector, encode_vector
from dossier.embeddings.providers import (
    DummyEmbedding,
    FakeEmbedding,
    LocalEmbedding,
    OpenAIEmbedding,
    create_embedding,
)
from dossier.embeddings.store import EmbeddingStore

__all__ = [
    "BaseEmbedding",
    "decode_vector",
    "encode_vector",
    "DummyEmbedding",
    "FakeEmbedding",
    "LocalEmbedding",
    "OpenAIEmbedding",
    "create_embedding",
    "EmbeddingStore",
]
