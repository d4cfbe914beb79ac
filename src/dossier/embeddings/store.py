"""Throttled embedding generation and persistence."""

import asyncio
import logging
from typing import Optional

from dossier.embeddings.base import BaseEmbedding
from dossier.errors import MissingPrerequisiteError, ProviderUnavailableError
from dossier.models import Embedding
from dossier.results import EmbedResult
from dossier.storage.base import ProjectRepository

logger = logging.getLogger(__name__)


class EmbeddingStore:
    """Compute vectors for chunks and write them through the repository.

    Provider calls are made in batches of ``batch_size`` with ``delay``
    seconds between calls and at most ``concurrency`` calls in flight.
    A failing batch is retried item by item so one bad text only loses
    its own vector.
    """

    def __init__(
        self,
        provider: BaseEmbedding,
        repository: ProjectRepository,
        batch_size: int = 5,
        delay: float = 0.1,
        concurrency: int = 1,
        timeout: float = 30.0,
    ):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if concurrency <= 0:
            raise ValueError("concurrency must be positive")
        self.provider = provider
        self.repository = repository
        self.batch_size = batch_size
        self.delay = delay
        self.concurrency = concurrency
        self.timeout = timeout

    def prepare(self, text: str) -> str:
        """Collapse whitespace and truncate to the provider's input limit."""
        return " ".join(text.split())[:self.provider.max_input_chars]

    def _valid(self, vector: Optional[list[float]]) -> bool:
        return vector is not None and len(vector) == self.provider.dimension

    async def _embed_one(self, text: str) -> Optional[list[float]]:
        try:
            vectors = await asyncio.wait_for(self.provider.embed_documents([text]), self.timeout)
        except Exception as e:
            logger.warning(f"Embedding failed for one item ({self.provider.name}): {e}")
            return None

        vector = vectors[0] if len(vectors) == 1 else None
        if not self._valid(vector):
            logger.warning(
                f"Discarding vector of wrong shape from {self.provider.name}"
                f" (expected {self.provider.dimension} dimensions)"
            )
            return None
        return vector

    async def _embed_batch(self, texts: list[str]) -> list[Optional[list[float]]]:
        try:
            vectors = await asyncio.wait_for(self.provider.embed_documents(texts), self.timeout)
            if len(vectors) != len(texts):
                raise ValueError(f"provider returned {len(vectors)} vectors for {len(texts)} texts")
        except Exception as e:
            if len(texts) == 1:
                logger.warning(f"Embedding failed for one item ({self.provider.name}): {e}")
                return [None]
            logger.warning(f"Embedding batch of {len(texts)} failed, retrying items one by one: {e}")
            results = []
            for i, text in enumerate(texts):
                if i and self.delay:
                    await asyncio.sleep(self.delay)
                results.append(await self._embed_one(text))
            return results

        results = []
        for vector in vectors:
            if self._valid(vector):
                results.append(vector)
            else:
                logger.warning(
                    f"Discarding vector of wrong shape from {self.provider.name}"
                    f" (expected {self.provider.dimension} dimensions)"
                )
                results.append(None)
        return results

    async def embed(self, texts: list[str]) -> list[Optional[list[float]]]:
        """
        Embed texts, leaving ``None`` where an item failed.

        Raises:
            ProviderUnavailableError: If every item failed
        """
        if not texts:
            return []

        prepared = [self.prepare(text) for text in texts]
        results: list[Optional[list[float]]] = [None] * len(prepared)
        starts = range(0, len(prepared), self.batch_size)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def run(batch_no: int, start: int) -> None:
            async with semaphore:
                if batch_no and self.delay:
                    await asyncio.sleep(self.delay)
                end = min(start + self.batch_size, len(prepared))
                logger.debug(f"Embedding items {start}-{end - 1} of {len(prepared)}")
                results[start:end] = await self._embed_batch(prepared[start:end])

        await asyncio.gather(*(run(n, start) for n, start in enumerate(starts)))

        if all(vector is None for vector in results):
            raise ProviderUnavailableError(
                self.provider.name,
                f"All {len(texts)} embedding requests failed",
            )
        return results

    async def embed_query(self, text: str) -> list[float]:
        """
        Embed a search query.

        Raises:
            ProviderUnavailableError: If the provider fails or times out
        """
        try:
            vector = await asyncio.wait_for(self.provider.embed_query(self.prepare(text)), self.timeout)
        except Exception as e:
            raise ProviderUnavailableError(self.provider.name, f"Query embedding failed: {e}") from e
        if not self._valid(vector):
            raise ProviderUnavailableError(self.provider.name, "Query embedding has the wrong dimension")
        return vector

    async def embed_project(self, project_id: str, reembed: bool = False) -> EmbedResult:
        """
        Embed a project's chunks.

        Args:
            project_id: Project ID
            reembed: Recompute every vector and swap the whole set at once
                instead of only filling chunks that have none

        Returns:
            Counts of new, existing and failed vectors
        """
        chunks = await self.repository.list_chunks(project_id)
        if not chunks:
            raise MissingPrerequisiteError("ingest", "No chunks found; run ingestion first")

        existing = set() if reembed else await self.repository.embedded_chunk_ids(project_id)
        targets = [chunk for chunk in chunks if chunk.id not in existing]
        logger.info(
            f"Embedding {len(targets)} of {len(chunks)} chunks for project {project_id}"
            f" (reembed={reembed})"
        )

        embeddings: list[Embedding] = []
        if targets:
            vectors = await self.embed([chunk.text for chunk in targets])
            embeddings = [
                Embedding(chunk_id=chunk.id, vector=vector)
                for chunk, vector in zip(targets, vectors)
                if vector is not None
            ]

        if reembed:
            await self.repository.replace_embeddings(project_id, embeddings)
        elif embeddings:
            await self.repository.save_embeddings(embeddings)

        failed = len(targets) - len(embeddings)
        if failed:
            logger.warning(f"{failed} chunk(s) of project {project_id} left without a vector")

        return EmbedResult(
            project_id=project_id,
            newly_embedded=len(embeddings),
            already_embedded=len(existing & {chunk.id for chunk in chunks}),
            failed=failed,
            total_chunks=len(chunks),
            dimension=self.provider.dimension,
        )
