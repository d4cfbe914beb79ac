"""Pipeline boundaries: upload, ingest, embed, generate, search and export.

Each boundary returns a structured result. Pipeline errors are captured
into the result; anything else moves a running project to ``error`` and
propagates.
"""

import asyncio
import logging
import shutil
import uuid
from collections import Counter
from datetime import datetime
from pathlib import Path
from typing import Optional

from dossier.embeddings.base import BaseEmbedding
from dossier.embeddings.store import EmbeddingStore
from dossier.errors import (
    DossierError,
    MissingPrerequisiteError,
    NotFoundError,
    PipelineStateConflictError,
    UnsupportedInputError,
)
from dossier.ingest.chunking import TextChunker
from dossier.ingest.extractor import extract
from dossier.ingest.upload import UploadFile, check_upload, save_upload
from dossier.models import (
    Chunk,
    Document,
    DocumentStatus,
    Project,
    ProjectStatus,
    RagOptions,
)
from dossier.pipeline.state import IN_PROGRESS, ProjectStateMachine
from dossier.providers.base import LLMProvider
from dossier.report.export import write_bundle
from dossier.report.orchestrator import ReportOrchestrator
from dossier.results import (
    Diagnostics,
    DocumentOutcome,
    EmbedResult,
    ExportResult,
    GenerateResult,
    IngestResult,
    SearchResponse,
    StageResult,
    UploadOutcome,
    UploadResult,
)
from dossier.retrieval.retriever import Retriever, extract_citations, format_context
from dossier.storage.base import ProjectRepository
from dossier.utils.config import Settings
from dossier.utils.logging import get_logger, set_log_level

logger = logging.getLogger(__name__)


class DossierService:
    """Facade over the whole document-to-report pipeline.

    Collaborators are passed in explicitly; nothing is created from
    globals or the environment.
    """

    def __init__(
        self,
        repository: ProjectRepository,
        embedding: BaseEmbedding,
        settings: Optional[Settings] = None,
        llm: Optional[LLMProvider] = None,
    ):
        self.settings = settings or Settings()
        self.repository = repository
        self.embedding = embedding
        self.llm = llm
        self.state = ProjectStateMachine(repository)
        self.store = EmbeddingStore(
            embedding,
            repository,
            batch_size=self.settings.embed_batch_size,
            delay=self.settings.embed_delay,
            concurrency=self.settings.embed_concurrency,
            timeout=self.settings.provider_timeout,
        )
        self.retriever = Retriever(self.store, repository)
        self.orchestrator = ReportOrchestrator(
            self.retriever,
            repository,
            llm,
            model=self.settings.llm_model,
            temperature=self.settings.temperature,
            max_tokens=self.settings.max_tokens,
            max_words=self.settings.max_words,
            timeout=self.settings.generation_timeout,
        )
        self._chunk_locks: dict[str, asyncio.Lock] = {}

    def _chunk_lock(self, project_id: str) -> asyncio.Lock:
        if project_id not in self._chunk_locks:
            self._chunk_locks[project_id] = asyncio.Lock()
        return self._chunk_locks[project_id]

    # Projects

    async def create_project(
        self,
        title: str,
        client: str = "Client",
        lead: str = "Consultant",
        language: str = "en",
        methodologies: Optional[list[str]] = None,
        rag_options: Optional[RagOptions] = None,
    ) -> Project:
        project = Project(
            id=uuid.uuid4().hex,
            title=title,
            client=client,
            lead=lead,
            language=language,
            methodologies=methodologies or [],
            rag_options=rag_options or self.settings.rag.model_copy(),
        )
        await self.repository.save_project(project)
        logger.info(f"Created project {project.id} ({title})")
        return project

    async def get_project(self, project_id: str) -> Project:
        """
        Load a project.

        Raises:
            NotFoundError: If the project does not exist
        """
        project = await self.repository.get_project(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        return project

    async def list_projects(self) -> list[Project]:
        return await self.repository.list_projects()

    async def list_documents(self, project_id: str) -> list[Document]:
        return await self.repository.list_documents(project_id)

    async def delete_project(self, project_id: str) -> StageResult:
        try:
            project = await self.get_project(project_id)
            if project.status in IN_PROGRESS:
                raise PipelineStateConflictError(project_id, project.status.value, "deleted")
        except DossierError as e:
            return StageResult.failure(project_id, e)

        await self.repository.delete_project(project_id)
        shutil.rmtree(Path(self.settings.upload_dir) / project_id, ignore_errors=True)
        self._chunk_locks.pop(project_id, None)
        logger.info(f"Deleted project {project_id}")
        return StageResult(project_id=project_id, message="Project deleted")

    async def delete_document(self, project_id: str, document_id: str) -> StageResult:
        try:
            project = await self.get_project(project_id)
            if project.status in IN_PROGRESS:
                raise PipelineStateConflictError(project_id, project.status.value, "document deleted")
            document = await self.repository.get_document(document_id)
            if document is None or document.project_id != project_id:
                raise NotFoundError("Document", document_id)
        except DossierError as e:
            return StageResult.failure(project_id, e)

        async with self._chunk_lock(project_id):
            await self.repository.delete_document(document_id)
        Path(document.path).unlink(missing_ok=True)
        logger.info(f"Deleted document {document.name} from project {project_id}")
        return StageResult(project_id=project_id, status=project.status, message=f"Deleted {document.name}")

    # Upload

    async def upload(self, project_id: str, files: list[UploadFile]) -> UploadResult:
        """Validate and store files as pending documents of a project."""
        try:
            project = await self.get_project(project_id)
            self.state.ensure_allowed(project, ProjectStatus.UPLOADING)
        except DossierError as e:
            return UploadResult.failure(project_id, e)

        existing = {d.name for d in await self.repository.list_documents(project_id)}
        outcomes: list[UploadOutcome] = []
        accepted: list[tuple[UploadFile, str]] = []
        for file in files:
            if file.name in existing:
                outcomes.append(UploadOutcome(name=file.name, outcome="duplicate", error="A document with this name already exists"))
                continue
            try:
                mime_type = check_upload(file, self.settings)
            except UnsupportedInputError as e:
                logger.warning(f"Rejected upload {file.name}: {e.message}")
                outcomes.append(UploadOutcome(name=file.name, outcome="error", error=e.message))
                continue
            existing.add(file.name)
            accepted.append((file, mime_type))

        if accepted:
            try:
                project = await self.state.transition(project_id, ProjectStatus.UPLOADING)
            except DossierError as e:
                return UploadResult.failure(project_id, e, files=outcomes)

        loop = asyncio.get_event_loop()
        for file, mime_type in accepted:
            document_id = uuid.uuid4().hex
            try:
                path = await loop.run_in_executor(
                    None, save_upload, self.settings.upload_dir, project_id, document_id, file
                )
            except OSError as e:
                logger.error(f"Could not store {file.name}: {e}")
                outcomes.append(UploadOutcome(name=file.name, outcome="error", error=f"Could not store file: {e}"))
                continue
            await self.repository.save_document(Document(
                id=document_id,
                project_id=project_id,
                name=file.name,
                path=str(path),
                size=len(file.data),
                mime_type=mime_type,
            ))
            outcomes.append(UploadOutcome(name=file.name, outcome="uploaded", document_id=document_id))

        result = UploadResult(project_id=project_id, status=project.status, files=outcomes)
        counts = Counter(o.outcome for o in outcomes)
        result.message = ", ".join(f"{counts[k]} {k}" for k in ("uploaded", "duplicate", "error"))
        logger.info(f"Upload to project {project_id}: {result.message}")
        return result

    # Ingest

    async def _ingest_document(
        self,
        project: Project,
        document: Document,
        semaphore: asyncio.Semaphore,
    ) -> tuple[Document, Optional[list[Chunk]]]:
        async with semaphore:
            loop = asyncio.get_event_loop()
            try:
                data = await loop.run_in_executor(None, Path(document.path).read_bytes)
                extraction = await asyncio.wait_for(
                    loop.run_in_executor(None, extract, data, document.mime_type, document.name),
                    self.settings.extraction_timeout,
                )
                document.metadata = dict(extraction.metadata)
                chunker = TextChunker(project.rag_options.chunk_size, project.rag_options.overlap)
                chunks = chunker.chunk(document, extraction.text)
            except asyncio.TimeoutError:
                reason = f"Extraction timed out after {self.settings.extraction_timeout:g}s"
                return await self._document_failed(document, reason), None
            except DossierError as e:
                return await self._document_failed(document, e.message), None
            except Exception as e:
                logger.exception(f"Unexpected failure while ingesting {document.name}")
                return await self._document_failed(document, str(e) or type(e).__name__), None

        document.status = DocumentStatus.PROCESSED
        document.error = None
        document.pages = int(extraction.metadata.get("pages", 1))
        document.metadata["chunks_count"] = len(chunks)
        document.processed_at = datetime.now()
        logger.info(f"Extracted {document.name}: {len(extraction.text)} characters, {len(chunks)} chunks")
        return document, chunks

    async def _document_failed(self, document: Document, reason: str) -> Document:
        logger.warning(f"Document {document.name} failed: {reason}")
        document.status = DocumentStatus.ERROR
        document.error = reason
        document.processed_at = datetime.now()
        await self.repository.save_document(document)
        return document

    async def ingest(self, project_id: str) -> IngestResult:
        """Extract and chunk every pending or failed document of a project."""
        try:
            project = await self.get_project(project_id)
            self.state.ensure_allowed(project, ProjectStatus.INGESTING)
            documents = await self.repository.list_documents(project_id)
            if not documents:
                raise MissingPrerequisiteError("upload", "No documents found; upload documents first")
        except DossierError as e:
            return IngestResult.failure(project_id, e)

        to_process = [d for d in documents if d.status in (DocumentStatus.PENDING, DocumentStatus.ERROR)]
        if not to_process:
            total = await self.repository.count_chunks(project_id)
            return IngestResult(
                project_id=project_id,
                status=project.status,
                processed_documents=len(documents),
                total_chunks=total,
                message="All documents are already processed",
                documents=[
                    DocumentOutcome(id=d.id, name=d.name, status=d.status, chunks_count=d.metadata.get("chunks_count", 0))
                    for d in documents
                ],
            )

        try:
            await self.state.transition(project_id, ProjectStatus.INGESTING)
        except DossierError as e:
            return IngestResult.failure(project_id, e)

        try:
            return await self._run_ingest(project, documents, to_process)
        except DossierError as e:
            project = await self.state.fail(project_id, e.message)
            return IngestResult.failure(project_id, e, status=project.status)
        except Exception as e:
            await self.state.fail(project_id, str(e) or type(e).__name__)
            raise

    async def _run_ingest(
        self,
        project: Project,
        documents: list[Document],
        to_process: list[Document],
    ) -> IngestResult:
        logger.info(f"Ingesting {len(to_process)} of {len(documents)} documents for project {project.id}")
        for document in to_process:
            document.status = DocumentStatus.PROCESSING
            await self.repository.save_document(document)

        semaphore = asyncio.Semaphore(max(1, self.settings.ingest_concurrency))
        outcomes = await asyncio.gather(
            *(self._ingest_document(project, document, semaphore) for document in to_process)
        )

        new_chunks = [chunk for _, chunks in outcomes if chunks for chunk in chunks]
        reprocessed = {document.id for document in to_process}
        async with self._chunk_lock(project.id):
            kept = [
                chunk for chunk in await self.repository.list_chunks(project.id)
                if chunk.document_id not in reprocessed
            ]
            await self.repository.replace_chunks(project.id, kept + new_chunks)
            for document, chunks in outcomes:
                if chunks is not None:
                    await self.repository.save_document(document)

        processed_now = sum(1 for _, chunks in outcomes if chunks is not None)
        failed_now = len(outcomes) - processed_now
        processed_total = processed_now + sum(
            1 for d in documents if d.id not in reprocessed and d.status == DocumentStatus.PROCESSED
        )

        result = IngestResult(
            project_id=project.id,
            processed_documents=processed_now,
            error_documents=failed_now,
            total_chunks=len(kept) + len(new_chunks),
            new_chunks=len(new_chunks),
            documents=[
                DocumentOutcome(
                    id=document.id,
                    name=document.name,
                    status=document.status,
                    chunks_count=len(chunks or []),
                    error=document.error,
                )
                for document, chunks in outcomes
            ],
        )

        if processed_total == 0:
            error = MissingPrerequisiteError("ingest", "No document could be processed; replace or fix the failed documents")
            updated = await self.state.fail(project.id, error.message)
            return IngestResult.failure(
                project.id,
                error,
                status=updated.status,
                **result.model_dump(include={"processed_documents", "error_documents", "total_chunks", "new_chunks", "documents"}),
            )

        updated = await self.state.transition(project.id, ProjectStatus.INGESTED)
        result.status = updated.status
        result.message = f"{processed_now} processed, {failed_now} failed, {result.new_chunks} new chunks"
        return result

    # Embed

    async def embed(self, project_id: str, reembed: bool = False) -> EmbedResult:
        """Compute vectors for the project's chunks."""
        try:
            project = await self.get_project(project_id)
            self.state.ensure_allowed(project, ProjectStatus.EMBEDDING)
            if not await self.repository.count_chunks(project_id):
                raise MissingPrerequisiteError("ingest", "No chunks found; run ingestion first")
            await self.state.transition(project_id, ProjectStatus.EMBEDDING)
        except DossierError as e:
            return EmbedResult.failure(project_id, e)

        try:
            result = await self.store.embed_project(project_id, reembed=reembed)
        except DossierError as e:
            project = await self.state.fail(project_id, e.message)
            return EmbedResult.failure(project_id, e, status=project.status)
        except Exception as e:
            await self.state.fail(project_id, str(e) or type(e).__name__)
            raise

        if not await self.repository.count_embeddings(project_id):
            error = MissingPrerequisiteError("embed", "No chunk could be embedded")
            project = await self.state.fail(project_id, error.message)
            return EmbedResult.failure(project_id, error, status=project.status)

        project = await self.state.transition(project_id, ProjectStatus.EMBEDDED)
        result.status = project.status
        result.message = f"{result.newly_embedded} embedded, {result.failed} failed"
        return result

    # Generate

    async def generate(self, project_id: str) -> GenerateResult:
        """Generate the report, artifacts and citations of a project."""
        try:
            project = await self.get_project(project_id)
            self.state.ensure_allowed(project, ProjectStatus.GENERATING)
            if not await self.repository.count_embeddings(project_id):
                raise MissingPrerequisiteError("embed", "No embedded chunks found; run embedding first")
            project = await self.state.transition(project_id, ProjectStatus.GENERATING)
        except DossierError as e:
            return GenerateResult.failure(project_id, e)

        try:
            result = await self.orchestrator.run(project)
        except DossierError as e:
            project = await self.state.fail(project_id, e.message)
            return GenerateResult.failure(project_id, e, status=project.status)
        except Exception as e:
            await self.state.fail(project_id, str(e) or type(e).__name__)
            raise

        project = await self.state.transition(project_id, ProjectStatus.GENERATED)
        result.status = project.status
        result.message = f"Report generated with {result.sections} sections"
        return result

    # Search

    async def search(
        self,
        project_id: str,
        query: str,
        top_k: Optional[int] = None,
        min_similarity: Optional[float] = None,
    ) -> SearchResponse:
        """Run a similarity query against a project's embedded chunks."""
        try:
            project = await self.get_project(project_id)
            if not query.strip():
                raise UnsupportedInputError("Query must not be empty")
            results = await self.retriever.retrieve(
                project_id,
                query,
                top_k or project.rag_options.top_k,
                project.rag_options.min_similarity if min_similarity is None else min_similarity,
            )
        except DossierError as e:
            return SearchResponse.failure(project_id, e, query=query)

        return SearchResponse(
            project_id=project_id,
            status=project.status,
            query=query,
            results=results,
            context=format_context(results),
            citations=extract_citations(results, "search", project_id),
            total_results=len(results),
        )

    # Export

    async def export(self, project_id: str) -> ExportResult:
        """Bundle the report and its artifacts into a zip archive."""
        try:
            project = await self.get_project(project_id)
            self.state.ensure_allowed(project, ProjectStatus.EXPORTED)
            report = await self.repository.get_report(project_id)
            if report is None:
                raise MissingPrerequisiteError("generate", "No report found; generate the report first")
        except DossierError as e:
            return ExportResult.failure(project_id, e)

        path = Path(self.settings.data_dir) / "exports" / f"{project_id}.zip"
        diagrams = await self.repository.list_diagrams(project_id)
        tables = await self.repository.list_tables(project_id)
        citations = await self.repository.list_citations(project_id)

        loop = asyncio.get_event_loop()
        files = await loop.run_in_executor(None, write_bundle, path, report, diagrams, tables, citations)

        report.export_path = str(path)
        await self.repository.save_report(report)
        try:
            project = await self.state.transition(project_id, ProjectStatus.EXPORTED)
        except DossierError as e:
            return ExportResult.failure(project_id, e, path=str(path), files=files)

        return ExportResult(
            project_id=project_id,
            status=project.status,
            path=str(path),
            files=files,
            message=f"Exported {len(files)} files",
        )

    # Diagnostics

    async def diagnose(self, project_id: str) -> Diagnostics:
        """Summarise how far a project has progressed through the pipeline."""
        try:
            project = await self.get_project(project_id)
        except DossierError as e:
            return Diagnostics.failure(project_id, e)

        documents = await self.repository.list_documents(project_id)
        chunks = await self.repository.count_chunks(project_id)
        embedded = await self.repository.count_embeddings(project_id)
        statuses = Counter(d.status.value for d in documents)

        return Diagnostics(
            project_id=project_id,
            status=project.status,
            message=project.last_error or "",
            documents_total=len(documents),
            document_statuses=dict(statuses),
            chunks_total=chunks,
            chunks_with_embeddings=embedded,
            chunks_without_embeddings=chunks - embedded,
            embedding_progress=round(embedded * 100 / chunks) if chunks else 0,
            has_report=await self.repository.get_report(project_id) is not None,
            citations=len(await self.repository.list_citations(project_id)),
            diagrams=len(await self.repository.list_diagrams(project_id)),
            tables=len(await self.repository.list_tables(project_id)),
            providers={
                "embedding": self.embedding.describe(),
                "llm": self.llm.describe() if self.llm else None,
            },
        )


def create_service(settings: Optional[Settings] = None) -> DossierService:
    """Build a service backed by SQLite and the providers named in the settings."""
    from dossier.embeddings.providers import create_embedding
    from dossier.providers import create_provider
    from dossier.storage.sqlite import SQLiteRepository

    settings = (settings or Settings()).with_env()
    get_logger()
    set_log_level(settings.log_level)

    llm = None
    if settings.llm_provider:
        api_key = {
            "openai": settings.openai_api_key,
            "anthropic": settings.anthropic_api_key,
        }.get(settings.llm_provider)
        llm = create_provider(settings.llm_provider, api_key=api_key)

    return DossierService(
        SQLiteRepository(settings.database_path),
        create_embedding(settings),
        settings,
        llm,
    )
