"""End-to-end tests for the pipeline service."""

import asyncio
import logging
import zipfile
from pathlib import Path

import pytest

from conftest import ScriptedLLM, words
from dossier.errors import NotFoundError
from dossier.ingest import UploadFile
from dossier.models import DocumentStatus, ProjectStatus
from dossier.pipeline import DossierService, create_service
from dossier.storage import MemoryRepository, SQLiteRepository
from dossier.utils.config import Settings

CORRUPTED_PDF = UploadFile(name="b.pdf", data=b"%PDF-1.4\nthis is not really a pdf", mime_type="application/pdf")


def text_file(name: str = "a.txt", count: int = 200) -> UploadFile:
    return UploadFile(name=name, data=words(count).encode(), mime_type="text/plain")


@pytest.fixture
def service(repository, embedding, settings):
    return DossierService(repository, embedding, settings)


async def embedded_project(service: DossierService) -> str:
    project = await service.create_project("Cloud migration", client="ACME")
    await service.upload(project.id, [text_file()])
    await service.ingest(project.id)
    result = await service.embed(project.id)
    assert result.success, result.message
    return project.id


class TestEndToEnd:
    """Full pipeline runs."""

    @pytest.mark.asyncio
    async def test_one_good_and_one_corrupted_document(self, service, repository):
        project = await service.create_project("Cloud migration", client="ACME", methodologies=["togaf"])

        uploaded = await service.upload(project.id, [text_file(), CORRUPTED_PDF])
        assert uploaded.success
        assert uploaded.uploaded == 2
        assert uploaded.status == ProjectStatus.UPLOADING

        ingested = await service.ingest(project.id)
        assert ingested.success
        assert (ingested.processed_documents, ingested.error_documents) == (1, 1)
        assert ingested.status == ProjectStatus.INGESTED
        documents = {d.name: d for d in await service.list_documents(project.id)}
        assert documents["a.txt"].status == DocumentStatus.PROCESSED
        assert documents["b.pdf"].status == DocumentStatus.ERROR
        assert "b.pdf" in documents["b.pdf"].error
        chunks = await repository.list_chunks(project.id)
        assert chunks
        assert {c.document_id for c in chunks} == {documents["a.txt"].id}
        assert ingested.total_chunks == len(chunks)

        embedded = await service.embed(project.id)
        assert embedded.success
        assert embedded.newly_embedded == len(chunks)
        assert embedded.status == ProjectStatus.EMBEDDED

        generated = await service.generate(project.id)
        assert generated.success
        assert generated.status == ProjectStatus.GENERATED
        citations = await repository.list_citations(project.id)
        assert citations
        assert {c.document_name for c in citations} == {"a.txt"}
        assert {c.document_id for c in citations} == {documents["a.txt"].id}

        exported = await service.export(project.id)
        assert exported.success
        assert exported.status == ProjectStatus.EXPORTED
        with zipfile.ZipFile(exported.path) as archive:
            names = archive.namelist()
        assert "report.md" in names
        assert "diagrams/gantt.mmd" in names
        assert "tables/RICE.csv" in names
        assert (await repository.get_report(project.id)).export_path == exported.path

        again = await service.export(project.id)
        assert again.success

    @pytest.mark.asyncio
    async def test_sqlite_backend(self, settings, embedding):
        service = DossierService(SQLiteRepository(settings.database_path), embedding, settings, ScriptedLLM())
        project_id = await embedded_project(service)

        generated = await service.generate(project_id)
        assert generated.success
        report = await service.repository.get_report(project_id)
        assert "Generated analysis" in report.markdown

        diagnostics = await service.diagnose(project_id)
        assert diagnostics.status == ProjectStatus.GENERATED
        assert diagnostics.embedding_progress == 100
        assert diagnostics.has_report
        assert diagnostics.providers["llm"] == {"provider": "scripted", "model": "scripted-1"}


class TestStateGuards:
    """Illegal or concurrent runs are rejected without side effects."""

    @pytest.mark.asyncio
    async def test_generate_on_draft(self, service):
        project = await service.create_project("Draft")
        result = await service.generate(project.id)
        assert not result.success
        assert result.error_kind == "pipeline_state_conflict"
        assert result.retryable is False
        assert (await service.get_project(project.id)).status == ProjectStatus.DRAFT

    @pytest.mark.asyncio
    async def test_generate_while_uploading(self, service):
        project = await service.create_project("Uploading")
        await service.upload(project.id, [text_file()])
        result = await service.generate(project.id)
        assert result.error_kind == "pipeline_state_conflict"
        assert (await service.get_project(project.id)).status == ProjectStatus.UPLOADING

    @pytest.mark.asyncio
    async def test_embed_before_ingest(self, service):
        project = await service.create_project("Early")
        result = await service.embed(project.id)
        assert result.error_kind == "pipeline_state_conflict"

    @pytest.mark.asyncio
    async def test_export_requires_generation(self, service):
        project_id = await embedded_project(service)
        result = await service.export(project_id)
        assert result.error_kind == "pipeline_state_conflict"

    @pytest.mark.asyncio
    async def test_concurrent_generate_is_rejected(self, repository, embedding, settings):
        llm = ScriptedLLM()
        llm.gate = asyncio.Event()
        service = DossierService(repository, embedding, settings, llm)
        project_id = await embedded_project(service)

        first = asyncio.create_task(service.generate(project_id))
        for _ in range(200):
            if llm.prompts:
                break
            await asyncio.sleep(0.01)
        assert (await service.get_project(project_id)).status == ProjectStatus.GENERATING

        second = await service.generate(project_id)
        assert second.error_kind == "pipeline_state_conflict"

        upload = await service.upload(project_id, [text_file("late.txt")])
        assert upload.error_kind == "pipeline_state_conflict"
        deleted = await service.delete_project(project_id)
        assert deleted.error_kind == "pipeline_state_conflict"

        llm.gate.set()
        result = await first
        assert result.success
        assert (await service.get_project(project_id)).status == ProjectStatus.GENERATED

    @pytest.mark.asyncio
    async def test_failed_generation_can_be_retried(self, service, repository, monkeypatch):
        project_id = await embedded_project(service)

        async def broken_save(report):
            raise RuntimeError("disk full")

        monkeypatch.setattr(repository, "save_report", broken_save)
        with pytest.raises(RuntimeError):
            await service.generate(project_id)
        project = await service.get_project(project_id)
        assert project.status == ProjectStatus.ERROR
        assert project.last_error == "disk full"
        monkeypatch.undo()

        result = await service.generate(project_id)
        assert result.success
        project = await service.get_project(project_id)
        assert project.status == ProjectStatus.GENERATED
        assert project.last_error is None

        citations = await repository.list_citations(project_id)
        assert len(citations) == result.citations
        keys = [(c.document_id, c.page, c.snippet) for c in citations]
        assert len(keys) == len(set(keys))


class TestUploadAndIngest:
    """Upload classification and ingestion edge cases."""

    @pytest.mark.asyncio
    async def test_upload_outcomes(self, service):
        project = await service.create_project("Uploads")
        result = await service.upload(project.id, [
            text_file(),
            text_file(),
            UploadFile(name="tool.exe", data=b"MZ"),
            UploadFile(name="empty.txt", data=b""),
        ])
        assert [f.outcome for f in result.files] == ["duplicate", "error", "error", "uploaded"]
        assert result.message == "1 uploaded, 1 duplicate, 2 error"

        again = await service.upload(project.id, [text_file()])
        assert [f.outcome for f in again.files] == ["duplicate"]
        assert len(await service.list_documents(project.id)) == 1

    @pytest.mark.asyncio
    async def test_rejected_upload_keeps_status(self, service):
        project = await service.create_project("Rejected")
        result = await service.upload(project.id, [UploadFile(name="tool.exe", data=b"MZ")])
        assert result.uploaded == 0
        assert (await service.get_project(project.id)).status == ProjectStatus.DRAFT

    @pytest.mark.asyncio
    async def test_ingest_without_documents(self, service):
        project = await service.create_project("Empty")
        result = await service.ingest(project.id)
        assert result.error_kind == "missing_prerequisite"
        assert (await service.get_project(project.id)).status == ProjectStatus.DRAFT

    @pytest.mark.asyncio
    async def test_all_documents_failing(self, service):
        project = await service.create_project("Broken")
        await service.upload(project.id, [CORRUPTED_PDF])
        result = await service.ingest(project.id)
        assert not result.success
        assert result.error_kind == "missing_prerequisite"
        assert result.error_documents == 1
        project = await service.get_project(project.id)
        assert project.status == ProjectStatus.ERROR
        assert project.last_error

    @pytest.mark.asyncio
    async def test_ingest_with_nothing_pending(self, service):
        project = await service.create_project("Twice")
        await service.upload(project.id, [text_file()])
        first = await service.ingest(project.id)
        second = await service.ingest(project.id)
        assert second.success
        assert second.total_chunks == first.total_chunks
        assert second.status == ProjectStatus.INGESTED

    @pytest.mark.asyncio
    async def test_reingest_keeps_processed_documents(self, service, repository):
        project = await service.create_project("Incremental")
        await service.upload(project.id, [text_file()])
        first = await service.ingest(project.id)
        first_ids = {c.id for c in await repository.list_chunks(project.id)}

        await service.upload(project.id, [text_file("c.md", 100)])
        second = await service.ingest(project.id)
        assert second.processed_documents == 1
        chunk_ids = {c.id for c in await repository.list_chunks(project.id)}
        assert first_ids < chunk_ids
        assert second.total_chunks == first.total_chunks + second.new_chunks

    @pytest.mark.asyncio
    async def test_project_defaults_come_from_settings(self, service, settings):
        project = await service.create_project("Defaults")
        assert project.rag_options == settings.rag
        assert project.status == ProjectStatus.DRAFT


class TestEmbedSearchAndDiagnose:
    """Embedding, search and diagnostics boundaries."""

    @pytest.mark.asyncio
    async def test_reembed(self, service, repository):
        project_id = await embedded_project(service)
        result = await service.embed(project_id, reembed=True)
        assert result.success
        assert result.newly_embedded == await repository.count_chunks(project_id)

    @pytest.mark.asyncio
    async def test_search(self, service):
        project_id = await embedded_project(service)
        response = await service.search(project_id, "budget and costs", min_similarity=0.0)
        assert response.success
        assert response.total_results == len(response.results) > 0
        assert response.context.startswith("[1] ")
        assert {c.section for c in response.citations} == {"search"}

    @pytest.mark.asyncio
    async def test_search_rejects_empty_query(self, service):
        project_id = await embedded_project(service)
        response = await service.search(project_id, "   ")
        assert response.error_kind == "unsupported_input"

    @pytest.mark.asyncio
    async def test_search_unknown_project(self, service):
        response = await service.search("ghost", "budget")
        assert response.error_kind == "not_found"

    @pytest.mark.asyncio
    async def test_diagnose_partial_progress(self, service):
        project = await service.create_project("Diagnose")
        await service.upload(project.id, [text_file(), CORRUPTED_PDF])
        await service.ingest(project.id)

        diagnostics = await service.diagnose(project.id)
        assert diagnostics.documents_total == 2
        assert diagnostics.document_statuses == {"processed": 1, "error": 1}
        assert diagnostics.chunks_total > 0
        assert diagnostics.chunks_with_embeddings == 0
        assert diagnostics.embedding_progress == 0
        assert not diagnostics.has_report
        assert diagnostics.providers["llm"] is None


class TestDeletion:
    """Removing projects and documents."""

    @pytest.mark.asyncio
    async def test_delete_document(self, service, repository):
        project = await service.create_project("Docs")
        await service.upload(project.id, [text_file(), text_file("c.md", 100)])
        await service.ingest(project.id)
        document = (await service.list_documents(project.id))[0]

        result = await service.delete_document(project.id, document.id)
        assert result.success
        assert not Path(document.path).exists()
        assert document.id not in {c.document_id for c in await repository.list_chunks(project.id)}

        missing = await service.delete_document(project.id, document.id)
        assert missing.error_kind == "not_found"

    @pytest.mark.asyncio
    async def test_delete_project(self, service, settings):
        project = await service.create_project("Gone")
        await service.upload(project.id, [text_file()])
        upload_dir = Path(settings.upload_dir) / project.id
        assert upload_dir.exists()

        result = await service.delete_project(project.id)
        assert result.success
        assert not upload_dir.exists()
        with pytest.raises(NotFoundError):
            await service.get_project(project.id)


class TestFactory:
    """Building a service from settings."""

    def test_create_service(self, tmp_path, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        settings = Settings(
            database_path=str(tmp_path / "dossier.db"),
            embedding_provider="fake",
            llm_provider="anthropic",
        )
        service = create_service(settings)
        assert isinstance(service.repository, SQLiteRepository)
        assert service.embedding.name == "fake"
        assert service.llm.name == "anthropic"
        assert service.settings.openai_api_key == "sk-test"

    def test_create_service_sets_up_package_logging(self, tmp_path):
        settings = Settings(
            database_path=str(tmp_path / "dossier.db"),
            embedding_provider="fake",
            log_level="warning",
        )
        create_service(settings)
        create_service(settings)
        package = logging.getLogger("dossier")
        assert len(package.handlers) == 1
        assert package.level == logging.WARNING

    def test_memory_service_without_llm(self, embedding):
        service = DossierService(MemoryRepository(), embedding)
        assert service.llm is None
        assert service.orchestrator.provider is None
