"""
Pipeline example: upload two documents, build the report and export it.
"""

import asyncio
import logging

from dossier import DossierService, MemoryRepository, RagOptions, UploadFile
from dossier.embeddings import FakeEmbedding
from dossier.utils import Settings, get_logger, set_log_level

NOTES = """The audit of the current situation shows an ageing architecture.
Costs of the on-premise platform keep rising and the budget for 2025 is frozen.
The roadmap proposes a migration in four phases with a security review first.
Governance relies on a steering committee that meets every month."""


async def main():
    get_logger()
    set_log_level(logging.INFO)

    # The fake embedding keeps the example offline
    settings = Settings(data_dir="demo-data", upload_dir="demo-data/uploads", embed_delay=0)
    service = DossierService(MemoryRepository(), FakeEmbedding(), settings)

    project = await service.create_project(
        "Cloud migration",
        client="ACME",
        methodologies=["TOGAF", "C4"],
        rag_options=RagOptions(chunk_size=400, overlap=50, min_similarity=0.05),
    )

    upload = await service.upload(project.id, [
        UploadFile(name="notes.txt", data=NOTES.encode(), mime_type="text/plain"),
        UploadFile(name="team.csv", data=b"name,role\nAlice,Sponsor\nBob,Architect\n"),
    ])
    print(f"Upload: {upload.message}")

    ingest = await service.ingest(project.id)
    print(f"Ingest: {ingest.message}")

    embed = await service.embed(project.id)
    print(f"Embed: {embed.message}")

    search = await service.search(project.id, "budget and costs")
    print(f"Search found {search.total_results} passages:\n{search.context}\n")

    generate = await service.generate(project.id)
    print(f"Generate: {generate.message} ({generate.citations} citations)")

    export = await service.export(project.id)
    print(f"Export: {export.path}")

    diagnostics = await service.diagnose(project.id)
    print(f"Status: {diagnostics.status.value}, embedding progress {diagnostics.embedding_progress}%")


if __name__ == "__main__":
    asyncio.run(main())
