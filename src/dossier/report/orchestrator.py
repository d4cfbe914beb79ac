"""Turn retrieved context into a cited, multi-section report."""

import asyncio
import logging
from datetime import datetime
from typing import Any, Optional

from dossier.artifacts import DIAGRAMS, TABLES
from dossier.models import Citation, DataTable, Diagram, Project, Report, RetrievalResult
from dossier.providers.base import LLMProvider
from dossier.report.sections import REPORT_SECTIONS, ReportSection
from dossier.report.templates import build_variables, render
from dossier.results import GenerateResult
from dossier.retrieval.retriever import (
    NO_RELEVANT_CONTEXT,
    Retriever,
    extract_citations,
    format_context,
)
from dossier.storage.base import ProjectRepository

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a senior consultant specialised in digital transformation. "
    "You write sections of institutional reports in a professional, "
    "consulting-firm register: short, punchy paragraphs, figures in bold "
    "when available, and 'Key points' call-outs where relevant."
)


def pending_section(section: ReportSection) -> str:
    return f"# {section.title}\n\n*Section pending generation.*"


def dedupe_citations(citations: list[Citation]) -> list[Citation]:
    """Keep the first citation for each (document, page, snippet)."""
    seen = set()
    unique = []
    for citation in citations:
        key = (citation.document_id, citation.page, citation.snippet)
        if key in seen:
            continue
        seen.add(key)
        unique.append(citation)
    return unique


class ReportOrchestrator:
    """Generate every section, the artifacts and the citations of a project.

    Section failures degrade to a placeholder section. Failures while
    writing artifacts, citations or the report propagate to the caller.
    """

    def __init__(
        self,
        retriever: Retriever,
        repository: ProjectRepository,
        provider: Optional[LLMProvider] = None,
        *,
        model: Optional[str] = None,
        temperature: float = 0.7,
        max_tokens: int = 1500,
        max_words: int = 800,
        timeout: float = 120.0,
    ):
        self.retriever = retriever
        self.repository = repository
        self.provider = provider
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_words = max_words
        self.timeout = timeout

    def build_prompt(self, section: ReportSection, context: str, variables: dict[str, Any]) -> str:
        methodologies = variables.get("methodologies") or "none specified"
        return f"""Write the section "{section.title}" of an institutional report for the project "{variables['title']}" of the client "{variables['client']}".

Methodologies to apply: {methodologies}

Context extracted from the documents:
{context}

Instructions:
- Keep the [[Document:page]] citation markers from the context next to the facts they support
- At most {self.max_words} words
- Language: {variables['language']}

Write only the section content, without the main title (it is added automatically)."""

    async def _ask_provider(self, section: ReportSection, context: str, variables: dict[str, Any]) -> str:
        response = await asyncio.wait_for(
            self.provider.complete(
                [
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": self.build_prompt(section, context, variables)},
                ],
                model=self.model,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            ),
            self.timeout,
        )
        return response.get("content") or ""

    async def generate_section(
        self,
        project: Project,
        section: ReportSection,
        base_variables: dict[str, Any],
    ) -> tuple[str, list[RetrievalResult]]:
        """
        Generate one section.

        Returns:
            The rendered markdown and the retrieval results it was based on
        """
        results: list[RetrievalResult] = []
        if section.keywords:
            results = await self.retriever.retrieve_by_section(
                project.id,
                section.keywords,
                project.rag_options.top_k,
                project.rag_options.min_similarity,
            )
        context = format_context(results)
        variables = {**base_variables, "context": context}

        content = section.template
        if self.provider is not None and context != NO_RELEVANT_CONTEXT:
            try:
                generated = (await self._ask_provider(section, context, variables)).strip()
            except Exception as e:
                logger.warning(f"Text generation failed for section '{section.id}', using template: {e}")
            else:
                if generated:
                    content = generated if generated.startswith("#") else f"# {section.title}\n\n{generated}"

        return render(content, variables), results

    def build_artifacts(self, project: Project) -> tuple[list[Diagram], list[DataTable]]:
        diagrams = [
            Diagram(
                project_id=project.id,
                kind=kind,
                title=DIAGRAMS.title(kind),
                mermaid=DIAGRAMS.generate(kind, "", project),
            )
            for kind in DIAGRAMS.kinds()
        ]
        tables = [
            DataTable(
                project_id=project.id,
                name=name,
                title=TABLES.title(name),
                csv=TABLES.generate(name, "", project),
            )
            for name in TABLES.kinds()
        ]
        return diagrams, tables

    async def run(self, project: Project) -> GenerateResult:
        """Generate and persist the report of a project."""
        generated_at = datetime.now()
        base_variables = build_variables(project, NO_RELEVANT_CONTEXT, generated_at)

        parts: list[str] = []
        citations: list[Citation] = []
        for section in REPORT_SECTIONS:
            try:
                text, results = await self.generate_section(project, section, base_variables)
            except Exception as e:
                logger.error(f"Section '{section.id}' of project {project.id} failed: {e}")
                text, results = pending_section(section), []
            parts.append(text)
            citations.extend(extract_citations(results, section.id, project.id))
            logger.debug(f"Section '{section.id}' done with {len(results)} source chunk(s)")

        diagrams, tables = self.build_artifacts(project)
        await self.repository.replace_artifacts(project.id, diagrams, tables)

        citations = dedupe_citations(citations)
        await self.repository.replace_citations(project.id, citations)

        markdown = "\n\n".join(parts) + "\n"
        await self.repository.save_report(Report(
            project_id=project.id,
            markdown=markdown,
            generated_at=generated_at,
        ))

        logger.info(
            f"Report for project {project.id}: {len(parts)} sections, {len(citations)} citations,"
            f" {len(diagrams)} diagrams, {len(tables)} tables"
        )
        return GenerateResult(
            project_id=project.id,
            report_length=len(markdown),
            sections=len(parts),
            diagrams=len(diagrams),
            tables=len(tables),
            citations=len(citations),
        )
