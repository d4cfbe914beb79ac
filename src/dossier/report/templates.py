"""Placeholder substitution for section templates."""

import re
from datetime import datetime
from typing import Any

from dossier.artifacts import DIAGRAMS, TABLES
from dossier.models import Project
from dossier.report.sections import REPORT_SECTIONS, SECTION_PLACEHOLDERS

PLACEHOLDER = re.compile(r"\{\{\s*(\w+)\s*\}\}")


def render(template: str, variables: dict[str, Any]) -> str:
    """Replace every ``{{name}}``; names without a value become empty."""
    return PLACEHOLDER.sub(lambda m: str(variables.get(m.group(1), "")), template)


def table_of_contents() -> str:
    numbered = [s for s in REPORT_SECTIONS if s.id not in ("cover", "toc")]
    return "\n".join(f"{i}. {s.title}" for i, s in enumerate(numbered, start=1))


def build_variables(
    project: Project,
    context: str,
    generated_at: datetime,
) -> dict[str, Any]:
    """Variables shared by every section of one report run."""
    variables: dict[str, Any] = dict(SECTION_PLACEHOLDERS)
    variables.update({
        "title": project.title,
        "client": project.client or "Client",
        "lead": project.lead or "Consultant",
        "date": generated_at.strftime("%Y-%m-%d"),
        "language": project.language,
        "context": context,
        "methodologies": ", ".join(project.methodologies),
        "tableOfContents": table_of_contents(),
        "diagrams": "\n".join(f"- {DIAGRAMS.title(kind)}" for kind in DIAGRAMS.kinds()),
        "dataTables": "\n".join(f"- {TABLES.title(kind)}" for kind in TABLES.kinds()),
    })
    return variables
