"""Zip bundle of a generated report and its artifacts."""

import csv
import io
import logging
import zipfile
from pathlib import Path

from dossier.models import Citation, DataTable, Diagram, Report

logger = logging.getLogger(__name__)

CHECKLISTS = {
    "owasp": """# OWASP Top 10 checklist

## A01 Broken access control
- [ ] Enforce access control on the server side
- [ ] Apply least privilege
- [ ] Review permissions regularly

## A02 Cryptographic failures
- [ ] Encrypt sensitive data in transit and at rest
- [ ] Use current, vetted algorithms
- [ ] Manage keys securely

## A03 Injection
- [ ] Validate and sanitise all user input
- [ ] Use parameterised queries
""",
    "gdpr": """# Data protection checklist

- [ ] Keep a record of processing activities
- [ ] Document the legal basis of each processing
- [ ] Run impact assessments for high-risk processing
- [ ] Define retention periods
- [ ] Handle data subject requests within the legal delay
""",
}


def citations_csv(citations: list[Citation]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["section", "document", "page", "confidence", "snippet"])
    for c in citations:
        writer.writerow([c.section, c.document_name or c.document_id, c.page, f"{c.confidence:.3f}", c.snippet])
    return buffer.getvalue()


def write_bundle(
    path: str | Path,
    report: Report,
    diagrams: list[Diagram],
    tables: list[DataTable],
    citations: list[Citation],
) -> list[str]:
    """
    Write the export archive.

    Args:
        path: Target zip file, parent directories are created
        report: The generated report
        diagrams: Diagrams of the project
        tables: Data tables of the project
        citations: Citations of the report

    Returns:
        Names of the archive members
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    members: dict[str, str] = {"report.md": report.markdown}
    for diagram in diagrams:
        members[f"diagrams/{diagram.kind}.mmd"] = diagram.mermaid
    for table in tables:
        members[f"tables/{table.name}.csv"] = table.csv
    members["citations.csv"] = citations_csv(citations)
    for name, content in CHECKLISTS.items():
        members[f"checklists/{name}.md"] = content

    with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
        for name, content in members.items():
            archive.writestr(name, content)

    logger.info(f"Exported {len(members)} files to {path}")
    return list(members)
