"""
Report sections, template rendering, orchestration and export.
"""

from dossier.report.export import write_bundle
from dossier.report.orchestrator import ReportOrchestrator, dedupe_citations, pending_section
from dossier.report.sections import REPORT_SECTIONS, ReportSection, get_section
from dossier.report.templates import build_variables, render

__all__ = [
    "write_bundle",
    "ReportOrchestrator",
    "dedupe_citations",
    "pending_section",
    "REPORT_SECTIONS",
    "ReportSection",
    "get_section",
    "build_variables",
    "render",
]
