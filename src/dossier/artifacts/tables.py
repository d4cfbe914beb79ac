"""CSV table generators."""

import csv
import io

from dossier.artifacts.registry import TABLES
from dossier.models import Project


def _to_csv(header: list[str], rows: list[list]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue()


RICE_FEATURES = [
    # feature, reach, impact, confidence, effort
    ("Single sign-on", 9, 8, 9, 5),
    ("Search engine", 8, 7, 8, 8),
    ("Mobile application", 7, 8, 7, 9),
    ("Advanced analytics", 6, 6, 8, 6),
    ("Push notifications", 8, 5, 9, 4),
    ("Public API", 5, 7, 7, 7),
]


def rice_score(reach: float, impact: float, confidence: float, effort: float) -> float:
    return reach * impact * confidence / effort


@TABLES.register("RICE", "Prioritisation (RICE)")
def rice(context: str, project: Project) -> str:
    scored = sorted(
        ((name, r, i, c, e, rice_score(r, i, c, e)) for name, r, i, c, e in RICE_FEATURES),
        key=lambda row: (-row[5], row[0]),
    )
    rows = []
    for rank, (name, r, i, c, e, score) in enumerate(scored):
        priority = "P1" if rank < 2 else "P2" if rank < 4 else "P3"
        rows.append([name, r, i, c, e, f"{score:.1f}", priority])
    return _to_csv(["Feature", "Reach", "Impact", "Confidence", "Effort", "RICE score", "Priority"], rows)


@TABLES.register("Budget", "Budget estimate")
def budget(context: str, project: Project) -> str:
    return _to_csv(
        ["Phase", "Category", "Item", "Amount (EUR)", "Type", "Period"],
        [
            ["P1", "Infrastructure", "Cloud platform", 45000, "CAPEX", "6 months"],
            ["P1", "Development", "Development team (3 FTE)", 180000, "OPEX", "6 months"],
            ["P1", "Security", "Audit and pentesting", 25000, "CAPEX", "One-off"],
            ["P2", "Development", "Core features", 240000, "OPEX", "8 months"],
            ["P2", "Infrastructure", "Monitoring and logs", 18000, "OPEX", "8 months"],
            ["P3", "Mobile", "iOS/Android app", 120000, "CAPEX", "6 months"],
            ["P3", "Analytics", "BI platform", 35000, "CAPEX", "4 months"],
            ["P4", "Training", "Change management", 40000, "OPEX", "3 months"],
        ],
    )


@TABLES.register("RACI", "Responsibility matrix (RACI)")
def raci(context: str, project: Project) -> str:
    return _to_csv(
        ["Activity", "CIO", "Project lead", "Architect", "Developers", "Users", "Management"],
        [
            ["Architecture definition", "A", "R", "R", "C", "I", "A"],
            ["Feature development", "A", "A", "C", "R", "I", "I"],
            ["User testing", "I", "A", "I", "C", "R", "I"],
            ["Production deployment", "R", "A", "C", "R", "I", "A"],
            ["User training", "C", "A", "I", "I", "R", "A"],
            ["Maintenance and support", "A", "I", "C", "R", "I", "I"],
        ],
    )


@TABLES.register("BSC", "Balanced scorecard")
def balanced_scorecard(context: str, project: Project) -> str:
    return _to_csv(
        ["Perspective", "KPI", "Target", "Frequency", "Owner"],
        [
            ["Financial", "Project ROI", "> 25%", "Quarterly", "Management"],
            ["Financial", "Cost per user", "< 15 EUR/month", "Monthly", "CIO"],
            ["Customer", "User satisfaction", "> 4.2/5", "Monthly", "Product owner"],
            ["Customer", "Adoption rate", "> 75%", "Weekly", "Project lead"],
            ["Process", "System availability", "> 99.5%", "Real time", "SRE"],
            ["Process", "Response time", "< 2s", "Real time", "Architect"],
            ["Learning", "Team training", "100%", "Quarterly", "HR"],
            ["Learning", "Technology watch", "2h/week", "Monthly", "Tech lead"],
        ],
    )
