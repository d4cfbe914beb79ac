"""Tests for the diagram and table generators."""

import csv
import io
from datetime import datetime

import pytest

from dossier.artifacts import DIAGRAMS, TABLES, ArtifactRegistry, rice_score
from dossier.errors import NotFoundError, UnknownArtifactKindError
from dossier.models import Project


@pytest.fixture
def project():
    return Project(
        id="p1",
        title="Cloud [migration]",
        client="ACME",
        created_at=datetime(2025, 3, 1, 9, 30),
    )


def rows(text: str) -> list[list[str]]:
    return list(csv.reader(io.StringIO(text)))


class TestRegistry:
    """Tests for the kind-to-generator registry."""

    def test_builtin_kinds(self):
        assert DIAGRAMS.kinds() == ["c4-context", "c4-container", "bpmn", "gantt", "stride", "sequence"]
        assert TABLES.kinds() == ["RICE", "Budget", "RACI", "BSC"]
        assert "gantt" in DIAGRAMS
        assert len(TABLES) == 4

    def test_unknown_kind(self, project):
        with pytest.raises(UnknownArtifactKindError) as exc:
            DIAGRAMS.generate("pie", "", project)
        assert isinstance(exc.value, NotFoundError)
        assert exc.value.kind == "not_found"
        with pytest.raises(UnknownArtifactKindError):
            TABLES.title("SWOT")

    def test_register_and_duplicate(self, project):
        registry = ArtifactRegistry("chart")

        @registry.register("echo", "Echo")
        def echo(context, project):
            return f"{project.id}:{context}"

        assert registry.generate("echo", "ctx", project) == "p1:ctx"
        assert registry.title("echo") == "Echo"
        with pytest.raises(ValueError):
            registry.register("echo", "Again")(echo)


class TestDiagrams:
    """Tests for Mermaid generators."""

    def test_every_kind_is_deterministic(self, project):
        for kind in DIAGRAMS.kinds():
            first = DIAGRAMS.generate(kind, "some context", project)
            second = DIAGRAMS.generate(kind, "some context", project)
            assert first == second
            assert first.strip()

    def test_gantt_dates_follow_project_creation(self, project):
        text = DIAGRAMS.generate("gantt", "", project)
        assert text.startswith("gantt")
        assert "Analysis and audit :audit, 2025-03-01, 2025-04-15" in text
        assert "Production go-live :golive, 2025-09-13, 2025-09-30" in text

    def test_labels_are_sanitized(self, project):
        text = DIAGRAMS.generate("c4-context", "", project)
        assert "System[Cloud  migration]" in text
        assert "User[ACME users]" in text


class TestTables:
    """Tests for CSV generators."""

    def test_rice_score(self):
        assert rice_score(9, 8, 9, 5) == pytest.approx(129.6)

    def test_rice_is_ordered_by_score(self, project):
        table = rows(TABLES.generate("RICE", "", project))
        assert table[0][-2:] == ["RICE score", "Priority"]
        body = table[1:]
        scores = [float(row[5]) for row in body]
        assert scores == sorted(scores, reverse=True)
        assert [row[0] for row in body[:2]] == ["Single sign-on", "Push notifications"]
        assert [row[6] for row in body] == ["P1", "P1", "P2", "P2", "P3", "P3"]

    def test_every_table_is_rectangular(self, project):
        for name in TABLES.kinds():
            table = rows(TABLES.generate(name, "", project))
            assert len(table) > 1
            assert len({len(row) for row in table}) == 1

    def test_no_trailing_carriage_returns(self, project):
        assert "\r" not in TABLES.generate("Budget", "", project)
