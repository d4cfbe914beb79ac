"""SQLite backend for project storage."""

import asyncio
import json
import sqlite3
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

from dossier.embeddings.codec import decode_vector, encode_vector
from dossier.errors import NotFoundError, PipelineStateConflictError
from dossier.models import (
    Chunk,
    Citation,
    DataTable,
    Diagram,
    Document,
    Embedding,
    Project,
    ProjectStatus,
    RagOptions,
    Report,
)
from dossier.storage.base import EmbeddedChunk, ProjectRepository

T = TypeVar("T")

SCHEMA = """
CREATE TABLE IF NOT EXISTS projects (
    id TEXT PRIMARY KEY,
    title TEXT NOT NULL,
    client TEXT NOT NULL,
    lead TEXT NOT NULL,
    language TEXT NOT NULL,
    methodologies TEXT NOT NULL,
    rag_options TEXT NOT NULL,
    status TEXT NOT NULL,
    last_error TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS documents (
    seq INTEGER PRIMARY KEY AUTOINCREMENT,
    id TEXT NOT NULL UNIQUE,
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    path TEXT NOT NULL,
    size INTEGER NOT NULL,
    mime_type TEXT NOT NULL,
    status TEXT NOT NULL,
    error TEXT,
    pages INTEGER NOT NULL DEFAULT 0,
    metadata TEXT NOT NULL,
    uploaded_at TEXT NOT NULL,
    processed_at TEXT
);
CREATE TABLE IF NOT EXISTS chunks (
    id TEXT PRIMARY KEY,
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    document_id TEXT NOT NULL REFERENCES documents(id) ON DELETE CASCADE,
    idx INTEGER NOT NULL,
    text TEXT NOT NULL,
    metadata TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_chunks_project ON chunks(project_id);
CREATE TABLE IF NOT EXISTS embeddings (
    chunk_id TEXT PRIMARY KEY REFERENCES chunks(id) ON DELETE CASCADE,
    vector BLOB NOT NULL,
    dimension INTEGER NOT NULL,
    created_at TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS citations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    document_id TEXT NOT NULL,
    document_name TEXT NOT NULL,
    section TEXT NOT NULL,
    page INTEGER NOT NULL,
    snippet TEXT NOT NULL,
    confidence REAL NOT NULL
);
CREATE TABLE IF NOT EXISTS reports (
    project_id TEXT PRIMARY KEY REFERENCES projects(id) ON DELETE CASCADE,
    markdown TEXT NOT NULL,
    generated_at TEXT NOT NULL,
    export_path TEXT
);
CREATE TABLE IF NOT EXISTS diagrams (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    kind TEXT NOT NULL,
    title TEXT NOT NULL,
    mermaid TEXT NOT NULL
);
CREATE TABLE IF NOT EXISTS data_tables (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id TEXT NOT NULL REFERENCES projects(id) ON DELETE CASCADE,
    name TEXT NOT NULL,
    title TEXT NOT NULL,
    csv TEXT NOT NULL
);
"""


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteRepository(ProjectRepository):
    """SQLite-based project storage.

    Opens one connection per call and pushes the blocking work to the
    default executor. Foreign keys with ``ON DELETE CASCADE`` implement the
    ownership rules; multi-statement writes run in a single transaction.
    """

    def __init__(self, db_path: str = "dossier.db"):
        """Initialize SQLite backend.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection."""
        Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def _ensure_tables(self, conn: sqlite3.Connection) -> None:
        """Ensure the schema exists."""
        conn.executescript(SCHEMA)

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, partial(self._with_connection, func, *args))

    def _with_connection(self, func: Callable[..., T], *args: Any) -> T:
        conn = self._get_connection()
        try:
            self._ensure_tables(conn)
            with conn:
                return func(conn, *args)
        finally:
            conn.close()

    # Row mapping

    @staticmethod
    def _project_from_row(row: sqlite3.Row) -> Project:
        return Project(
            id=row["id"],
            title=row["title"],
            client=row["client"],
            lead=row["lead"],
            language=row["language"],
            methodologies=json.loads(row["methodologies"]),
            rag_options=RagOptions(**json.loads(row["rag_options"])),
            status=row["status"],
            last_error=row["last_error"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    @staticmethod
    def _document_from_row(row: sqlite3.Row) -> Document:
        return Document(
            id=row["id"],
            project_id=row["project_id"],
            name=row["name"],
            path=row["path"],
            size=row["size"],
            mime_type=row["mime_type"],
            status=row["status"],
            error=row["error"],
            pages=row["pages"],
            metadata=json.loads(row["metadata"]),
            uploaded_at=datetime.fromisoformat(row["uploaded_at"]),
            processed_at=_parse_time(row["processed_at"]),
        )

    @staticmethod
    def _chunk_from_row(row: sqlite3.Row) -> Chunk:
        return Chunk(
            id=row["id"],
            document_id=row["document_id"],
            project_id=row["project_id"],
            index=row["idx"],
            text=row["text"],
            metadata=json.loads(row["metadata"]),
        )

    # Projects

    async def save_project(self, project: Project) -> None:
        await self._run(self._save_project_sync, project)

    def _save_project_sync(self, conn: sqlite3.Connection, project: Project) -> None:
        conn.execute(
            """
            INSERT INTO projects
            (id, title, client, lead, language, methodologies, rag_options,
             status, last_error, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                title = excluded.title,
                client = excluded.client,
                lead = excluded.lead,
                language = excluded.language,
                methodologies = excluded.methodologies,
                rag_options = excluded.rag_options,
                status = excluded.status,
                last_error = excluded.last_error,
                updated_at = excluded.updated_at
            """,
            (
                project.id,
                project.title,
                project.client,
                project.lead,
                project.language,
                json.dumps(project.methodologies),
                project.rag_options.model_dump_json(),
                project.status.value,
                project.last_error,
                project.created_at.isoformat(),
                project.updated_at.isoformat(),
            ),
        )

    async def get_project(self, project_id: str) -> Optional[Project]:
        return await self._run(self._get_project_sync, project_id)

    def _get_project_sync(self, conn: sqlite3.Connection, project_id: str) -> Optional[Project]:
        row = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
        return self._project_from_row(row) if row else None

    async def transition_status(
        self,
        project_id: str,
        allowed: frozenset[ProjectStatus],
        target: ProjectStatus,
        last_error: Optional[str] = None,
        update_error: bool = False,
    ) -> tuple[ProjectStatus, Project]:
        return await self._run(
            self._transition_status_sync, project_id, allowed, target, last_error, update_error
        )

    def _transition_status_sync(
        self,
        conn: sqlite3.Connection,
        project_id: str,
        allowed: frozenset[ProjectStatus],
        target: ProjectStatus,
        last_error: Optional[str],
        update_error: bool,
    ) -> tuple[ProjectStatus, Project]:
        # Write lock first so the status read below is the one being replaced
        conn.execute("BEGIN IMMEDIATE")
        row = conn.execute("SELECT status FROM projects WHERE id = ?", (project_id,)).fetchone()
        if row is None:
            raise NotFoundError("Project", project_id)
        previous = ProjectStatus(row["status"])
        if previous not in allowed:
            raise PipelineStateConflictError(project_id, previous.value, target.value)

        statuses = sorted(status.value for status in allowed)
        assignments = "status = ?, updated_at = ?"
        params: list[Any] = [target.value, datetime.now().isoformat()]
        if update_error:
            assignments += ", last_error = ?"
            params.append(last_error)
        cursor = conn.execute(
            f"UPDATE projects SET {assignments} "
            f"WHERE id = ? AND status IN ({', '.join('?' * len(statuses))})",
            (*params, project_id, *statuses),
        )
        if cursor.rowcount == 0:
            raise PipelineStateConflictError(project_id, previous.value, target.value)

        updated = conn.execute("SELECT * FROM projects WHERE id = ?", (project_id,)).fetchone()
        return previous, self._project_from_row(updated)

    async def list_projects(self) -> list[Project]:
        return await self._run(self._list_projects_sync)

    def _list_projects_sync(self, conn: sqlite3.Connection) -> list[Project]:
        rows = conn.execute("SELECT * FROM projects ORDER BY created_at DESC").fetchall()
        return [self._project_from_row(row) for row in rows]

    async def delete_project(self, project_id: str) -> bool:
        return await self._run(self._delete_project_sync, project_id)

    def _delete_project_sync(self, conn: sqlite3.Connection, project_id: str) -> bool:
        cursor = conn.execute("DELETE FROM projects WHERE id = ?", (project_id,))
        return cursor.rowcount > 0

    # Documents

    async def save_document(self, document: Document) -> None:
        await self._run(self._save_document_sync, document)

    def _save_document_sync(self, conn: sqlite3.Connection, document: Document) -> None:
        conn.execute(
            """
            INSERT INTO documents
            (id, project_id, name, path, size, mime_type, status, error, pages,
             metadata, uploaded_at, processed_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                path = excluded.path,
                size = excluded.size,
                mime_type = excluded.mime_type,
                status = excluded.status,
                error = excluded.error,
                pages = excluded.pages,
                metadata = excluded.metadata,
                processed_at = excluded.processed_at
            """,
            (
                document.id,
                document.project_id,
                document.name,
                document.path,
                document.size,
                document.mime_type,
                document.status.value,
                document.error,
                document.pages,
                json.dumps(document.metadata),
                document.uploaded_at.isoformat(),
                document.processed_at.isoformat() if document.processed_at else None,
            ),
        )

    async def get_document(self, document_id: str) -> Optional[Document]:
        return await self._run(self._get_document_sync, document_id)

    def _get_document_sync(self, conn: sqlite3.Connection, document_id: str) -> Optional[Document]:
        row = conn.execute("SELECT * FROM documents WHERE id = ?", (document_id,)).fetchone()
        return self._document_from_row(row) if row else None

    async def list_documents(self, project_id: str) -> list[Document]:
        return await self._run(self._list_documents_sync, project_id)

    def _list_documents_sync(self, conn: sqlite3.Connection, project_id: str) -> list[Document]:
        rows = conn.execute(
            "SELECT * FROM documents WHERE project_id = ? ORDER BY seq",
            (project_id,),
        ).fetchall()
        return [self._document_from_row(row) for row in rows]

    async def delete_document(self, document_id: str) -> bool:
        return await self._run(self._delete_document_sync, document_id)

    def _delete_document_sync(self, conn: sqlite3.Connection, document_id: str) -> bool:
        cursor = conn.execute("DELETE FROM documents WHERE id = ?", (document_id,))
        return cursor.rowcount > 0

    # Chunks

    async def replace_chunks(self, project_id: str, chunks: list[Chunk]) -> None:
        await self._run(self._replace_chunks_sync, project_id, chunks)

    def _replace_chunks_sync(self, conn: sqlite3.Connection, project_id: str, chunks: list[Chunk]) -> None:
        conn.execute("DELETE FROM chunks WHERE project_id = ?", (project_id,))
        conn.executemany(
            """
            INSERT INTO chunks (id, project_id, document_id, idx, text, metadata)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            [
                (c.id, project_id, c.document_id, c.index, c.text, json.dumps(c.metadata))
                for c in chunks
            ],
        )

    async def list_chunks(self, project_id: str) -> list[Chunk]:
        return await self._run(self._list_chunks_sync, project_id)

    def _list_chunks_sync(self, conn: sqlite3.Connection, project_id: str) -> list[Chunk]:
        rows = conn.execute(
            """
            SELECT c.* FROM chunks c
            JOIN documents d ON d.id = c.document_id
            WHERE c.project_id = ?
            ORDER BY d.seq, c.idx
            """,
            (project_id,),
        ).fetchall()
        return [self._chunk_from_row(row) for row in rows]

    async def count_chunks(self, project_id: str) -> int:
        return await self._run(self._count_sync, "SELECT COUNT(*) FROM chunks WHERE project_id = ?", project_id)

    def _count_sync(self, conn: sqlite3.Connection, query: str, project_id: str) -> int:
        return conn.execute(query, (project_id,)).fetchone()[0]

    # Embeddings

    @staticmethod
    def _insert_embeddings(conn: sqlite3.Connection, embeddings: list[Embedding]) -> None:
        conn.executemany(
            """
            INSERT OR REPLACE INTO embeddings (chunk_id, vector, dimension, created_at)
            SELECT ?, ?, ?, ? WHERE EXISTS (SELECT 1 FROM chunks WHERE id = ?)
            """,
            [
                (
                    e.chunk_id,
                    encode_vector(e.vector),
                    e.dimension,
                    e.created_at.isoformat(),
                    e.chunk_id,
                )
                for e in embeddings
            ],
        )

    async def save_embeddings(self, embeddings: list[Embedding]) -> None:
        await self._run(self._insert_embeddings, embeddings)

    async def replace_embeddings(self, project_id: str, embeddings: list[Embedding]) -> None:
        await self._run(self._replace_embeddings_sync, project_id, embeddings)

    def _replace_embeddings_sync(
        self,
        conn: sqlite3.Connection,
        project_id: str,
        embeddings: list[Embedding],
    ) -> None:
        conn.execute(
            "DELETE FROM embeddings WHERE chunk_id IN (SELECT id FROM chunks WHERE project_id = ?)",
            (project_id,),
        )
        self._insert_embeddings(conn, embeddings)

    async def get_embedding(self, chunk_id: str) -> Optional[Embedding]:
        return await self._run(self._get_embedding_sync, chunk_id)

    def _get_embedding_sync(self, conn: sqlite3.Connection, chunk_id: str) -> Optional[Embedding]:
        row = conn.execute("SELECT * FROM embeddings WHERE chunk_id = ?", (chunk_id,)).fetchone()
        if row is None:
            return None
        return Embedding(
            chunk_id=row["chunk_id"],
            vector=decode_vector(row["vector"], row["dimension"]),
            created_at=datetime.fromisoformat(row["created_at"]),
        )

    async def embedded_chunk_ids(self, project_id: str) -> set[str]:
        return await self._run(self._embedded_chunk_ids_sync, project_id)

    def _embedded_chunk_ids_sync(self, conn: sqlite3.Connection, project_id: str) -> set[str]:
        rows = conn.execute(
            """
            SELECT e.chunk_id FROM embeddings e
            JOIN chunks c ON c.id = e.chunk_id
            WHERE c.project_id = ?
            """,
            (project_id,),
        ).fetchall()
        return {row["chunk_id"] for row in rows}

    async def count_embeddings(self, project_id: str) -> int:
        return await self._run(
            self._count_sync,
            "SELECT COUNT(*) FROM embeddings e JOIN chunks c ON c.id = e.chunk_id WHERE c.project_id = ?",
            project_id,
        )

    async def list_embedded_chunks(self, project_id: str) -> list[EmbeddedChunk]:
        return await self._run(self._list_embedded_chunks_sync, project_id)

    def _list_embedded_chunks_sync(self, conn: sqlite3.Connection, project_id: str) -> list[EmbeddedChunk]:
        rows = conn.execute(
            """
            SELECT c.*, d.name AS document_name, e.vector, e.dimension
            FROM chunks c
            JOIN embeddings e ON e.chunk_id = c.id
            JOIN documents d ON d.id = c.document_id
            WHERE c.project_id = ?
            ORDER BY d.seq, c.idx
            """,
            (project_id,),
        ).fetchall()
        return [
            EmbeddedChunk(
                chunk=self._chunk_from_row(row),
                document_name=row["document_name"],
                vector=decode_vector(row["vector"], row["dimension"]),
            )
            for row in rows
        ]

    # Report and artifacts

    async def replace_citations(self, project_id: str, citations: list[Citation]) -> None:
        await self._run(self._replace_citations_sync, project_id, citations)

    def _replace_citations_sync(self, conn: sqlite3.Connection, project_id: str, citations: list[Citation]) -> None:
        conn.execute("DELETE FROM citations WHERE project_id = ?", (project_id,))
        conn.executemany(
            """
            INSERT INTO citations
            (project_id, document_id, document_name, section, page, snippet, confidence)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                (project_id, c.document_id, c.document_name, c.section, c.page, c.snippet, c.confidence)
                for c in citations
            ],
        )

    async def list_citations(self, project_id: str) -> list[Citation]:
        return await self._run(self._list_citations_sync, project_id)

    def _list_citations_sync(self, conn: sqlite3.Connection, project_id: str) -> list[Citation]:
        rows = conn.execute(
            "SELECT * FROM citations WHERE project_id = ? ORDER BY id",
            (project_id,),
        ).fetchall()
        return [
            Citation(
                project_id=row["project_id"],
                document_id=row["document_id"],
                document_name=row["document_name"],
                section=row["section"],
                page=row["page"],
                snippet=row["snippet"],
                confidence=row["confidence"],
            )
            for row in rows
        ]

    async def save_report(self, report: Report) -> None:
        await self._run(self._save_report_sync, report)

    def _save_report_sync(self, conn: sqlite3.Connection, report: Report) -> None:
        conn.execute(
            """
            INSERT OR REPLACE INTO reports (project_id, markdown, generated_at, export_path)
            VALUES (?, ?, ?, ?)
            """,
            (report.project_id, report.markdown, report.generated_at.isoformat(), report.export_path),
        )

    async def get_report(self, project_id: str) -> Optional[Report]:
        return await self._run(self._get_report_sync, project_id)

    def _get_report_sync(self, conn: sqlite3.Connection, project_id: str) -> Optional[Report]:
        row = conn.execute("SELECT * FROM reports WHERE project_id = ?", (project_id,)).fetchone()
        if row is None:
            return None
        return Report(
            project_id=row["project_id"],
            markdown=row["markdown"],
            generated_at=datetime.fromisoformat(row["generated_at"]),
            export_path=row["export_path"],
        )

    async def replace_artifacts(
        self,
        project_id: str,
        diagrams: list[Diagram],
        tables: list[DataTable],
    ) -> None:
        await self._run(self._replace_artifacts_sync, project_id, diagrams, tables)

    def _replace_artifacts_sync(
        self,
        conn: sqlite3.Connection,
        project_id: str,
        diagrams: list[Diagram],
        tables: list[DataTable],
    ) -> None:
        conn.execute("DELETE FROM diagrams WHERE project_id = ?", (project_id,))
        conn.execute("DELETE FROM data_tables WHERE project_id = ?", (project_id,))
        conn.executemany(
            "INSERT INTO diagrams (project_id, kind, title, mermaid) VALUES (?, ?, ?, ?)",
            [(project_id, d.kind, d.title, d.mermaid) for d in diagrams],
        )
        conn.executemany(
            "INSERT INTO data_tables (project_id, name, title, csv) VALUES (?, ?, ?, ?)",
            [(project_id, t.name, t.title, t.csv) for t in tables],
        )

    async def list_diagrams(self, project_id: str) -> list[Diagram]:
        return await self._run(self._list_diagrams_sync, project_id)

    def _list_diagrams_sync(self, conn: sqlite3.Connection, project_id: str) -> list[Diagram]:
        rows = conn.execute(
            "SELECT * FROM diagrams WHERE project_id = ? ORDER BY id",
            (project_id,),
        ).fetchall()
        return [
            Diagram(project_id=row["project_id"], kind=row["kind"], title=row["title"], mermaid=row["mermaid"])
            for row in rows
        ]

    async def list_tables(self, project_id: str) -> list[DataTable]:
        return await self._run(self._list_tables_sync, project_id)

    def _list_tables_sync(self, conn: sqlite3.Connection, project_id: str) -> list[DataTable]:
        rows = conn.execute(
            "SELECT * FROM data_tables WHERE project_id = ? ORDER BY id",
            (project_id,),
        ).fetchall()
        return [
            DataTable(project_id=row["project_id"], name=row["name"], title=row["title"], csv=row["csv"])
            for row in rows
        ]
