"""Project lifecycle transitions.

Every change of ``Project.status`` goes through
:meth:`ProjectStateMachine.transition`, which validates the current status
and writes the new one as a single check-and-set in the repository, so
workers sharing one database cannot both start the same run.
"""

import asyncio
import logging
from typing import Optional

from dossier.errors import PipelineStateConflictError
from dossier.models import Project, ProjectStatus
from dossier.storage.base import ProjectRepository

logger = logging.getLogger(__name__)

S = ProjectStatus

# Statuses held while a run is doing work; a second run is rejected
IN_PROGRESS = frozenset({S.INGESTING, S.EMBEDDING, S.GENERATING})

# Settled statuses from which a new upload or ingest may start
_IDLE = frozenset({S.DRAFT, S.UPLOADING, S.INGESTED, S.EMBEDDED, S.GENERATED, S.EXPORTED, S.ERROR})

# target status -> statuses it may be entered from
TRANSITIONS: dict[ProjectStatus, frozenset[ProjectStatus]] = {
    S.UPLOADING: _IDLE,
    S.INGESTING: _IDLE,
    S.INGESTED: frozenset({S.INGESTING}),
    S.EMBEDDING: frozenset({S.INGESTED, S.EMBEDDED, S.GENERATED, S.EXPORTED, S.ERROR}),
    S.EMBEDDED: frozenset({S.EMBEDDING}),
    S.GENERATING: frozenset({S.EMBEDDED, S.GENERATED, S.EXPORTED, S.ERROR}),
    S.GENERATED: frozenset({S.GENERATING}),
    S.EXPORTED: frozenset({S.GENERATED, S.EXPORTED}),
    S.ERROR: IN_PROGRESS,
    S.DRAFT: frozenset(),
}

_SETTLED_SUCCESS = frozenset({S.INGESTED, S.EMBEDDED, S.GENERATED, S.EXPORTED})


def can_transition(current: ProjectStatus, target: ProjectStatus) -> bool:
    return current in TRANSITIONS.get(target, frozenset())


class ProjectStateMachine:
    """Guarded status mutation for projects stored in a repository."""

    def __init__(self, repository: ProjectRepository):
        self.repository = repository
        self._lock = asyncio.Lock()

    def ensure_allowed(self, project: Project, target: ProjectStatus) -> None:
        """Raise if ``project`` cannot move to ``target`` from its current status.

        This is a read-only pre-check; :meth:`transition` repeats the check
        atomically in the repository when writing.
        """
        if not can_transition(project.status, target):
            raise PipelineStateConflictError(project.id, project.status.value, target.value)

    async def transition(
        self,
        project_id: str,
        target: ProjectStatus,
        error: Optional[str] = None,
    ) -> Project:
        """
        Move a project to ``target``.

        Args:
            project_id: Project ID
            target: Requested status
            error: Reason recorded in ``last_error`` when moving to ``error``

        Returns:
            The updated project

        Raises:
            NotFoundError: If the project does not exist
            PipelineStateConflictError: If the current status does not allow it
        """
        if target == S.ERROR:
            last_error, update_error = error or "Unknown error", True
        else:
            last_error, update_error = None, target in _SETTLED_SUCCESS

        async with self._lock:
            previous, project = await self.repository.transition_status(
                project_id,
                TRANSITIONS.get(target, frozenset()),
                target,
                last_error=last_error,
                update_error=update_error,
            )

        if target == S.ERROR:
            logger.error(f"Project {project_id}: {previous.value} -> error ({project.last_error})")
        else:
            logger.info(f"Project {project_id}: {previous.value} -> {target.value}")
        return project

    async def fail(self, project_id: str, error: str) -> Project:
        return await self.transition(project_id, S.ERROR, error=error)
