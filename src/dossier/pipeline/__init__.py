"""
Project state machine and pipeline boundaries.
"""

from dossier.pipeline.service import DossierService, create_service
from dossier.pipeline.state import IN_PROGRESS, TRANSITIONS, ProjectStateMachine, can_transition

__all__ = [
    "DossierService",
    "create_service",
    "IN_PROGRESS",
    "TRANSITIONS",
    "ProjectStateMachine",
    "can_transition",
]
