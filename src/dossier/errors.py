"""
Pipeline exceptions.
"""


class DossierError(Exception):
    """Base exception for pipeline errors."""

    kind: str = "error"
    retryable: bool = True

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)


class UnsupportedInputError(DossierError):
    """Raised for a disallowed MIME type or extension, or an oversize file."""

    kind = "unsupported_input"


class ExtractionFailedError(DossierError):
    """Raised when a format-specific parser cannot read a file."""

    kind = "extraction_failed"

    def __init__(self, filename: str, message: str):
        self.filename = filename
        super().__init__(f"Extraction of '{filename}' failed: {message}")


class ProviderUnavailableError(DossierError):
    """Raised when an embedding or generation provider errors or times out."""

    kind = "provider_unavailable"

    def __init__(self, provider: str, message: str):
        self.provider = provider
        super().__init__(f"Provider '{provider}' unavailable: {message}")


class PipelineStateConflictError(DossierError):
    """Raised on an illegal status transition or a duplicate concurrent run.

    Never retried automatically: the caller has to look at the current
    status first.
    """

    kind = "pipeline_state_conflict"
    retryable = False

    def __init__(self, project_id: str, current: str, requested: str):
        self.project_id = project_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Project '{project_id}' is '{current}'; cannot move to '{requested}'"
        )


class NotFoundError(DossierError):
    """Raised when a project, document or chunk reference is unknown."""

    kind = "not_found"

    def __init__(self, entity: str, identifier: str):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} '{identifier}' not found")


class UnknownArtifactKindError(NotFoundError):
    """Raised when an artifact registry has no generator for a kind."""

    def __init__(self, kind: str):
        super().__init__("Artifact kind", kind)


class MissingPrerequisiteError(DossierError):
    """Raised when a run cannot start because an earlier stage has not produced anything."""

    kind = "missing_prerequisite"

    def __init__(self, stage: str, message: str):
        self.stage = stage
        super().__init__(message)
