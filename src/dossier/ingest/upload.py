"""Upload validation and on-disk storage of source files."""

import logging
from pathlib import Path, PurePath
from typing import Optional

from pydantic import BaseModel

from dossier.errors import UnsupportedInputError
from dossier.ingest.extractor import guess_mime_type
from dossier.utils.config import Settings

logger = logging.getLogger(__name__)


class UploadFile(BaseModel):
    """A file handed to the upload boundary."""
    name: str
    data: bytes
    mime_type: Optional[str] = None

    @property
    def extension(self) -> str:
        return PurePath(self.name).suffix.lower()


def check_upload(file: UploadFile, settings: Settings) -> str:
    """
    Validate a file against the allow-lists and the size ceiling.

    Returns:
        The resolved MIME type

    Raises:
        UnsupportedInputError: If the file is empty, too large or not allowed
    """
    if not file.name or PurePath(file.name).name != file.name:
        raise UnsupportedInputError(f"Invalid file name: {file.name!r}")
    if not file.data:
        raise UnsupportedInputError(f"File is empty: {file.name}")
    if len(file.data) > settings.max_file_size:
        limit_mb = settings.max_file_size / (1024 * 1024)
        raise UnsupportedInputError(f"File {file.name} exceeds the {limit_mb:g} MB limit")
    if file.extension not in settings.allowed_extensions:
        allowed = ", ".join(sorted(settings.allowed_extensions))
        raise UnsupportedInputError(
            f"Unsupported file extension for {file.name}. Allowed extensions: {allowed}"
        )

    mime_type = guess_mime_type(file.name, file.mime_type)
    if mime_type not in settings.allowed_mime_types:
        raise UnsupportedInputError(f"Unsupported file type for {file.name}: {mime_type}")
    return mime_type


def save_upload(upload_dir: str | Path, project_id: str, document_id: str, file: UploadFile) -> Path:
    """Write the file bytes under ``<upload_dir>/<project_id>/<document_id><ext>``."""
    target_dir = Path(upload_dir) / project_id
    target_dir.mkdir(parents=True, exist_ok=True)
    path = target_dir / f"{document_id}{file.extension}"
    path.write_bytes(file.data)
    logger.debug(f"Stored {file.name} ({len(file.data)} bytes) at {path}")
    return path
