"""Domain models for stored and processed images."""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path


@dataclass(frozen=True)
class StoredImage:
    """An uploaded original kept in the upload directory."""

    filename: str
    path: Path
    session_id: str
    uploaded_at: datetime
    url: str


@dataclass(frozen=True)
class ProcessedImage:
    """Encoded output of a transformation request."""

    content: bytes
    media_type: str
    format: str
