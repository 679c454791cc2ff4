"""Domain models for upload sessions."""

from dataclasses import dataclass
from datetime import datetime
from pathlib import Path


@dataclass(frozen=True)
class SessionSnapshot:
    """Read-only view of a tracked upload session."""

    session_id: str
    files: tuple[Path, ...]
    last_activity: datetime
