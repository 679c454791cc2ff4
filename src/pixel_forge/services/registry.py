"""In-memory registry of files owned by upload sessions.

The registry is process-wide and non-durable: a restart starts from an empty
map and any files tracked before it are only reclaimed by the orphan sweep.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from pixel_forge.adapters.local_file_storage import FileStorage
from pixel_forge.domain.sessions import SessionSnapshot

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    """Return the current UTC time."""
    return datetime.now(tz=UTC)


class SessionRegistry(Protocol):
    """Interface for tracking which files belong to which session."""

    def register_file(self, session_id: str, path: Path) -> None:
        """Attach a file to a session, creating the session if needed."""

    def cleanup_session(self, session_id: str) -> int:
        """Delete a session's files and forget the session."""

    def get_session_info(self, session_id: str) -> SessionSnapshot | None:
        """Return a snapshot of a session, if tracked."""

    def get_active_sessions_count(self) -> int:
        """Return how many sessions are tracked."""

    def list_sessions(self) -> list[SessionSnapshot]:
        """Return snapshots of all tracked sessions."""


@dataclass
class _SessionEntry:
    files: list[Path]
    last_activity: datetime


@dataclass
class InMemorySessionRegistry(SessionRegistry):
    """Lock-guarded session map used by request handlers and the sweeper."""

    storage: FileStorage
    clock: Callable[[], datetime] = utc_now
    _sessions: dict[str, _SessionEntry] = field(
        default_factory=dict, init=False, repr=False
    )
    _lock: threading.Lock = field(
        default_factory=threading.Lock, init=False, repr=False
    )

    def register_file(self, session_id: str, path: Path) -> None:
        """Append a file to the session and refresh its activity time."""
        now = self.clock()
        with self._lock:
            entry = self._sessions.get(session_id)
            if entry is None:
                entry = _SessionEntry(files=[], last_activity=now)
                self._sessions[session_id] = entry
                logger.info("New session created: %s", session_id)
            entry.files.append(path)
            entry.last_activity = now
            total = len(entry.files)
        logger.info(
            "File registered for session %s (%d in session): %s",
            session_id,
            total,
            path,
        )

    def cleanup_session(self, session_id: str) -> int:
        """Delete every file of a session, then drop the session.

        Each deletion is attempted independently. Files that fail to delete
        are logged and are no longer tracked afterwards.
        """
        with self._lock:
            entry = self._sessions.pop(session_id, None)
        if entry is None:
            logger.info("Session %s not found, nothing to clean up", session_id)
            return 0

        deleted = 0
        for path in entry.files:
            try:
                self.storage.delete(path)
            except OSError as exc:
                logger.warning(
                    "Failed to delete %s: %s",
                    path,
                    exc,
                    extra={"session_id": session_id},
                )
                continue
            deleted += 1
            logger.info("Deleted %s", path)
        logger.info(
            "Session %s cleaned up (%d of %d files deleted)",
            session_id,
            deleted,
            len(entry.files),
        )
        return deleted

    def get_session_info(self, session_id: str) -> SessionSnapshot | None:
        """Return a snapshot of one session."""
        with self._lock:
            entry = self._sessions.get(session_id)
            if entry is None:
                return None
            return _snapshot(session_id, entry)

    def get_active_sessions_count(self) -> int:
        """Return the number of tracked sessions."""
        with self._lock:
            return len(self._sessions)

    def list_sessions(self) -> list[SessionSnapshot]:
        """Return snapshots of all sessions."""
        with self._lock:
            return [
                _snapshot(session_id, entry)
                for session_id, entry in self._sessions.items()
            ]


def _snapshot(session_id: str, entry: _SessionEntry) -> SessionSnapshot:
    return SessionSnapshot(
        session_id=session_id,
        files=tuple(entry.files),
        last_activity=entry.last_activity,
    )
