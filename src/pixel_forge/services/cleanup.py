"""Idle-session and orphan-file sweeps over the upload directory."""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from pathlib import Path
from typing import Protocol

from pixel_forge.adapters.local_file_storage import FileStorage
from pixel_forge.services.registry import SessionRegistry, utc_now

logger = logging.getLogger(__name__)

DEFAULT_SESSION_MAX_AGE = timedelta(hours=1)
DEFAULT_ORPHAN_MAX_AGE = timedelta(hours=1)
DEFAULT_SWEEP_INTERVAL = timedelta(minutes=5)


@dataclass(frozen=True)
class SweepReport:
    """Outcome of one cleanup pass."""

    sessions_removed: int
    orphans_removed: int


class FileCatalog(Protocol):
    """Metadata kept about uploaded files outside the registry."""

    def forget_session(self, session_id: str) -> None:
        """Drop metadata for every file uploaded under a session."""

    def forget_path(self, path: Path) -> None:
        """Drop metadata for a single file removed from disk."""


@dataclass
class CleanupService:
    """Evicts idle sessions and files that escaped session tracking."""

    registry: SessionRegistry
    storage: FileStorage
    session_max_age: timedelta = DEFAULT_SESSION_MAX_AGE
    orphan_max_age: timedelta | None = DEFAULT_ORPHAN_MAX_AGE
    clock: Callable[[], datetime] = utc_now
    catalog: FileCatalog | None = None

    def cleanup_old_sessions(self, max_age: timedelta | None = None) -> int:
        """Clean up sessions idle for strictly longer than max_age."""
        threshold = self.session_max_age if max_age is None else max_age
        now = self.clock()
        sessions = self.registry.list_sessions()
        logger.info(
            "Checking %d session(s) for inactivity over %s",
            len(sessions),
            threshold,
        )
        expired = [
            session.session_id
            for session in sessions
            if now - session.last_activity > threshold
        ]
        for session_id in expired:
            self.registry.cleanup_session(session_id)
            if self.catalog is not None:
                self.catalog.forget_session(session_id)
        if expired:
            logger.info("Cleaned up %d idle session(s)", len(expired))
        return len(expired)

    def cleanup_orphaned_files(self, max_age: timedelta | None = None) -> int:
        """Delete files older than max_age whether or not a session owns them."""
        threshold = max_age
        if threshold is None:
            threshold = (
                DEFAULT_ORPHAN_MAX_AGE
                if self.orphan_max_age is None
                else self.orphan_max_age
            )
        now = self.clock().timestamp()
        try:
            files = list(self.storage.iter_files())
        except OSError:
            logger.exception("Orphan cleanup failed to list upload directory")
            return 0

        removed = 0
        for path in files:
            try:
                age = now - path.stat().st_mtime
                if age <= threshold.total_seconds():
                    continue
                self.storage.delete(path)
            except OSError as exc:
                logger.warning("Failed checking/removing %s: %s", path, exc)
                continue
            removed += 1
            if self.catalog is not None:
                self.catalog.forget_path(path)
            logger.info("Orphan removed: %s", path)
        logger.info("Orphan cleanup completed, removed %d file(s)", removed)
        return removed

    def sweep(self) -> SweepReport:
        """Run the idle sweep and, when enabled, the orphan sweep."""
        sessions_removed = self.cleanup_old_sessions()
        orphans_removed = 0
        if self.orphan_max_age is not None:
            orphans_removed = self.cleanup_orphaned_files()
        return SweepReport(
            sessions_removed=sessions_removed,
            orphans_removed=orphans_removed,
        )


@dataclass
class CleanupScheduler:
    """Periodic sweep task tied to the application lifespan."""

    cleanup_service: CleanupService
    interval: timedelta = DEFAULT_SWEEP_INTERVAL
    _task: asyncio.Task[None] | None = field(default=None, init=False, repr=False)

    @property
    def running(self) -> bool:
        """Return true while the background task is alive."""
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start sweeping on the running event loop."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="pixel-forge-cleanup")
        logger.info("Cleanup scheduler started, interval %s", self.interval)

    async def stop(self) -> None:
        """Cancel the background task and wait for it to finish."""
        task = self._task
        self._task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Cleanup scheduler stopped")

    async def run_once(self) -> SweepReport:
        """Run a single sweep in a worker thread."""
        return await asyncio.to_thread(self.cleanup_service.sweep)

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval.total_seconds())
            try:
                await self.run_once()
            except Exception:
                logger.exception("Cleanup sweep failed")
