"""Flat upload directory on the local filesystem."""

from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


class FileStorage(Protocol):
    """Interface for reading, writing and deleting uploaded files."""

    def write_bytes(self, filename: str, content: bytes) -> Path:
        """Persist bytes under a filename and return the full path."""

    def read_bytes(self, path: Path) -> bytes:
        """Return the bytes stored at a path."""

    def exists(self, path: Path) -> bool:
        """Return true when the path still resolves to a file."""

    def delete(self, path: Path) -> None:
        """Delete a stored file, raising OSError on failure."""

    def iter_files(self) -> Iterator[Path]:
        """Yield every file currently in the upload directory."""


@dataclass
class LocalFileStorage(FileStorage):
    """Storage backed by a single upload directory."""

    root: Path

    @classmethod
    def create(cls, root: Path) -> "LocalFileStorage":
        """Create the storage and make sure its directory exists."""
        root.mkdir(parents=True, exist_ok=True)
        return cls(root=root)

    def write_bytes(self, filename: str, content: bytes) -> Path:
        """Write a file into the upload directory."""
        path = self.root / filename
        path.write_bytes(content)
        return path

    def read_bytes(self, path: Path) -> bytes:
        """Read a stored file."""
        return path.read_bytes()

    def exists(self, path: Path) -> bool:
        """Return true when the path is an existing regular file."""
        return path.is_file()

    def delete(self, path: Path) -> None:
        """Remove a stored file."""
        path.unlink()

    def iter_files(self) -> Iterator[Path]:
        """Yield regular files in the upload directory."""
        for entry in self.root.iterdir():
            if entry.is_file():
                yield entry
