"""Shared test fixtures."""

import io
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from PIL import Image

from pixel_forge.adapters.local_file_storage import LocalFileStorage
from pixel_forge.adapters.pillow_processor import PillowImageProcessor
from pixel_forge.config import Settings
from pixel_forge.containers import AppContainer
from pixel_forge.domain.images import StoredImage
from pixel_forge.services.cleanup import CleanupScheduler, CleanupService
from pixel_forge.services.images import ImageRecordRepository, ImageService
from pixel_forge.services.registry import InMemorySessionRegistry


@dataclass
class FakeClock:
    """Manually advanced UTC clock."""

    now: datetime = field(default_factory=lambda: datetime(2024, 5, 1, tzinfo=UTC))

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@dataclass
class RecordingStorage(LocalFileStorage):
    """Local storage that records deletions and can fail on chosen paths."""

    deleted: list[Path] = field(default_factory=list)
    attempted: list[Path] = field(default_factory=list)
    failing: set[Path] = field(default_factory=set)

    def delete(self, path: Path) -> None:
        self.attempted.append(path)
        if path in self.failing:
            raise PermissionError(f"permission denied: {path}")
        super().delete(path)
        self.deleted.append(path)


@dataclass
class InMemoryImageRecordRepository(ImageRecordRepository):
    """In-memory image record repository for tests."""

    records: dict[str, StoredImage] = field(default_factory=dict)
    transformations: dict[str, dict[str, object]] = field(default_factory=dict)

    def create_record(self, image: StoredImage) -> None:
        self.records[image.filename] = image

    def update_transformations(
        self, filename: str, transformations: dict[str, object]
    ) -> None:
        self.transformations[filename] = transformations


def make_image_bytes(
    size: tuple[int, int] = (8, 6),
    color: tuple[int, ...] = (200, 40, 40),
    mode: str = "RGB",
    image_format: str = "PNG",
) -> bytes:
    """Encode a solid-colour test image."""
    image = Image.new(mode, size, color)
    buffer = io.BytesIO()
    image.save(buffer, format=image_format)
    return buffer.getvalue()


def make_columns_png(colors: list[tuple[int, int, int]], height: int) -> bytes:
    """Encode a PNG with one pixel-wide column per colour."""
    image = Image.new("RGB", (len(colors), height))
    for x, color in enumerate(colors):
        for y in range(height):
            image.putpixel((x, y), color)
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def decode(content: bytes) -> Image.Image:
    """Decode encoded bytes into a loaded Pillow image."""
    image = Image.open(io.BytesIO(content))
    image.load()
    return image


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def upload_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "uploads"
    directory.mkdir()
    return directory


@pytest.fixture
def storage(upload_dir: Path) -> RecordingStorage:
    return RecordingStorage(root=upload_dir)


@pytest.fixture
def registry(storage: RecordingStorage, clock: FakeClock) -> InMemorySessionRegistry:
    return InMemorySessionRegistry(storage=storage, clock=clock)


@pytest.fixture
def record_repository() -> InMemoryImageRecordRepository:
    return InMemoryImageRecordRepository()


@pytest.fixture
def image_service(
    storage: RecordingStorage,
    registry: InMemorySessionRegistry,
    record_repository: InMemoryImageRecordRepository,
    clock: FakeClock,
) -> ImageService:
    return ImageService(
        storage=storage,
        registry=registry,
        processor=PillowImageProcessor(),
        base_url="http://testserver",
        record_repository=record_repository,
        clock=clock,
    )


@pytest.fixture
def settings(upload_dir: Path) -> Settings:
    return Settings(
        upload_dir=upload_dir,
        base_url="http://testserver",
        cleanup_enabled=False,
        cors_allowed_origins="http://localhost:5173",
    )


@pytest.fixture
def container(
    settings: Settings,
    storage: RecordingStorage,
    registry: InMemorySessionRegistry,
    image_service: ImageService,
    clock: FakeClock,
) -> AppContainer:
    cleanup_service = CleanupService(
        registry=registry,
        storage=storage,
        session_max_age=timedelta(minutes=10),
        orphan_max_age=timedelta(hours=1),
        clock=clock,
        catalog=image_service,
    )
    scheduler = CleanupScheduler(cleanup_service=cleanup_service)

    async def close_resources() -> None:
        await scheduler.stop()

    return AppContainer(
        settings=settings,
        storage=storage,
        registry=registry,
        image_service=image_service,
        cleanup_service=cleanup_service,
        cleanup_scheduler=scheduler,
        close_resources=close_resources,
    )
