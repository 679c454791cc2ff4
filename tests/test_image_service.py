"""Tests for upload and transform orchestration."""

from datetime import timedelta

import pytest

from pixel_forge.adapters.pillow_processor import PillowImageProcessor
from pixel_forge.domain.images import StoredImage
from pixel_forge.errors import (
    ImageProcessingError,
    TransformValidationError,
    UploadValidationError,
)
from pixel_forge.services.images import ImageService, sanitize_filename
from pixel_forge.services.registry import InMemorySessionRegistry
from tests.conftest import (
    FakeClock,
    InMemoryImageRecordRepository,
    RecordingStorage,
    decode,
    make_image_bytes,
)


def test_store_upload_writes_and_registers(
    image_service: ImageService,
    registry: InMemorySessionRegistry,
    record_repository: InMemoryImageRecordRepository,
    clock: FakeClock,
) -> None:
    content = make_image_bytes()

    image = image_service.store_upload("session-a", "holiday photo.png", content)

    millis = int(clock().timestamp() * 1000)
    assert image.filename == f"{millis}_holiday_photo.png"
    assert image.path.read_bytes() == content
    assert image.url == f"http://testserver/uploads/{image.filename}"
    assert image.session_id == "session-a"
    info = registry.get_session_info("session-a")
    assert info is not None
    assert info.files == (image.path,)
    assert image.filename in record_repository.records


@pytest.mark.parametrize(
    ("session_id", "content"),
    [("session-a", b""), (None, b"data"), ("   ", b"data")],
)
def test_store_upload_rejects_bad_input(
    image_service: ImageService, session_id: str | None, content: bytes
) -> None:
    with pytest.raises(UploadValidationError):
        image_service.store_upload(session_id, "photo.png", content)


def test_get_image_drops_swept_files(image_service: ImageService) -> None:
    image = image_service.store_upload("session-a", "photo.png", make_image_bytes())
    image.path.unlink()

    assert image_service.get_image(image.filename) is None
    assert image_service.get_image("unknown.png") is None


def test_transform_rereads_original_each_time(
    image_service: ImageService,
    record_repository: InMemoryImageRecordRepository,
) -> None:
    image = image_service.store_upload(
        "session-a", "photo.png", make_image_bytes(size=(20, 10))
    )

    first = image_service.transform_image(image.filename, {"rotate": 90})
    second = image_service.transform_image(image.filename, {"rotate": 90})

    assert first is not None and second is not None
    assert decode(first.content).size == (10, 20)
    assert first.content == second.content
    assert record_repository.transformations[image.filename] == {"rotate": 90.0}


def test_transform_unknown_file_returns_none(image_service: ImageService) -> None:
    assert image_service.transform_image("nope.png", {}) is None


def test_transform_validates_against_source_size(
    image_service: ImageService,
) -> None:
    image = image_service.store_upload(
        "session-a", "photo.png", make_image_bytes(size=(800, 600))
    )

    with pytest.raises(TransformValidationError) as excinfo:
        image_service.transform_image(
            image.filename,
            {"crop": {"x": 50, "y": 50, "width": 800, "height": 400}},
        )

    assert "750" in str(excinfo.value)


def test_transform_of_corrupt_upload_fails(image_service: ImageService) -> None:
    image = image_service.store_upload("session-a", "broken.png", b"not an image")

    with pytest.raises(ImageProcessingError):
        image_service.transform_image(image.filename, {"grayscale": True})


def test_cleanup_session_forgets_metadata(
    image_service: ImageService,
    storage: RecordingStorage,
    clock: FakeClock,
) -> None:
    first = image_service.store_upload("session-a", "one.png", make_image_bytes())
    clock.advance(timedelta(milliseconds=5))
    second = image_service.store_upload("session-a", "two.png", make_image_bytes())

    deleted = image_service.cleanup_session("session-a")

    assert deleted == 2
    assert storage.deleted == [first.path, second.path]
    assert image_service.get_image(first.filename) is None


@pytest.mark.parametrize(
    ("original", "expected"),
    [
        ("photo.png", "photo.png"),
        ("../../etc/passwd", "passwd"),
        ("C:\\Users\\me\\cat pic.jpg", "cat_pic.jpg"),
        ("", "upload"),
        (None, "upload"),
        (".hidden", "hidden"),
    ],
)
def test_sanitize_filename(original: str | None, expected: str) -> None:
    assert sanitize_filename(original) == expected


class _FailingRecordRepository(InMemoryImageRecordRepository):
    def create_record(self, image: StoredImage) -> None:
        raise RuntimeError("database unavailable")


def test_record_failures_do_not_fail_uploads(
    storage: RecordingStorage, registry: InMemorySessionRegistry, clock: FakeClock
) -> None:
    service = ImageService(
        storage=storage,
        registry=registry,
        processor=PillowImageProcessor(),
        base_url="http://testserver",
        record_repository=_FailingRecordRepository(),
        clock=clock,
    )

    image = service.store_upload("session-a", "photo.png", make_image_bytes())

    assert image.path.exists()
    assert registry.get_active_sessions_count() == 1
