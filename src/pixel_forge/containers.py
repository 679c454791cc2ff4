"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta

from supabase import create_client

from pixel_forge.adapters.local_file_storage import FileStorage, LocalFileStorage
from pixel_forge.adapters.pillow_processor import PillowImageProcessor
from pixel_forge.adapters.supabase_image_repository import SupabaseImageRepository
from pixel_forge.config import Settings
from pixel_forge.services.cleanup import CleanupScheduler, CleanupService
from pixel_forge.services.images import ImageRecordRepository, ImageService
from pixel_forge.services.registry import InMemorySessionRegistry, SessionRegistry


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    storage: FileStorage
    registry: SessionRegistry
    image_service: ImageService
    cleanup_service: CleanupService
    cleanup_scheduler: CleanupScheduler
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    storage = LocalFileStorage.create(resolved_settings.upload_dir)
    registry = InMemorySessionRegistry(storage)
    record_repository: ImageRecordRepository | None = None
    if resolved_settings.supabase_url and resolved_settings.supabase_service_key:
        supabase_client = create_client(
            resolved_settings.supabase_url, resolved_settings.supabase_service_key
        )
        record_repository = SupabaseImageRepository(supabase_client)
    image_service = ImageService(
        storage=storage,
        registry=registry,
        processor=PillowImageProcessor(),
        base_url=resolved_settings.base_url,
        record_repository=record_repository,
    )
    cleanup_service = CleanupService(
        registry=registry,
        storage=storage,
        session_max_age=timedelta(seconds=resolved_settings.session_max_age_seconds),
        orphan_max_age=(
            timedelta(seconds=resolved_settings.orphan_max_age_seconds)
            if resolved_settings.orphan_sweep_enabled
            else None
        ),
        catalog=image_service,
    )
    cleanup_scheduler = CleanupScheduler(
        cleanup_service=cleanup_service,
        interval=timedelta(seconds=resolved_settings.cleanup_interval_seconds),
    )

    async def close_resources() -> None:
        await cleanup_scheduler.stop()

    return AppContainer(
        settings=resolved_settings,
        storage=storage,
        registry=registry,
        image_service=image_service,
        cleanup_service=cleanup_service,
        cleanup_scheduler=cleanup_scheduler,
        close_resources=close_resources,
    )
