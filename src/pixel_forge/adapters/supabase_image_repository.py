"""Supabase-backed image record repository."""

from dataclasses import dataclass

from supabase import Client

from pixel_forge.domain.images import StoredImage
from pixel_forge.services.images import ImageRecordRepository


@dataclass
class SupabaseImageRepository(ImageRecordRepository):
    """Supabase implementation for uploaded image bookkeeping."""

    client: Client

    def create_record(self, image: StoredImage) -> None:
        """Insert a row describing an uploaded image."""
        response = (
            self.client.table("images")
            .insert(
                {
                    "filename": image.filename,
                    "url": image.url,
                    "session_id": image.session_id,
                    "uploaded_at": image.uploaded_at.isoformat(),
                }
            )
            .execute()
        )
        if not response.data:
            raise RuntimeError("Failed to create image record")

    def update_transformations(
        self, filename: str, transformations: dict[str, object]
    ) -> None:
        """Store the last applied transformations for an image."""
        (
            self.client.table("images")
            .update({"transformations": transformations})
            .eq("filename", filename)
            .execute()
        )
