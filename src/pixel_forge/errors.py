"""Exceptions raised by the upload and transform pipeline."""


class PixelForgeError(Exception):
    """Base class for application errors."""


class UploadValidationError(PixelForgeError):
    """Raised when an upload request is missing required parts."""


class TransformValidationError(PixelForgeError, ValueError):
    """Raised when a transformation request cannot be normalized."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field


class StorageError(PixelForgeError):
    """Raised when an uploaded file can't be written or read."""

    def __init__(self, path: object, message: str) -> None:
        super().__init__(f"{message}: {path}")
        self.path = path


class ImageProcessingError(PixelForgeError):
    """Raised when the image library fails on a transformation stage."""

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(f"{stage} failed: {message}")
        self.stage = stage


class NotFoundError(PixelForgeError):
    """Raised when a requested image or session is not tracked."""
