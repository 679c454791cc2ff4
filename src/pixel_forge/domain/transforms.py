"""Normalized transformation records handed to the image processor."""

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class CropBox:
    """Sub-rectangle to extract, in source pixels."""

    x: int
    y: int
    width: int
    height: int


@dataclass(frozen=True)
class ResizeTarget:
    """Target size; a missing side keeps the aspect ratio."""

    width: int | None
    height: int | None


@dataclass(frozen=True)
class SharpenParams:
    """Unsharp mask parameters."""

    radius: float = 2.0
    percent: int = 150
    threshold: int = 3


@dataclass(frozen=True)
class TransformationSpec:
    """Validated set of operations, applied in a fixed order."""

    crop: CropBox | None = None
    resize: ResizeTarget | None = None
    rotate: float | None = None
    flip: bool = False
    flop: bool = False
    blur: float | None = None
    quality: int | None = None
    grayscale: bool = False
    negate: bool = False
    sharpen: SharpenParams | None = None
    tint: tuple[int, int, int] | None = None

    def is_empty(self) -> bool:
        """Return true when no operation is requested."""
        return self == TransformationSpec()

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-friendly snapshot of the requested operations."""
        return {key: value for key, value in asdict(self).items() if value}
