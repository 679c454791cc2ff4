"""Validation and normalization of transformation requests."""

import math
from collections.abc import Mapping
from typing import Protocol

from PIL import ImageColor

from pixel_forge.domain.images import ProcessedImage
from pixel_forge.domain.transforms import (
    CropBox,
    ResizeTarget,
    SharpenParams,
    TransformationSpec,
)
from pixel_forge.errors import TransformValidationError

MIN_BLUR_SIGMA = 0.3
MAX_BLUR_SIGMA = 1000.0
MAX_SHARPEN_RADIUS = 1000.0
MAX_SHARPEN_PERCENT = 10_000
MAX_SHARPEN_THRESHOLD = 255
MAX_OUTPUT_DIMENSION = 16_383
# Pillow's decompression bomb limit.
MAX_OUTPUT_PIXELS = 89_478_485

_WHITE_TINTS = {"#ffffff", "white"}
_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off", ""}


class ImageProcessor(Protocol):
    """Interface for the pixel-level image capability."""

    def dimensions(self, image_bytes: bytes) -> tuple[int, int]:
        """Return the (width, height) of an encoded image."""

    def apply(self, image_bytes: bytes, spec: TransformationSpec) -> ProcessedImage:
        """Apply a normalized spec and return the encoded result."""


def normalize_transformations(
    raw: Mapping[str, object] | None, source_width: int, source_height: int
) -> TransformationSpec:
    """Turn a wire-format transformation request into a validated spec.

    Values may arrive as strings. Missing, null and empty values mean the
    operation is not applied. The crop rectangle is checked against the
    source image dimensions.
    """
    if raw is None:
        return TransformationSpec()
    if not isinstance(raw, Mapping):
        raise TransformValidationError(
            "transformations", "transformations must be an object"
        )
    crop = _parse_crop(raw.get("crop"), source_width, source_height)
    if crop is not None:
        source_width, source_height = crop.width, crop.height
    return TransformationSpec(
        crop=crop,
        resize=_parse_resize(raw.get("resize"), source_width, source_height),
        rotate=_parse_number(raw.get("rotate"), "rotate"),
        flip=_parse_flag(raw.get("flip"), "flip"),
        flop=_parse_flag(raw.get("flop"), "flop"),
        blur=_parse_blur(raw.get("blur")),
        quality=_parse_quality(raw.get("compress")),
        grayscale=_parse_flag(raw.get("grayscale"), "grayscale"),
        negate=_parse_flag(raw.get("negate"), "negate"),
        sharpen=_parse_sharpen(raw.get("sharpen")),
        tint=_parse_tint(raw.get("tint")),
    )


def _parse_crop(
    value: object, source_width: int, source_height: int
) -> CropBox | None:
    section = _section(value, "crop")
    if section is None:
        return None
    x = _parse_pixels(section.get("x"), "crop.x", minimum=0)
    y = _parse_pixels(section.get("y"), "crop.y", minimum=0)
    width = _parse_pixels(section.get("width"), "crop.width", minimum=1)
    height = _parse_pixels(section.get("height"), "crop.height", minimum=1)
    parsed = {"x": x, "y": y, "width": width, "height": height}
    if all(item is None for item in parsed.values()):
        return None
    if x is None or y is None or width is None or height is None:
        missing = next(name for name, item in parsed.items() if item is None)
        raise TransformValidationError(
            f"crop.{missing}", f"crop.{missing} is required"
        )

    max_width = source_width - x
    max_height = source_height - y
    if width > max_width or height > max_height:
        raise TransformValidationError(
            "crop",
            (
                f"Invalid crop area. For an image of {source_width}x{source_height}, "
                f"crop width must be <= {max_width} and "
                f"crop height must be <= {max_height}."
            ),
        )
    return CropBox(x=x, y=y, width=width, height=height)


def _parse_resize(
    value: object, source_width: int, source_height: int
) -> ResizeTarget | None:
    """Parse a resize target and bound the size it will produce.

    The source size is the image as it reaches the resize stage, so after
    any crop. A single side is scaled proportionally the same way the
    processor does it.
    """
    section = _section(value, "resize")
    if section is None:
        return None
    width = _parse_pixels(
        section.get("width"),
        "resize.width",
        minimum=1,
        maximum=MAX_OUTPUT_DIMENSION,
    )
    height = _parse_pixels(
        section.get("height"),
        "resize.height",
        minimum=1,
        maximum=MAX_OUTPUT_DIMENSION,
    )
    if width is None and height is None:
        return None

    target = ResizeTarget(width=width, height=height)
    out_width, out_height = resized_dimensions(target, source_width, source_height)
    if (
        max(out_width, out_height) > MAX_OUTPUT_DIMENSION
        or out_width * out_height > MAX_OUTPUT_PIXELS
    ):
        raise TransformValidationError(
            "resize",
            (
                f"resize would produce a {out_width}x{out_height} image; sides "
                f"must be <= {MAX_OUTPUT_DIMENSION} and the total <= "
                f"{MAX_OUTPUT_PIXELS} pixels"
            ),
        )
    return target


def resized_dimensions(
    target: ResizeTarget, source_width: int, source_height: int
) -> tuple[int, int]:
    """Return the output size of a resize; a missing side keeps the ratio."""
    if target.width is not None and target.height is not None:
        return target.width, target.height
    if target.width is not None:
        return target.width, max(
            1, round(source_height * target.width / source_width)
        )
    new_height = target.height or source_height
    return max(1, round(source_width * new_height / source_height)), new_height


def _parse_blur(value: object) -> float | None:
    sigma = _parse_number(value, "blur")
    if sigma is None or sigma == 0:
        return None
    if not MIN_BLUR_SIGMA <= sigma <= MAX_BLUR_SIGMA:
        raise TransformValidationError(
            "blur",
            f"blur must be between {MIN_BLUR_SIGMA} and {MAX_BLUR_SIGMA:g}",
        )
    return sigma


def _parse_quality(value: object) -> int | None:
    section = _section(value, "compress")
    if section is None:
        return None
    return _parse_pixels(
        section.get("quality"), "compress.quality", minimum=1, maximum=100
    )


def _parse_sharpen(value: object) -> SharpenParams | None:
    if isinstance(value, Mapping):
        defaults = SharpenParams()
        raw_radius = value.get("radius", value.get("sigma"))
        radius = _parse_number(raw_radius, "sharpen.radius")
        if radius is not None and not 0 < radius <= MAX_SHARPEN_RADIUS:
            raise TransformValidationError(
                "sharpen.radius",
                f"sharpen.radius must be > 0 and <= {MAX_SHARPEN_RADIUS:g}",
            )
        percent = _parse_pixels(
            value.get("percent"),
            "sharpen.percent",
            minimum=0,
            maximum=MAX_SHARPEN_PERCENT,
        )
        threshold = _parse_pixels(
            value.get("threshold"),
            "sharpen.threshold",
            minimum=0,
            maximum=MAX_SHARPEN_THRESHOLD,
        )
        return SharpenParams(
            radius=defaults.radius if radius is None else radius,
            percent=defaults.percent if percent is None else percent,
            threshold=defaults.threshold if threshold is None else threshold,
        )
    if _parse_flag(value, "sharpen"):
        return SharpenParams()
    return None


def _parse_tint(value: object) -> tuple[int, int, int] | None:
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    if not cleaned or cleaned.lower() in _WHITE_TINTS:
        return None
    try:
        rgb = ImageColor.getrgb(cleaned)
    except ValueError as exc:
        raise TransformValidationError(
            "tint", f"tint is not a valid colour: {value}"
        ) from exc
    return rgb[0], rgb[1], rgb[2]


def _section(value: object, field: str) -> Mapping[str, object] | None:
    if value is None or value is False:
        return None
    if not isinstance(value, Mapping):
        raise TransformValidationError(field, f"{field} must be an object")
    return value


def _parse_number(value: object, field: str) -> float | None:
    """Parse a numeric wire value, treating null and empty strings as absent."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise TransformValidationError(field, f"{field} must be a number")
    if isinstance(value, int | float):
        try:
            number = float(value)
        except OverflowError as exc:
            raise TransformValidationError(
                field, f"{field} must be a finite number"
            ) from exc
    elif isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError as exc:
            raise TransformValidationError(
                field, f"{field} must be a number, got {value!r}"
            ) from exc
    else:
        raise TransformValidationError(field, f"{field} must be a number")
    if not math.isfinite(number):
        raise TransformValidationError(field, f"{field} must be a finite number")
    return number


def _parse_pixels(
    value: object, field: str, minimum: int, maximum: int | None = None
) -> int | None:
    number = _parse_number(value, field)
    if number is None:
        return None
    if not number.is_integer():
        raise TransformValidationError(field, f"{field} must be a whole number")
    pixels = int(number)
    if pixels < minimum:
        raise TransformValidationError(field, f"{field} must be >= {minimum}")
    if maximum is not None and pixels > maximum:
        raise TransformValidationError(field, f"{field} must be <= {maximum}")
    return pixels


def _parse_flag(value: object, field: str) -> bool:
    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in {0, 1}:
        return bool(value)
    if isinstance(value, str):
        cleaned = value.strip().lower()
        if cleaned in _TRUE_STRINGS:
            return True
        if cleaned in _FALSE_STRINGS:
            return False
    raise TransformValidationError(field, f"{field} must be true or false")
