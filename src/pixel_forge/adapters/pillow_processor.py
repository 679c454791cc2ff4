"""Image processor backed by Pillow."""

import io
import logging
from collections.abc import Callable
from dataclasses import dataclass

from PIL import Image, ImageFilter, ImageOps, UnidentifiedImageError

from pixel_forge.domain.images import ProcessedImage
from pixel_forge.domain.transforms import (
    CropBox,
    ResizeTarget,
    SharpenParams,
    TransformationSpec,
)
from pixel_forge.errors import ImageProcessingError
from pixel_forge.services.transforms import ImageProcessor, resized_dimensions

logger = logging.getLogger(__name__)

DEFAULT_JPEG_QUALITY = 80
FALLBACK_FORMAT = "PNG"
_WORKING_MODES = {"RGB", "RGBA", "L", "LA"}


@dataclass
class _Canvas:
    """In-flight image plus the encoding chosen for the output."""

    image: Image.Image
    format: str
    quality: int | None = None


@dataclass
class PillowImageProcessor(ImageProcessor):
    """Applies transformation specs with Pillow in a fixed order."""

    default_jpeg_quality: int = DEFAULT_JPEG_QUALITY

    def dimensions(self, image_bytes: bytes) -> tuple[int, int]:
        """Read the image header and return its size."""
        with _open(image_bytes) as image:
            return image.size

    def apply(self, image_bytes: bytes, spec: TransformationSpec) -> ProcessedImage:
        """Decode, transform and re-encode an image."""
        with _open(image_bytes) as source:
            source_format = source.format
            try:
                source.load()
                image = _to_working_mode(source)
            except Exception as exc:
                raise ImageProcessingError("decode", _describe(exc)) from exc
        canvas = _Canvas(image=image, format=_output_format(source_format))

        for stage, step in _pipeline(spec):
            try:
                step(canvas)
            except Exception as exc:
                logger.warning(
                    "Transformation stage %s failed: %s", stage, _describe(exc)
                )
                raise ImageProcessingError(stage, _describe(exc)) from exc

        try:
            content = self._encode(canvas)
        except Exception as exc:
            raise ImageProcessingError("encode", _describe(exc)) from exc
        media_type = Image.MIME.get(canvas.format, "application/octet-stream")
        return ProcessedImage(
            content=content, media_type=media_type, format=canvas.format
        )

    def _encode(self, canvas: _Canvas) -> bytes:
        image = canvas.image
        params: dict[str, object] = {}
        if canvas.format == "JPEG":
            image = _drop_alpha(image)
            params["quality"] = canvas.quality or self.default_jpeg_quality
        buffer = io.BytesIO()
        image.save(buffer, format=canvas.format, **params)
        return buffer.getvalue()


def _open(image_bytes: bytes) -> Image.Image:
    try:
        return Image.open(io.BytesIO(image_bytes))
    except (UnidentifiedImageError, OSError) as exc:
        raise ImageProcessingError("decode", "unsupported or corrupt image") from exc
    except Exception as exc:
        raise ImageProcessingError("decode", _describe(exc)) from exc


def _describe(exc: Exception) -> str:
    # MemoryError and friends often carry no message.
    return str(exc) or type(exc).__name__


def _pipeline(
    spec: TransformationSpec,
) -> list[tuple[str, Callable[[_Canvas], None]]]:
    """Build the ordered list of stages requested by the spec."""
    steps: list[tuple[str, Callable[[_Canvas], None]]] = []
    if spec.crop is not None:
        steps.append(("crop", _crop_step(spec.crop)))
    if spec.resize is not None:
        steps.append(("resize", _resize_step(spec.resize)))
    if spec.rotate is not None:
        steps.append(("rotate", _rotate_step(spec.rotate)))
    if spec.flip:
        steps.append(("flip", _map_image(ImageOps.flip)))
    if spec.flop:
        steps.append(("flop", _map_image(ImageOps.mirror)))
    if spec.blur is not None:
        steps.append(("blur", _filter_step(ImageFilter.GaussianBlur(spec.blur))))
    if spec.quality is not None:
        steps.append(("compress", _compress_step(spec.quality)))
    if spec.grayscale:
        steps.append(("grayscale", _map_image(_grayscale)))
    if spec.negate:
        steps.append(("negate", _map_image(_negate)))
    if spec.sharpen is not None:
        steps.append(("sharpen", _filter_step(_unsharp_mask(spec.sharpen))))
    if spec.tint is not None:
        steps.append(("tint", _tint_step(spec.tint)))
    return steps


def _map_image(
    operation: Callable[[Image.Image], Image.Image],
) -> Callable[[_Canvas], None]:
    def step(canvas: _Canvas) -> None:
        canvas.image = operation(canvas.image)

    return step


def _crop_step(box: CropBox) -> Callable[[_Canvas], None]:
    def crop(image: Image.Image) -> Image.Image:
        width, height = image.size
        if box.x + box.width > width or box.y + box.height > height:
            raise ValueError(
                f"crop area {box.width}x{box.height}+{box.x}+{box.y} "
                f"is outside the {width}x{height} image"
            )
        return image.crop((box.x, box.y, box.x + box.width, box.y + box.height))

    return _map_image(crop)


def _resize_step(target: ResizeTarget) -> Callable[[_Canvas], None]:
    def resize(image: Image.Image) -> Image.Image:
        size = resized_dimensions(target, *image.size)
        if target.width is not None and target.height is not None:
            return ImageOps.fit(image, size, Image.Resampling.LANCZOS)
        return image.resize(size, Image.Resampling.LANCZOS)

    return _map_image(resize)


def _rotate_step(angle: float) -> Callable[[_Canvas], None]:
    # Pillow rotates counter-clockwise; requests are clockwise.
    def rotate(image: Image.Image) -> Image.Image:
        return image.rotate(-angle, resample=Image.Resampling.BICUBIC, expand=True)

    return _map_image(rotate)


def _filter_step(image_filter: ImageFilter.Filter) -> Callable[[_Canvas], None]:
    def apply_filter(image: Image.Image) -> Image.Image:
        return image.filter(image_filter)

    return _map_image(apply_filter)


def _unsharp_mask(params: SharpenParams) -> ImageFilter.UnsharpMask:
    return ImageFilter.UnsharpMask(
        radius=params.radius,
        percent=params.percent,
        threshold=params.threshold,
    )


def _compress_step(quality: int) -> Callable[[_Canvas], None]:
    def compress(canvas: _Canvas) -> None:
        canvas.format = "JPEG"
        canvas.quality = quality

    return compress


def _tint_step(rgb: tuple[int, int, int]) -> Callable[[_Canvas], None]:
    def tint(image: Image.Image) -> Image.Image:
        alpha = _alpha(image)
        tinted = ImageOps.colorize(
            ImageOps.grayscale(image), black=(0, 0, 0), white=rgb
        )
        if alpha is not None:
            tinted.putalpha(alpha)
        return tinted

    return _map_image(tint)


def _grayscale(image: Image.Image) -> Image.Image:
    return image.convert("LA" if _alpha(image) is not None else "L")


def _negate(image: Image.Image) -> Image.Image:
    alpha = _alpha(image)
    if alpha is None:
        return ImageOps.invert(image)
    color_mode = "L" if image.mode == "LA" else "RGB"
    inverted = ImageOps.invert(image.convert(color_mode))
    inverted.putalpha(alpha)
    return inverted


def _alpha(image: Image.Image) -> Image.Image | None:
    if image.mode in {"RGBA", "LA"}:
        return image.getchannel("A")
    return None


def _drop_alpha(image: Image.Image) -> Image.Image:
    if image.mode == "RGBA":
        return image.convert("RGB")
    if image.mode == "LA":
        return image.convert("L")
    return image


def _to_working_mode(image: Image.Image) -> Image.Image:
    if image.mode in _WORKING_MODES:
        return image.copy()
    has_alpha = "transparency" in image.info or image.mode.endswith("A")
    return image.convert("RGBA" if has_alpha else "RGB")


def _output_format(source_format: str | None) -> str:
    Image.init()
    if source_format and source_format in Image.SAVE:
        return source_format
    return FALLBACK_FORMAT
