from __future__ import annotations

import io
import logging
import struct
from collections.abc import Mapping
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from .compositor import Layer, encode, flatten
from .config import CompositionConfig, resolve_config
from .errors import ConversionError, DecodeError, ValidationError
from .geometry import CanvasPlan, plan_canvas
from .render import render_logo, render_subject, render_watermark

logger = logging.getLogger(__name__)

SUBJECT_FIELD = "image"
WATERMARK_FIELD = "watermark"

# Pillow's plugins surface malformed streams through several exception types;
# a broken PNG chunk header, for one, escapes ``load()`` as SyntaxError.
DECODE_ERRORS = (
    UnidentifiedImageError,
    Image.DecompressionBombError,
    OSError,
    EOFError,
    ValueError,
    SyntaxError,
    IndexError,
    struct.error,
)


@dataclass(frozen=True)
class DecodedImage:
    """An uploaded image with its natural size. Used for subject and watermark alike."""

    image: Image.Image

    @property
    def size(self) -> tuple[int, int]:
        return self.image.size


@dataclass(frozen=True)
class ComposeResult:
    ok: bool
    content: bytes = b""
    content_type: str = ""
    kind: str = ""
    message: str = ""
    detail: str | None = None
    field: str | None = None

    @classmethod
    def success(cls, content: bytes, content_type: str) -> "ComposeResult":
        return cls(ok=True, content=content, content_type=content_type)

    @classmethod
    def failure(cls, error: ConversionError) -> "ComposeResult":
        return cls(
            ok=False,
            kind=error.kind,
            message=error.message,
            detail=error.detail,
            field=getattr(error, "field", None),
        )


def decode_image(data: bytes | None, field: str) -> DecodedImage:
    if not data:
        raise ValidationError(field, f'Field "{field}" is required.')
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except DECODE_ERRORS as exc:
        raise DecodeError(f'Field "{field}" is not a decodable image.', detail=str(exc)) from exc
    if image.width < 1 or image.height < 1:
        raise DecodeError(f'Field "{field}" decoded to an empty image.')
    return DecodedImage(image=image)


def build_layers(plan: CanvasPlan, subject: DecodedImage, watermark: DecodedImage) -> list[Layer]:
    """Render every planned layer, bottom to top."""
    box = plan.watermark.bounding_box
    layers = [
        Layer(render_watermark(watermark.image, plan.watermark), box.left, box.top, plan.watermark.opacity),
        Layer(render_subject(subject.image, plan.subject), plan.subject.left, plan.subject.top),
    ]
    if plan.logo is not None:
        visible = plan.logo.visible
        layers.append(Layer(render_logo(watermark.image, plan.logo), visible.left, visible.top))
    return layers


def render_composition(subject: DecodedImage, watermark: DecodedImage, config: CompositionConfig) -> bytes:
    plan = plan_canvas(config, subject.size, watermark.size)
    canvas = flatten(build_layers(plan, subject, watermark), plan.size)
    return encode(canvas, config.output_format, config.quality)


def compose(
    subject_data: bytes | None,
    watermark_data: bytes | None,
    fields: Mapping[str, object | None],
) -> ComposeResult:
    """Run the whole pipeline and report a tagged result instead of raising.

    ``fields`` is the flat form record; unknown keys are ignored.
    """
    config = resolve_config(fields)
    try:
        subject = decode_image(subject_data, SUBJECT_FIELD)
        watermark = decode_image(watermark_data, WATERMARK_FIELD)
        logger.info(
            "Composing %s layout, %s watermark, subject %sx%s, output %s",
            config.layout,
            config.watermark_mode,
            *subject.size,
            config.output_format,
        )
        content = render_composition(subject, watermark, config)
    except ConversionError as exc:
        log = logger.warning if exc.status_code < 500 else logger.error
        log("Composition failed (%s): %s %s", exc.kind, exc.message, exc.detail or "")
        return ComposeResult.failure(exc)
    logger.info("Composed %s bytes of %s", len(content), config.content_type)
    return ComposeResult.success(content, config.content_type)
