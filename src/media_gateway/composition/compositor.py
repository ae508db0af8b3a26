from __future__ import annotations

import io
from dataclasses import dataclass

from PIL import Image

from .config import OutputFormat
from .errors import RenderError

WHITE = (255, 255, 255, 255)


@dataclass(frozen=True)
class Layer:
    raster: Image.Image
    left: int
    top: int
    opacity: float = 1.0


def _with_opacity(raster: Image.Image, opacity: float) -> Image.Image:
    if opacity >= 1.0:
        return raster
    faded = raster.copy()
    alpha = faded.getchannel("A").point(lambda value: round(value * opacity))
    faded.putalpha(alpha)
    return faded


def _clip(layer: Layer, canvas_size: tuple[int, int]) -> tuple[tuple[int, int], tuple[int, int, int, int]] | None:
    """Visible (dest, source box) of ``layer`` on the canvas, or None when off-canvas."""
    canvas_width, canvas_height = canvas_size
    raster_width, raster_height = layer.raster.size
    src_left = max(0, -layer.left)
    src_top = max(0, -layer.top)
    src_right = min(raster_width, canvas_width - layer.left)
    src_bottom = min(raster_height, canvas_height - layer.top)
    if src_right <= src_left or src_bottom <= src_top:
        return None
    dest = (max(0, layer.left), max(0, layer.top))
    return dest, (src_left, src_top, src_right, src_bottom)


def flatten(layers: list[Layer], canvas_size: tuple[int, int], background: tuple[int, int, int, int] = WHITE) -> Image.Image:
    """Paint ``layers`` in order onto a solid canvas of ``canvas_size``."""
    try:
        canvas = Image.new("RGBA", canvas_size, background)
        for layer in layers:
            if layer.opacity <= 0.0:
                continue
            visible = _clip(layer, canvas_size)
            if visible is None:
                continue
            dest, source = visible
            raster = layer.raster if layer.raster.mode == "RGBA" else layer.raster.convert("RGBA")
            canvas.alpha_composite(_with_opacity(raster, layer.opacity), dest=dest, source=source)
        return canvas
    except (OSError, ValueError, MemoryError) as exc:
        raise RenderError("Failed to composite layers", detail=str(exc)) from exc


def encode(image: Image.Image, output_format: str, quality: int) -> bytes:
    """Encode without metadata so identical inputs give identical bytes."""
    buffer = io.BytesIO()
    try:
        if output_format == OutputFormat.PNG:
            image.save(buffer, format="PNG")
        else:
            image.convert("RGB").save(buffer, format="JPEG", quality=quality)
    except (OSError, ValueError, MemoryError) as exc:
        raise RenderError(f"Failed to encode {output_format} output", detail=str(exc)) from exc
    return buffer.getvalue()
