"""
Geometry planning for the product-sheet composition.

Everything here is pure arithmetic over the resolved config and the natural
sizes of the two decoded images. No pixels are touched.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from .config import CompositionConfig, Layout, WatermarkMode

SHEET_CANVAS = (800, 1000)
SHEET_SUBJECT_SIDE = 800
SHEET_BAND_HEIGHT = 200
OVERLAY_CANVAS = (1200, 1200)
LOGO_WIDTH = 400


@dataclass(frozen=True)
class Rect:
    left: int
    top: int
    width: int
    height: int

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height


@dataclass(frozen=True)
class WatermarkPlacement:
    width: int
    height: int
    rotation: float
    opacity: float
    bounding_box: Rect


@dataclass(frozen=True)
class LogoPlacement:
    """The on-canvas part of the band logo.

    ``rect`` is the full scaled logo, ``visible`` is its intersection with the
    canvas and ``source_box`` is the matching region of the source image.
    """

    rect: Rect
    visible: Rect
    source_box: tuple[float, float, float, float]


@dataclass(frozen=True)
class CanvasPlan:
    width: int
    height: int
    subject: Rect
    watermark: WatermarkPlacement
    logo: LogoPlacement | None

    @property
    def size(self) -> tuple[int, int]:
        return self.width, self.height


def centered_offset(outer: tuple[int, int], inner: tuple[int, int]) -> tuple[int, int]:
    """Top-left offset that centres ``inner`` in ``outer``. May be negative."""
    return (outer[0] - inner[0]) // 2, (outer[1] - inner[1]) // 2


def scale_to_width(natural: tuple[int, int], width: int) -> tuple[int, int]:
    natural_width, natural_height = natural
    return width, max(1, round(natural_height * width / natural_width))


def inside_fit_width(natural: tuple[int, int], target_width: int) -> tuple[int, int]:
    """Resize to ``target_width`` keeping aspect ratio, never enlarging."""
    return scale_to_width(natural, max(1, min(target_width, natural[0])))


def rotated_bounds(size: tuple[int, int], angle: float) -> tuple[int, int]:
    """Bounding box of ``size`` rotated by ``angle`` degrees with expansion.

    Mirrors the expansion arithmetic Pillow applies in ``Image.rotate``.
    """
    angle = angle % 360.0
    width, height = size
    if angle == 0:
        return width, height
    if angle in (90.0, 270.0):
        return height, width
    if angle == 180.0:
        return width, height

    radians = -math.radians(angle)
    a, b = round(math.cos(radians), 15), round(math.sin(radians), 15)
    d, e = round(-math.sin(radians), 15), round(math.cos(radians), 15)
    cx, cy = width / 2, height / 2
    c = a * -cx + b * -cy + cx
    f = d * -cx + e * -cy + cy
    xs, ys = [], []
    for x, y in ((0, 0), (width, 0), (width, height), (0, height)):
        xs.append(a * x + b * y + c)
        ys.append(d * x + e * y + f)
    return math.ceil(max(xs)) - math.floor(min(xs)), math.ceil(max(ys)) - math.floor(min(ys))


def plan_logo(rect: Rect, source_size: tuple[int, int], canvas_height: int) -> LogoPlacement:
    """Clip a scaled logo to the canvas rows and map the clip back to the source.

    A very tall, narrow logo scales to a raster far taller than the canvas;
    only the rows that land on the canvas are ever rendered.
    """
    first_row = max(0, -rect.top)
    last_row = max(first_row + 1, min(rect.height, canvas_height - rect.top))
    ratio = source_size[1] / rect.height
    return LogoPlacement(
        rect=rect,
        visible=Rect(rect.left, rect.top + first_row, rect.width, last_row - first_row),
        source_box=(0.0, first_row * ratio, float(source_size[0]), last_row * ratio),
    )


def plan_canvas(
    config: CompositionConfig,
    subject_size: tuple[int, int],
    watermark_size: tuple[int, int],
) -> CanvasPlan:
    """Compute the full layer geometry for one composition.

    ``subject_size`` is accepted for symmetry with the renderer; the subject
    always covers its region so only the region itself is planned here.
    """
    if config.layout == Layout.OVERLAY:
        canvas_width, canvas_height = OVERLAY_CANVAS
        subject = Rect(0, 0, canvas_width, canvas_height)
    else:
        canvas_width, canvas_height = SHEET_CANVAS
        subject = Rect(0, 0, SHEET_SUBJECT_SIDE, SHEET_SUBJECT_SIDE)

    mark_width, mark_height = inside_fit_width(watermark_size, round(canvas_width * config.watermark_scale))
    rotation = config.watermark_angle if config.watermark_mode == WatermarkMode.DIAGONAL else 0.0
    box_size = rotated_bounds((mark_width, mark_height), rotation)
    box_left, box_top = centered_offset((canvas_width, canvas_height), box_size)
    watermark = WatermarkPlacement(
        width=mark_width,
        height=mark_height,
        rotation=rotation,
        opacity=config.watermark_opacity,
        bounding_box=Rect(box_left, box_top, *box_size),
    )

    logo = None
    if config.layout == Layout.SHEET:
        logo_width, logo_height = scale_to_width(watermark_size, LOGO_WIDTH)
        band_top = canvas_height - SHEET_BAND_HEIGHT
        left, top = centered_offset((canvas_width, SHEET_BAND_HEIGHT), (logo_width, logo_height))
        logo = plan_logo(Rect(left, band_top + top, logo_width, logo_height), watermark_size, canvas_height)

    return CanvasPlan(
        width=canvas_width,
        height=canvas_height,
        subject=subject,
        watermark=watermark,
        logo=logo,
    )
