from __future__ import annotations

from PIL import Image, ImageFilter, ImageOps, ImageStat

from .errors import RenderError
from .geometry import LogoPlacement, Rect, WatermarkPlacement

# Longest side of the edge-energy map used to pick the crop window.
ATTENTION_SAMPLE_PX = 256
ATTENTION_STEPS = 16

TRANSPARENT = (0, 0, 0, 0)


def _as_rgba(image: Image.Image) -> Image.Image:
    return image if image.mode == "RGBA" else image.convert("RGBA")


def attention_centering(image: Image.Image, target_size: tuple[int, int]) -> tuple[float, float]:
    """Pick the ``ImageOps.fit`` centering that keeps the busiest region.

    The source is reduced to an edge map and a crop window with the target's
    aspect ratio slides along the overflowing axis. The window holding the most
    edge energy wins; ties go to the window nearest the centre.
    """
    src_width, src_height = image.size
    target_width, target_height = target_size
    scale = max(target_width / src_width, target_height / src_height)
    window_width = target_width / scale
    window_height = target_height / scale
    slack_x = src_width - window_width
    slack_y = src_height - window_height
    if slack_x < 1 and slack_y < 1:
        return 0.5, 0.5

    factor = max(1, max(src_width, src_height) // ATTENTION_SAMPLE_PX)
    energy = image.convert("L")
    if factor > 1:
        energy = energy.reduce(factor)
    energy = energy.filter(ImageFilter.FIND_EDGES)
    if min(energy.size) > 2:
        # 3x3 kernels pass border pixels through unfiltered
        energy = ImageOps.expand(ImageOps.crop(energy, border=1), border=1, fill=0)
    ratio_x = energy.width / src_width
    ratio_y = energy.height / src_height

    horizontal = slack_x >= slack_y
    best_fraction = 0.5
    best_score = -1.0
    best_distance = 1.0
    for step in range(ATTENTION_STEPS + 1):
        fraction = step / ATTENTION_STEPS
        if horizontal:
            left = slack_x * fraction
            box = (left, 0, left + window_width, src_height)
        else:
            top = slack_y * fraction
            box = (0, top, src_width, top + window_height)
        scaled = (
            int(box[0] * ratio_x),
            int(box[1] * ratio_y),
            max(int(box[0] * ratio_x) + 1, round(box[2] * ratio_x)),
            max(int(box[1] * ratio_y) + 1, round(box[3] * ratio_y)),
        )
        score = ImageStat.Stat(energy.crop(scaled)).sum[0]
        distance = abs(fraction - 0.5)
        if score > best_score or (score == best_score and distance < best_distance):
            best_fraction, best_score, best_distance = fraction, score, distance

    return (best_fraction, 0.5) if horizontal else (0.5, best_fraction)


def render_subject(image: Image.Image, rect: Rect) -> Image.Image:
    """Cover-fit the subject into ``rect``, cropping around its salient region."""
    try:
        source = _as_rgba(image)
        centering = attention_centering(source, rect.size)
        return ImageOps.fit(source, rect.size, method=Image.Resampling.LANCZOS, centering=centering)
    except (OSError, ValueError, MemoryError) as exc:
        raise RenderError("Failed to render subject layer", detail=str(exc)) from exc


def render_watermark(image: Image.Image, placement: WatermarkPlacement) -> Image.Image:
    """Resize and, for diagonal mode, rotate the watermark.

    Opacity is left untouched here; the compositor applies it.
    """
    try:
        mark = _as_rgba(image)
        if mark.size != (placement.width, placement.height):
            mark = mark.resize((placement.width, placement.height), Image.Resampling.LANCZOS)
        if placement.rotation % 360:
            mark = mark.rotate(
                placement.rotation,
                resample=Image.Resampling.BICUBIC,
                expand=True,
                fillcolor=TRANSPARENT,
            )
        return mark
    except (OSError, ValueError, MemoryError) as exc:
        raise RenderError("Failed to render watermark layer", detail=str(exc)) from exc


def render_logo(image: Image.Image, placement: LogoPlacement) -> Image.Image:
    """Resize only the source rows that show up on the canvas."""
    try:
        logo = _as_rgba(image)
        return logo.resize(placement.visible.size, Image.Resampling.LANCZOS, box=placement.source_box)
    except (OSError, ValueError, MemoryError) as exc:
        raise RenderError("Failed to render logo layer", detail=str(exc)) from exc
