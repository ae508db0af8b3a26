from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass


class OutputFormat:
    JPEG = "jpeg"
    PNG = "png"


class Layout:
    SHEET = "sheet"
    OVERLAY = "overlay"


class WatermarkMode:
    DIAGONAL = "diagonal"
    CENTER = "center"


DEFAULT_QUALITY = 90
DEFAULT_OPACITY = 0.30
DEFAULT_SCALE = 2.5
DEFAULT_ANGLE = 45.0
MIN_SCALE = 0.1

CONTENT_TYPES = {
    OutputFormat.JPEG: "image/jpeg",
    OutputFormat.PNG: "image/png",
}


@dataclass(frozen=True)
class CompositionConfig:
    output_format: str = OutputFormat.JPEG
    quality: int = DEFAULT_QUALITY
    layout: str = Layout.SHEET
    watermark_mode: str = WatermarkMode.DIAGONAL
    watermark_opacity: float = DEFAULT_OPACITY
    watermark_scale: float = DEFAULT_SCALE
    watermark_angle: float = DEFAULT_ANGLE

    @property
    def content_type(self) -> str:
        return CONTENT_TYPES[self.output_format]


def _text(raw: object) -> str:
    if raw is None:
        return ""
    return str(raw).strip().lower()


def _finite_float(raw: object) -> float | None:
    try:
        value = float(str(raw).strip())
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def parse_output_format(raw: object) -> str:
    """``png`` selects PNG; every other value, missing included, selects JPEG."""
    return OutputFormat.PNG if _text(raw) == OutputFormat.PNG else OutputFormat.JPEG


def parse_quality(raw: object) -> int:
    """Integer quality, 90 when missing or unparseable, clamped to [1, 100]."""
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        value = DEFAULT_QUALITY
    return max(1, min(100, value))


def parse_layout(raw: object) -> str:
    value = _text(raw)
    return value if value in (Layout.SHEET, Layout.OVERLAY) else Layout.SHEET


def parse_watermark_mode(raw: object) -> str:
    value = _text(raw)
    return value if value in (WatermarkMode.DIAGONAL, WatermarkMode.CENTER) else WatermarkMode.DIAGONAL


def parse_opacity(raw: object) -> float:
    """Float opacity clamped to [0, 1]; 0.30 when missing, unparseable or non-finite."""
    value = _finite_float(raw)
    if value is None:
        return DEFAULT_OPACITY
    return max(0.0, min(1.0, value))


def parse_scale(raw: object) -> float:
    """Float scale floored at 0.1; 2.5 when missing, unparseable or non-finite."""
    value = _finite_float(raw)
    if value is None:
        return DEFAULT_SCALE
    return max(MIN_SCALE, value)


def parse_angle(raw: object) -> float:
    """Float degrees, unrestricted; 45 when missing, unparseable or non-finite."""
    value = _finite_float(raw)
    return DEFAULT_ANGLE if value is None else value


def resolve_config(fields: Mapping[str, object | None]) -> CompositionConfig:
    """Build a fully populated config from raw form fields. Never raises."""
    return CompositionConfig(
        output_format=parse_output_format(fields.get("format")),
        quality=parse_quality(fields.get("quality")),
        layout=parse_layout(fields.get("layout")),
        watermark_mode=parse_watermark_mode(fields.get("watermark_mode")),
        watermark_opacity=parse_opacity(fields.get("watermark_opacity")),
        watermark_scale=parse_scale(fields.get("watermark_scale")),
        watermark_angle=parse_angle(fields.get("watermark_angle")),
    )
