"""
Image composition engine.
Resolves form fields into a config, plans the canvas geometry, renders each
layer with Pillow and flattens them into a single encoded image. The engine
is synchronous and holds no shared state, so it is safe to call from many
worker threads at once.
"""

from .config import CompositionConfig, resolve_config
from .engine import ComposeResult, compose
from .errors import (
    ConversionError,
    DecodeError,
    ExternalToolError,
    PayloadTooLargeError,
    RenderError,
    ValidationError,
)
from .geometry import CanvasPlan, plan_canvas
