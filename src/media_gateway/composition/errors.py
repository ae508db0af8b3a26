"""
Error taxonomy shared by the composition engine and the conversion service.

Every error carries a stable ``kind`` string and the HTTP status the serving
layer should answer with, so callers can branch on a single broad catch of
``ConversionError``.
"""

from __future__ import annotations


class ConversionError(Exception):
    """Base exception for all gateway errors."""

    kind = "internal"
    status_code = 500

    def __init__(self, message: str, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(ConversionError):
    """Raised when a required input is missing or malformed.

    Attributes
    ----------
    field:
        Name of the offending input field.
    """

    kind = "validation"
    status_code = 400

    def __init__(self, field: str, message: str, detail: str | None = None) -> None:
        super().__init__(message, detail)
        self.field = field


class DecodeError(ConversionError):
    """Raised when an uploaded buffer is not a decodable image."""

    kind = "decode"
    status_code = 400


class RenderError(ConversionError):
    """Raised when a resize, rotate, composite or encode step fails."""

    kind = "render"
    status_code = 500


class ExternalToolError(ConversionError):
    """Raised when ffmpeg, soffice or yt-dlp fails, times out or is missing."""

    kind = "external_tool"
    status_code = 500


class PayloadTooLargeError(ConversionError):
    kind = "payload_too_large"
    status_code = 413
