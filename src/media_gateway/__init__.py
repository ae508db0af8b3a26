"""
Media Conversion Gateway package.

This module provides a FastAPI application exposing REST endpoints that
compose watermarked product-sheet images and convert videos and documents.
Health check is available at `/health`.
"""

__all__ = ["__version__"]

__version__ = "3.1.0"
