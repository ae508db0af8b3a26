"""
Service layer for media conversion.
Provides gateway interfaces for the external tools (ffmpeg, soffice, yt-dlp)
and a service that runs them, and the composition engine, off the event loop
so front-ends (HTTP or others) can share the same core logic.
"""

from .interfaces import ConvertedMedia, DocumentExporter, MediaFetcher, TempFileAllocator, Transcoder
from .service import ConversionService, read_upload
