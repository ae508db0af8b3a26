import asyncio
import logging
import mimetypes
import re
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path
from urllib.parse import urlparse

from media_gateway.composition import ComposeResult, compose
from media_gateway.composition.errors import PayloadTooLargeError, ValidationError

from .interfaces import ConvertedMedia, DocumentExporter, MediaFetcher, Transcoder

logger = logging.getLogger(__name__)

_FORMAT_RE = re.compile(r"[a-z0-9]{1,10}")
CHUNK = 1024 * 1024


def normalize_format(raw: str | None, default: str, field: str = "format") -> str:
    value = (raw or default).strip().lower()
    if not _FORMAT_RE.fullmatch(value):
        raise ValidationError(field, f'Field "{field}" must be a short alphanumeric extension.')
    return value


def content_type_for(extension: str, fallback: str = "application/octet-stream") -> str:
    guessed, _ = mimetypes.guess_type(f"file.{extension}")
    return guessed or fallback


async def read_upload(reader: Callable[[int], Awaitable[bytes]], *, max_upload_mb: int) -> bytes:
    """Drain an upload in chunks, refusing anything over ``max_upload_mb``."""
    max_bytes = max_upload_mb * 1024 * 1024
    parts: list[bytes] = []
    size_bytes = 0
    while True:
        chunk = await reader(CHUNK)
        if not chunk:
            break
        size_bytes += len(chunk)
        if size_bytes > max_bytes:
            raise PayloadTooLargeError(f"upload exceeds {max_upload_mb} MB")
        parts.append(bytes(chunk))
    return b"".join(parts)


class ConversionService:
    """Core domain service behind the HTTP routes.

    This service is framework-agnostic. Every conversion is CPU- or
    process-bound, so each one runs in a worker thread while a semaphore caps
    how many run at once; the event loop stays free to accept requests and
    answer health checks.
    """

    def __init__(
        self,
        transcoder: Transcoder,
        exporter: DocumentExporter,
        fetcher: MediaFetcher,
        *,
        workers: int = 4,
    ) -> None:
        self._transcoder = transcoder
        self._exporter = exporter
        self._fetcher = fetcher
        self._workers = workers
        self._slots = asyncio.Semaphore(max(1, workers))

    @property
    def workers(self) -> int:
        return self._workers

    async def _offload(self, fn, *args, **kwargs):
        async with self._slots:
            return await asyncio.to_thread(fn, *args, **kwargs)

    async def compose_image(
        self,
        subject: bytes | None,
        watermark: bytes | None,
        fields: Mapping[str, object | None],
    ) -> ComposeResult:
        return await self._offload(compose, subject, watermark, dict(fields))

    async def convert_video(self, data: bytes | None, target_format: str | None) -> ConvertedMedia:
        if not data:
            raise ValidationError("video", 'Field "video" is required.')
        fmt = normalize_format(target_format, "mp4")
        logger.info("Transcoding %d bytes of video to %s", len(data), fmt)
        content = await self._offload(self._transcoder.transcode, data, fmt)
        return ConvertedMedia(content, f"video/{fmt}", f"converted.{fmt}")

    async def convert_document(self, data: bytes | None, filename: str | None, target_format: str | None) -> ConvertedMedia:
        if not data:
            raise ValidationError("document", 'Field "document" is required.')
        fmt = normalize_format(target_format, "pdf")
        name = Path(filename or "document").name or "document"
        logger.info("Exporting %s (%d bytes) to %s", name, len(data), fmt)
        content = await self._offload(self._exporter.export, data, name, fmt)
        return ConvertedMedia(content, content_type_for(fmt), f"{Path(name).stem}.{fmt}")

    async def fetch_remote(self, url: str | None, container: str | None) -> ConvertedMedia:
        if not url:
            raise ValidationError("url", 'Query parameter "url" is required.')
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValidationError("url", 'Query parameter "url" must be an http(s) URL.')
        fmt = normalize_format(container, "mp4")
        logger.info("Fetching remote media from %s as %s", parsed.netloc, fmt)
        content = await self._offload(self._fetcher.fetch, url, fmt)
        return ConvertedMedia(content, f"video/{fmt}", f"download.{fmt}")
