from contextlib import AbstractContextManager
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol


class TempFileAllocator(Protocol):
    def scoped_dir(self) -> AbstractContextManager[Path]:
        """Yield a private, empty directory that is removed on every exit path."""


class Transcoder(Protocol):
    def transcode(self, data: bytes, target_format: str, *, video_bitrate: str | None = None) -> bytes:
        """Transcode media bytes into ``target_format``.
        This is a blocking call; callers should offload to threads if needed.
        """


class DocumentExporter(Protocol):
    def export(
        self,
        data: bytes,
        filename: str,
        target_format: str = "pdf",
        *,
        filter_options: str | None = None,
    ) -> bytes:
        ...


class MediaFetcher(Protocol):
    def fetch(self, url: str, container: str = "mp4") -> bytes:
        ...


@dataclass(frozen=True)
class ConvertedMedia:
    content: bytes
    content_type: str
    filename: str
