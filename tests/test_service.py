import asyncio
import io

import pytest
from PIL import Image

from media_gateway.composition.errors import ExternalToolError, PayloadTooLargeError, ValidationError
from media_gateway.conversion.service import ConversionService, content_type_for, normalize_format, read_upload


class FakeTranscoder:
    def __init__(self) -> None:
        self.calls: list[tuple[bytes, str]] = []

    def transcode(self, data: bytes, target_format: str, *, video_bitrate: str | None = None) -> bytes:
        self.calls.append((data, target_format))
        return b"video:" + target_format.encode()


class FakeExporter:
    def export(self, data: bytes, filename: str, target_format: str = "pdf", *, filter_options: str | None = None) -> bytes:
        return f"{filename}->{target_format}".encode()


class FailingFetcher:
    def fetch(self, url: str, container: str = "mp4") -> bytes:
        raise ExternalToolError("yt-dlp exited with status 1", detail="ERROR: unavailable")


def _service(fetcher=None) -> ConversionService:
    return ConversionService(FakeTranscoder(), FakeExporter(), fetcher or FailingFetcher(), workers=2)


def _png(size, color) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", size, color).save(buffer, format="PNG")
    return buffer.getvalue()


def test_read_upload_joins_chunks() -> None:
    stream = io.BytesIO(b"a" * 3000)

    async def reader(n: int) -> bytes:
        return stream.read(n)

    assert asyncio.run(read_upload(reader, max_upload_mb=1)) == b"a" * 3000


def test_read_upload_rejects_oversized_payload() -> None:
    stream = io.BytesIO(b"a" * 10)

    async def reader(n: int) -> bytes:
        return stream.read(n)

    with pytest.raises(PayloadTooLargeError, match="exceeds 0 MB"):
        asyncio.run(read_upload(reader, max_upload_mb=0))


@pytest.mark.parametrize("raw", ["../etc", "mp 4", "a" * 11, "m4a?"])
def test_normalize_format_rejects_unsafe_extensions(raw) -> None:
    with pytest.raises(ValidationError):
        normalize_format(raw, "mp4")


def test_normalize_format_defaults_and_lowercases() -> None:
    assert normalize_format(None, "mp4") == "mp4"
    assert normalize_format(" WEBM ", "mp4") == "webm"


def test_content_type_for_known_and_unknown_extensions() -> None:
    assert content_type_for("pdf") == "application/pdf"
    assert content_type_for("zzzz") == "application/octet-stream"


def test_compose_image_runs_engine_off_loop() -> None:
    result = asyncio.run(_service().compose_image(_png((50, 50), "blue"), _png((10, 10), "red"), {"format": "png"}))
    assert result.ok
    assert result.content_type == "image/png"


def test_convert_video_uses_requested_container() -> None:
    media = asyncio.run(_service().convert_video(b"raw", "WEBM"))
    assert media.content == b"video:webm"
    assert media.content_type == "video/webm"
    assert media.filename == "converted.webm"


def test_convert_video_requires_upload() -> None:
    with pytest.raises(ValidationError) as exc:
        asyncio.run(_service().convert_video(None, None))
    assert exc.value.field == "video"


def test_convert_document_defaults_to_pdf() -> None:
    media = asyncio.run(_service().convert_document(b"doc", "/tmp/evil/report.docx", None))
    assert media.content == b"report.docx->pdf"
    assert media.content_type == "application/pdf"
    assert media.filename == "report.pdf"


@pytest.mark.parametrize("url", [None, "", "ftp://example.com/v", "file:///etc/passwd", "https://"])
def test_fetch_remote_requires_http_url(url) -> None:
    with pytest.raises(ValidationError) as exc:
        asyncio.run(_service().fetch_remote(url, None))
    assert exc.value.field == "url"


def test_fetch_remote_propagates_tool_failure() -> None:
    with pytest.raises(ExternalToolError) as exc:
        asyncio.run(_service().fetch_remote("https://example.com/watch?v=1", None))
    assert exc.value.detail == "ERROR: unavailable"


def test_convert_document_guesses_type_for_other_targets() -> None:
    media = asyncio.run(_service().convert_document(b"doc", "notes.docx", "txt"))
    assert media.content_type == "text/plain"
    assert media.filename == "notes.txt"

    media = asyncio.run(_service().convert_document(b"doc", "notes.docx", "zzzz"))
    assert media.content_type == "application/octet-stream"
