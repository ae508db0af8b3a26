import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, File, Form, Query, Request, UploadFile
from fastapi.responses import JSONResponse, Response

from media_gateway import __version__
from media_gateway.composition import ComposeResult
from media_gateway.composition.errors import ConversionError
from media_gateway.conversion import ConversionService, read_upload
from media_gateway.conversion.adapters import (
    FfmpegTranscoder,
    LibreOfficeExporter,
    LocalTempFiles,
    YtDlpFetcher,
    tool_available,
)
from media_gateway.conversion.interfaces import ConvertedMedia

logger = logging.getLogger(__name__)

# Global configuration defaults
VERSION = os.getenv("MEDIA_GATEWAY_VERSION", __version__)
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "500"))
WORKERS = int(os.getenv("WORKERS", "4"))
TEMP_DIR = os.getenv("TEMP_DIR") or None
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

SERVICE: ConversionService | None = None


def build_service() -> ConversionService:
    temp_files = LocalTempFiles(TEMP_DIR)
    return ConversionService(
        transcoder=FfmpegTranscoder(temp_files),
        exporter=LibreOfficeExporter(temp_files),
        fetcher=YtDlpFetcher(temp_files),
        workers=WORKERS,
    )


@asynccontextmanager
async def lifespan(_app: FastAPI):
    global SERVICE
    SERVICE = build_service()
    logger.info("Media gateway %s ready with %d workers", VERSION, SERVICE.workers)
    yield
    SERVICE = None


app = FastAPI(
    title="Media Conversion Gateway",
    version=VERSION,
    description=(
        "REST API that composes watermarked product-sheet images and converts "
        "videos, documents and remote videos through external tools."
    ),
    lifespan=lifespan,
)


def _service() -> ConversionService:
    assert SERVICE is not None
    return SERVICE


def _error_response(
    status_code: int,
    kind: str,
    message: str,
    detail: str | None = None,
    field: str | None = None,
) -> JSONResponse:
    body: dict[str, object] = {"success": False, "kind": kind, "error": message}
    if field:
        body["field"] = field
    if detail:
        body["details"] = detail
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(ConversionError)
async def _conversion_error(_request: Request, exc: ConversionError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log("Request failed (%s): %s", exc.kind, exc.message)
    return _error_response(exc.status_code, exc.kind, exc.message, exc.detail, getattr(exc, "field", None))


@app.exception_handler(Exception)
async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(500, "internal", "Internal server error.", type(exc).__name__)


@app.middleware("http")
async def _log_requests(request: Request, call_next):
    logger.info("Request received: %s %s", request.method, request.url.path)
    return await call_next(request)


async def _read(file: UploadFile | None) -> bytes | None:
    if file is None:
        return None
    return await read_upload(file.read, max_upload_mb=MAX_UPLOAD_MB)


def _media_response(media: ConvertedMedia) -> Response:
    headers = {"Content-Disposition": f'attachment; filename="{media.filename}"'}
    return Response(content=media.content, media_type=media.content_type, headers=headers)


@app.get("/health")
def health() -> dict[str, object]:
    """Basic health check endpoint."""
    return {
        "status": "ok",
        "version": VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        "tools": {name: tool_available(name) for name in ("ffmpeg", "soffice", "yt-dlp")},
    }


@app.post("/convert/image")
async def convert_image(
    image: UploadFile | None = File(None),
    watermark: UploadFile | None = File(None),
    format: str | None = Form(None),
    quality: str | None = Form(None),
    layout: str | None = Form(None),
    watermark_mode: str | None = Form(None),
    watermark_opacity: str | None = Form(None),
    watermark_scale: str | None = Form(None),
    watermark_angle: str | None = Form(None),
) -> Response:
    """Compose a product-sheet image from a subject photo and a watermark.

    Accepts multipart/form-data with parts "image" and "watermark" plus optional
    layout fields. Bad field values fall back to their defaults; only missing or
    undecodable images are rejected.
    """
    fields = {
        "format": format,
        "quality": quality,
        "layout": layout,
        "watermark_mode": watermark_mode,
        "watermark_opacity": watermark_opacity,
        "watermark_scale": watermark_scale,
        "watermark_angle": watermark_angle,
    }
    result: ComposeResult = await _service().compose_image(await _read(image), await _read(watermark), fields)
    if not result.ok:
        status_code = 500 if result.kind == "render" else 400
        return _error_response(status_code, result.kind, result.message, result.detail, result.field)
    return Response(content=result.content, media_type=result.content_type)


@app.post("/convert/video")
async def convert_video(video: UploadFile | None = File(None), format: str | None = Form(None)) -> Response:
    media = await _service().convert_video(await _read(video), format)
    return _media_response(media)


@app.post("/convert/document")
async def convert_document(document: UploadFile | None = File(None), format: str | None = Form(None)) -> Response:
    data = await _read(document)
    media = await _service().convert_document(data, document.filename if document else None, format)
    return _media_response(media)


@app.get("/convert/youtube")
async def convert_youtube(url: str | None = Query(None), format: str | None = Query(None)) -> Response:
    media = await _service().fetch_remote(url, format)
    return _media_response(media)


def run() -> None:
    """Run a development ASGI server using uvicorn.

    Exposes the app at host:port (default 0.0.0.0:8080). Set PORT env var to override.
    """
    import uvicorn

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s | %(levelname)s | %(message)s")
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8080"))
    # Enable reload in dev unless explicitly disabled
    reload = os.getenv("RELOAD", "true").lower() in {"1", "true", "yes", "on"}

    uvicorn.run("media_gateway.webapi:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    run()
