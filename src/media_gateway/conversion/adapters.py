import logging
import os
import shutil
import subprocess
import tempfile
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path

from media_gateway.composition.errors import ExternalToolError

from .interfaces import DocumentExporter, MediaFetcher, TempFileAllocator, Transcoder

logger = logging.getLogger(__name__)

TOOL_TIMEOUT_SEC = int(os.getenv("TOOL_TIMEOUT_SEC", "1800"))
STDERR_TAIL_CHARS = 2000

# yt-dlp format selector: best mp4 video + m4a audio, else best single mp4.
YTDLP_FORMAT = "bv[ext=mp4]+ba[ext=m4a]/b[ext=mp4]"


class LocalTempFiles(TempFileAllocator):
    def __init__(self, base_dir: str | None = None) -> None:
        self._base = base_dir

    @contextmanager
    def scoped_dir(self) -> Iterator[Path]:
        with tempfile.TemporaryDirectory(prefix="media-gateway-", dir=self._base) as path:
            yield Path(path)


def _tail(text: str) -> str:
    return text.strip()[-STDERR_TAIL_CHARS:]


def run_tool(tool: str, args: Sequence[str], *, timeout: int = TOOL_TIMEOUT_SEC, cwd: Path | None = None) -> None:
    """Run an external tool and raise ExternalToolError unless it exits cleanly."""
    argv = [tool, *args]
    logger.debug("Running %s", argv)
    try:
        proc = subprocess.run(
            argv,
            cwd=str(cwd) if cwd else None,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError as exc:
        raise ExternalToolError(f"{tool} is not installed", detail=str(exc)) from exc
    except subprocess.TimeoutExpired as exc:
        raise ExternalToolError(f"{tool} timed out after {timeout}s") from exc
    if proc.returncode != 0:
        raise ExternalToolError(f"{tool} exited with status {proc.returncode}", detail=_tail(proc.stderr or ""))


def _read_output(path: Path, tool: str) -> bytes:
    if not path.exists():
        raise ExternalToolError(f"{tool} produced no output file")
    return path.read_bytes()


class FfmpegTranscoder(Transcoder):
    def __init__(self, temp_files: TempFileAllocator, binary: str | None = None) -> None:
        self._temp = temp_files
        self._binary = binary or os.getenv("FFMPEG_BIN", "ffmpeg")

    def transcode(self, data: bytes, target_format: str, *, video_bitrate: str | None = None) -> bytes:
        with self._temp.scoped_dir() as work:
            input_path = work / "input"
            output_path = work / f"output.{target_format}"
            input_path.write_bytes(data)
            args = ["-y", "-i", str(input_path)]
            if video_bitrate:
                args += ["-b:v", video_bitrate]
            args += ["-f", target_format, str(output_path)]
            run_tool(self._binary, args)
            return _read_output(output_path, "ffmpeg")


class LibreOfficeExporter(DocumentExporter):
    def __init__(self, temp_files: TempFileAllocator, binary: str | None = None) -> None:
        self._temp = temp_files
        self._binary = binary or os.getenv("SOFFICE_BIN", "soffice")

    def export(
        self,
        data: bytes,
        filename: str,
        target_format: str = "pdf",
        *,
        filter_options: str | None = None,
    ) -> bytes:
        # soffice names its output after the input stem, so keep the original name
        safe_name = Path(filename).name or "document"
        with self._temp.scoped_dir() as work:
            input_path = work / safe_name
            out_dir = work / "out"
            out_dir.mkdir()
            input_path.write_bytes(data)
            convert_to = f"{target_format}:{filter_options}" if filter_options else target_format
            # a private profile dir lets concurrent soffice processes coexist
            profile = (work / "profile").as_uri()
            run_tool(
                self._binary,
                [
                    f"-env:UserInstallation={profile}",
                    "--headless",
                    "--convert-to",
                    convert_to,
                    "--outdir",
                    str(out_dir),
                    str(input_path),
                ],
            )
            return _read_output(out_dir / f"{input_path.stem}.{target_format}", "soffice")


class YtDlpFetcher(MediaFetcher):
    def __init__(self, temp_files: TempFileAllocator, binary: str | None = None) -> None:
        self._temp = temp_files
        self._binary = binary or os.getenv("YTDLP_BIN", "yt-dlp")

    def fetch(self, url: str, container: str = "mp4") -> bytes:
        with self._temp.scoped_dir() as work:
            output_path = work / f"download.{container}"
            run_tool(
                self._binary,
                [
                    "-f",
                    YTDLP_FORMAT,
                    "--merge-output-format",
                    container,
                    "--no-playlist",
                    "-o",
                    str(output_path),
                    "--",
                    url,
                ],
            )
            return _read_output(output_path, "yt-dlp")


def tool_available(binary: str) -> bool:
    return shutil.which(binary) is not None
