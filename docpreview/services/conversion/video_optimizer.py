"""Probe and re-encode uploaded videos for progressive playback."""

import asyncio
import json
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from docpreview.config import VideoSettings, settings
from docpreview.core.exceptions import NotFoundError, TranscodeError, ValidationError
from docpreview.core.progress import ProgressReporter, ProgressTracker, round_half_up
from docpreview.repositories.version_repository import DocumentVersionRepository
from docpreview.services.base_service import BaseService
from docpreview.services.storage_service import StorageService, extract_document_key, iter_file
from docpreview.utils.logging import get_logger

LOGGER = get_logger(__name__)

OUTPUT_FILE_NAME = "optimized.mp4"
OUTPUT_CONTENT_TYPE = "video/mp4"

# Used for the keyframe interval when the stream reports no frame rate
DEFAULT_FPS = 30.0

ENCODE_START = 40
ENCODE_END = 80


@dataclass(frozen=True)
class VideoMetadata:
    width: int
    height: int
    fps: float
    duration: Optional[int]


@dataclass
class VideoOptimizationResult:
    file: str
    duration: Optional[int]
    skipped: bool = False


def parse_frame_rate(value: Optional[str]) -> float:
    """Parse an ffprobe rate such as ``30000/1001``; 0.0 when unusable."""
    if not value:
        return 0.0
    if "/" in value:
        numerator, denominator = value.split("/", 1)
        try:
            den = float(denominator)
            return float(numerator) / den if den else 0.0
        except ValueError:
            return 0.0
    try:
        return float(value)
    except ValueError:
        return 0.0


def parse_probe_output(payload: Dict[str, Any]) -> VideoMetadata:
    """Build VideoMetadata from ``ffprobe -print_format json`` output."""
    streams = [s for s in payload.get("streams", []) if s.get("codec_type", "video") == "video"]
    if not streams:
        raise TranscodeError("No video stream found in source")
    stream = streams[0]

    fps = parse_frame_rate(stream.get("r_frame_rate")) or parse_frame_rate(stream.get("avg_frame_rate"))

    raw_duration = payload.get("format", {}).get("duration") or stream.get("duration")
    duration = None
    if raw_duration not in (None, "N/A"):
        duration = round_half_up(float(raw_duration))

    return VideoMetadata(
        width=int(stream.get("width") or 0),
        height=int(stream.get("height") or 0),
        fps=fps,
        duration=duration,
    )


def keyframe_interval(fps: float) -> int:
    """Two seconds worth of frames."""
    if fps <= 0:
        fps = DEFAULT_FPS
    return max(1, round_half_up(fps * 2))


def build_encoding_args(metadata: VideoMetadata, video_settings: Optional[VideoSettings] = None) -> List[str]:
    """Output options for an H.264/AAC re-encode."""
    video_settings = video_settings or settings.video
    bitrate = video_settings.target_bitrate_kbps
    keyint = str(keyframe_interval(metadata.fps))

    args = [
        "-c:v", "libx264",
        "-profile:v", "high",
        "-level:v", "4.1",
        "-c:a", "aac",
        "-ar", "48000",
        "-b:a", "128k",
        "-b:v", f"{bitrate}k",
        "-maxrate", f"{bitrate * 2}k",
        "-bufsize", f"{bitrate * 2}k",
        "-preset", "medium",
        "-g", keyint,
        "-keyint_min", keyint,
        "-sc_threshold", "0",
    ]
    if metadata.width > video_settings.max_width:
        args += ["-vf", f"scale={video_settings.max_width}:-2"]
    args += ["-movflags", "+faststart"]
    return args


class FfmpegClient:
    """Thin async wrapper around the ffprobe and ffmpeg binaries."""

    def __init__(self, ffmpeg_binary: Optional[str] = None, ffprobe_binary: Optional[str] = None):
        self.ffmpeg_binary = ffmpeg_binary or settings.video.ffmpeg_binary
        self.ffprobe_binary = ffprobe_binary or settings.video.ffprobe_binary

    async def probe(self, source: str) -> VideoMetadata:
        """Read stream metadata from a file path or URL.

        Raises:
            TranscodeError: If ffprobe fails or reports no video stream
        """
        process = await asyncio.create_subprocess_exec(
            self.ffprobe_binary,
            "-v", "error",
            "-select_streams", "v:0",
            "-show_entries", "stream=codec_type,width,height,r_frame_rate,avg_frame_rate,duration:format=duration",
            "-print_format", "json",
            source,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            raise TranscodeError(f"ffprobe failed: {stderr.decode(errors='replace')[:500]}")

        try:
            payload = json.loads(stdout or b"{}")
        except json.JSONDecodeError as e:
            raise TranscodeError("ffprobe returned invalid JSON", original_error=e) from e
        return parse_probe_output(payload)

    async def transcode(
        self,
        source: str,
        output_path: Path,
        output_args: List[str],
        duration: Optional[int] = None,
        on_progress: Optional[Callable[[float], None]] = None,
    ) -> None:
        """Encode ``source`` into ``output_path``.

        ``on_progress`` receives the completed fraction (0..100) whenever
        ffmpeg reports a new output timestamp and the duration is known.

        Raises:
            TranscodeError: If ffmpeg exits with a non-zero status
        """
        process = await asyncio.create_subprocess_exec(
            self.ffmpeg_binary,
            "-y",
            "-i", source,
            *output_args,
            "-progress", "pipe:1",
            "-nostats",
            str(output_path),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        # Drain stderr alongside stdout so a chatty encoder cannot block on a full pipe
        stderr_task = asyncio.create_task(process.stderr.read())

        async for raw_line in process.stdout:
            line = raw_line.decode(errors="replace").strip()
            if not line.startswith("out_time_ms=") or not duration or on_progress is None:
                continue
            try:
                # Despite the name ffmpeg reports microseconds here
                seconds = int(line.split("=", 1)[1]) / 1_000_000
            except ValueError:
                continue
            on_progress(min(100.0, seconds / duration * 100))

        stderr = await stderr_task
        returncode = await process.wait()
        if returncode != 0:
            raise TranscodeError(f"ffmpeg exited with {returncode}: {stderr.decode(errors='replace')[-500:]}")


class VideoOptimizer(BaseService):
    """Persists a video's duration and replaces it with a streaming-friendly encode.

    Sources at or above ``VIDEO_MAX_OPTIMIZE_BYTES`` keep their original file;
    only the duration is recorded for them.
    """

    def __init__(
        self,
        session: AsyncSession,
        storage: Optional[StorageService] = None,
        ffmpeg: Optional[FfmpegClient] = None,
        video_settings: Optional[VideoSettings] = None,
    ):
        super().__init__()
        self.version_repo = DocumentVersionRepository(session)
        self.storage = storage or StorageService()
        self.ffmpeg = ffmpeg or FfmpegClient()
        self.video_settings = video_settings or settings.video

    async def optimize(
        self,
        document_id: UUID,
        version_id: UUID,
        team_id: str,
        file_size: Optional[int] = None,
        progress: Optional[ProgressReporter] = None,
    ) -> Optional[VideoOptimizationResult]:
        """Optimize a video version.

        Args:
            file_size: Source size in bytes; falls back to the version's recorded size

        Returns:
            VideoOptimizationResult, or None when the version or its file is missing

        Raises:
            TranscodeError: If probing or encoding fails
        """
        return await self.execute(
            document_id=document_id,
            version_id=version_id,
            team_id=team_id,
            file_size=file_size,
            progress=progress,
        )

    def validate(self, document_id=None, version_id=None, team_id=None, file_size=None, progress=None):
        if not document_id or not version_id or not team_id:
            raise ValidationError("document_id, version_id and team_id are required")

    def should_skip(self, file_size: Optional[int]) -> bool:
        return file_size is not None and file_size >= self.video_settings.max_optimize_bytes

    async def run(
        self,
        document_id: UUID,
        version_id: UUID,
        team_id: str,
        file_size: Optional[int] = None,
        progress: Optional[ProgressReporter] = None,
    ) -> Optional[VideoOptimizationResult]:
        tracker = ProgressTracker("Video optimization", progress)
        context = {
            "document_id": str(document_id),
            "version_id": str(version_id),
            "team_id": team_id,
        }
        tracker(0, "Initializing...")

        version = await self.version_repo.get_by_id(version_id)
        if version is None or version.document_id != document_id or not version.file:
            LOGGER.error("Video version not found", extra=context)
            tracker(0, "Document not found")
            return None

        file_reference = version.file
        storage_type = version.storage_type
        if file_size is None:
            file_size = version.file_size

        tracker(10, "Retrieving file...")
        try:
            source_url = await self.storage.get_read_url(storage_type, file_reference)
        except NotFoundError:
            LOGGER.error("Video source not found", extra={**context, "reference": file_reference})
            tracker(0, "Document not found")
            return None

        tracker(20, "Reading video metadata...")
        metadata = await self.ffmpeg.probe(source_url)
        LOGGER.info(
            f"Video metadata: {metadata.width}x{metadata.height} @ {metadata.fps:.3f} fps, "
            f"{metadata.duration}s",
            extra=context,
        )

        if metadata.duration is not None:
            await self.version_repo.set_length(version_id, metadata.duration)

        if self.should_skip(file_size):
            LOGGER.info(
                f"Skipping optimization for large file ({file_size} bytes)",
                extra=context,
            )
            tracker(100, "Completed (skipped large file)")
            return VideoOptimizationResult(file=file_reference, duration=metadata.duration, skipped=True)

        tracker(30, "Preparing encoder...")
        output_args = build_encoding_args(metadata, self.video_settings)

        with tempfile.TemporaryDirectory(prefix="video_") as temp_dir:
            output_path = Path(temp_dir) / OUTPUT_FILE_NAME

            tracker(ENCODE_START, "Optimizing video...")
            await self.ffmpeg.transcode(
                source_url,
                output_path,
                output_args,
                duration=metadata.duration,
                on_progress=lambda pct: tracker(
                    round_half_up(ENCODE_START + pct * (ENCODE_END - ENCODE_START) / 100),
                    "Optimizing video...",
                ),
            )

            tracker(ENCODE_END, "Uploading optimized video...")
            stored = await self.storage.put_object(
                team_id=team_id,
                file_name=OUTPUT_FILE_NAME,
                content_type=OUTPUT_CONTENT_TYPE,
                content=iter_file(output_path),
                document_key=extract_document_key(file_reference),
            )

        tracker(90, "Finalizing...")
        await self.version_repo.update_file(version_id, file=stored.reference)

        tracker(100, "Optimization complete")
        LOGGER.info("Video optimized", extra={**context, "file": stored.reference})
        return VideoOptimizationResult(file=stored.reference, duration=metadata.duration)
