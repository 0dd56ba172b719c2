"""
frame_extractor.py - Evenly time-sampled still frames from a video via ffmpeg.

Frames are written as frame-000001.jpg, frame-000002.jpg, ... so a plain
filename sort is acquisition order. Zero frames is a hard failure.
"""

import asyncio
import logging
import subprocess
from pathlib import Path

from worker.core.errors import ExtractionError

logger = logging.getLogger(__name__)

FRAME_PATTERN = "frame-%06d.jpg"
FRAME_SUFFIXES = (".jpg", ".png")


def build_ffmpeg_command(
    video_path: Path,
    output_dir: Path,
    frames_per_second: float,
    ffmpeg_bin: str = "ffmpeg",
) -> list[str]:
    return [
        ffmpeg_bin,
        "-hide_banner",
        "-loglevel", "error",
        "-nostdin",
        "-y",
        "-i", str(video_path),
        "-vf", f"fps={frames_per_second:g}",
        str(output_dir / FRAME_PATTERN),
    ]


def list_frames(output_dir: Path) -> list[Path]:
    return sorted(
        p for p in output_dir.iterdir()
        if p.is_file() and p.suffix.lower() in FRAME_SUFFIXES
    )


async def extract_frames(
    video_path: str | Path,
    output_dir: str | Path,
    frames_per_second: float,
    ffmpeg_bin: str = "ffmpeg",
    timeout: float | None = None,
) -> list[Path]:
    """Sample frames from video_path into output_dir; returns sorted frame paths."""
    video_path = Path(video_path)
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    cmd = build_ffmpeg_command(video_path, output_dir, frames_per_second, ffmpeg_bin)
    logger.debug("ffmpeg command: %s", " ".join(cmd))

    try:
        proc = await asyncio.to_thread(
            subprocess.run,
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout,
        )
    except FileNotFoundError as exc:
        raise ExtractionError(f"{ffmpeg_bin} executable not found on PATH") from exc
    except subprocess.TimeoutExpired as exc:
        raise ExtractionError("ffmpeg timed out while extracting frames") from exc

    if proc.returncode != 0:
        stderr = (proc.stderr or b"").decode("utf-8", errors="ignore").strip()
        raise ExtractionError(
            f"ffmpeg failed with code {proc.returncode}: {stderr[-500:]}"
        )

    frames = list_frames(output_dir)
    if not frames:
        raise ExtractionError(f"No frames extracted from {video_path.name}")

    logger.info("Extracted %d frames at %g fps from %s", len(frames), frames_per_second, video_path.name)
    return frames
