"""Media file information utilities using FFprobe (and Pillow for stills)."""

import json
import subprocess
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

from vedit.config import get_settings


def _get_settings():
    """Get settings lazily to avoid import issues in tests."""
    return get_settings()


@dataclass
class MediaInfo:
    """Media file information."""

    duration: float | None = None  # Seconds
    width: int | None = None
    height: int | None = None
    fps: float | None = None
    video_codec: str | None = None
    audio_codec: str | None = None
    sample_rate: int | None = None
    channels: int | None = None
    has_video: bool = False
    has_audio: bool = False


def _run_ffprobe(file_path: str, *args) -> dict:
    """Run ffprobe and return parsed JSON."""
    settings = _get_settings()
    cmd = [
        settings.ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        *args,
        file_path,
    ]

    result = subprocess.run(cmd, capture_output=True, text=True)
    if result.returncode != 0:
        raise RuntimeError(f"ffprobe failed: {result.stderr}")

    try:
        return json.loads(result.stdout)
    except json.JSONDecodeError as e:
        raise RuntimeError(f"Failed to parse ffprobe output: {e}")


def get_media_info(file_path: str) -> MediaInfo:
    """
    Get complete media file information.

    Args:
        file_path: Path to media file

    Returns:
        MediaInfo with duration in seconds and stream details

    Raises:
        RuntimeError: If ffprobe fails
    """
    data = _run_ffprobe(file_path, "-show_format", "-show_streams")
    info = MediaInfo()

    format_info = data.get("format", {})
    if "duration" in format_info:
        info.duration = float(format_info["duration"])

    for stream in data.get("streams", []):
        codec_type = stream.get("codec_type")

        if codec_type == "video" and not info.has_video:
            info.has_video = True
            info.width = stream.get("width")
            info.height = stream.get("height")
            info.video_codec = stream.get("codec_name")

            r_frame_rate = stream.get("r_frame_rate", "0/1")
            if "/" in r_frame_rate:
                num, den = r_frame_rate.split("/")
                if int(den) > 0:
                    info.fps = int(num) / int(den)

        elif codec_type == "audio" and not info.has_audio:
            info.has_audio = True
            info.audio_codec = stream.get("codec_name")
            info.sample_rate = int(stream.get("sample_rate", 0)) or None
            info.channels = stream.get("channels")

    # Some containers only report duration per stream
    if info.duration is None:
        durations = [float(s["duration"]) for s in data.get("streams", []) if "duration" in s]
        if durations:
            info.duration = max(durations)

    return info


def get_image_dimensions(file_path: str) -> tuple[int, int]:
    """
    Get intrinsic image width and height.

    Raises:
        RuntimeError: If the file is not a readable image
    """
    try:
        with Image.open(file_path) as img:
            return img.size
    except (OSError, UnidentifiedImageError) as e:
        raise RuntimeError(f"Cannot read image {file_path}: {e}")


class MediaProbe:
    """Probing seam used by the editor; tests substitute a stub."""

    def probe(self, file_path: str) -> MediaInfo:
        return get_media_info(file_path)

    def image_size(self, file_path: str) -> tuple[int, int]:
        return get_image_dimensions(file_path)
