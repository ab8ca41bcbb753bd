import tempfile
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Local storage (timeline documents, source assets)
    local_storage_path: str = "/tmp/vedit-storage"

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Canvas defaults for new / legacy timelines
    render_output_width: int = 1920
    render_output_height: int = 1080
    render_background_color: str = "black"

    # Output profile shared by every interval and the final concat
    render_fps: int = 30
    render_video_codec: str = "libx264"
    render_preset: str = "medium"
    render_crf: int = 18
    render_pix_fmt: str = "yuv420p"
    render_audio_codec: str = "aac"
    render_audio_bitrate: str = "192k"
    render_audio_sample_rate: int = 48000
    render_audio_channels: int = 2
    # Map a silent track into intervals without audio so intermediates share one stream layout
    render_pad_silent_audio: bool = True

    # Render execution
    render_timeout_s: float = 300.0
    render_max_workers: int = 2
    render_work_dir: str = tempfile.gettempdir()

    # Edit sessions
    session_idle_timeout_s: float = 3600.0
    session_sweep_interval_s: float = 3600.0

    # Editing rules
    split_margin_s: float = 0.1
    default_still_duration_s: float = 5.0

    # Fonts
    default_font_path: str = "/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf"


@lru_cache
def get_settings() -> Settings:
    return Settings()
