from functools import lru_cache

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "Clipstitch API"
    app_version: str = "0.1.0"
    git_hash: str = "unknown"  # Set via GIT_HASH env var at build time
    debug: bool = True

    # Public base URL used for download links. Empty = derive from request headers.
    base_url: str = ""

    # Storage
    output_dir: str = "/tmp/clipstitch-outputs"
    work_dir_root: str = "/tmp"

    # Downloads
    max_file_size_mb: int = 500
    download_timeout_s: float = 120.0
    download_user_agent: str = "Clipstitch/0.1"
    max_videos: int = 20

    # Fallback when ffprobe cannot report a duration
    default_clip_duration_s: float = 8.0

    # FFmpeg
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    ffmpeg_timeout_ms: int = 300_000
    ffmpeg_max_output_bytes: int = 50 * 1024 * 1024

    # Render settings
    render_fps: int = 30
    render_audio_sample_rate: int = 48000
    render_video_crf: int = 23
    render_video_preset: str = "medium"
    render_audio_bitrate: str = "192k"

    # Jobs
    callback_timeout_s: float = 30.0
    job_retention_s: int = 60 * 60
    job_sweep_interval_s: int = 10 * 60

    # Output file retention
    file_retention_s: int = 2 * 60 * 60
    file_sweep_interval_s: int = 30 * 60

    @computed_field
    @property
    def max_file_size_bytes(self) -> int:
        return self.max_file_size_mb * 1024 * 1024


@lru_cache
def get_settings() -> Settings:
    return Settings()
