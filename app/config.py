"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # Server
    port: int = 5001
    environment: str = "production"  # "development" exposes error detail
    log_level: str = "INFO"
    cors_origins: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://127.0.0.1:3000",
        "http://127.0.0.1:5173",
    ]

    # Staging area
    downloads_dir: str = "downloads"
    artifact_retention_seconds: int = 3600
    cleanup_interval_seconds: int = 3600

    # Transcoding
    ffmpeg_binary: str = "ffmpeg"
    audio_bitrate_kbps: int = 192
    audio_channels: int = 2
    audio_sample_rate: int = 44100

    # Source streaming
    stream_chunk_size: int = 64 * 1024
    pipeline_buffer_chunks: int = 16
    source_timeout_seconds: int = 30
    source_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    )

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    @property
    def debug(self) -> bool:
        return self.environment.lower() == "development"


settings = Settings()
