"""Application settings and configuration."""

import json
import logging
import sys
import tempfile
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class JsonLogFormatter(logging.Formatter):
    """One JSON object per log record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application metadata
    app_name: str = Field(
        default="up2b",
        description="Application name"
    )
    app_version: str = Field(
        default="0.1.0",
        description="Application version"
    )
    environment: Literal["local", "dev", "stage", "prod"] = Field(
        default="local",
        description="Deployment environment"
    )
    debug: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # API Configuration
    api_prefix: str = Field(
        default="/api/v1",
        description="API route prefix"
    )
    cors_origins: list[str] = Field(
        default=["*"],
        description="Allowed CORS origins"
    )

    # Configuration document (provider catalog, credentials, proxy)
    config_file: Path = Field(
        default=Path("data/config.json"),
        description="Path of the JSON document holding the user configuration"
    )

    # Compression Configuration
    compress_enabled: bool = Field(
        default=True,
        description="Whether the image compression capability is available"
    )
    temp_dir: Path = Field(
        default=Path(tempfile.gettempdir()) / "up2b",
        description="Directory for compressed copies of oversized images"
    )

    @field_validator("config_file", "temp_dir", mode="before")
    @classmethod
    def resolve_path(cls, v: str | Path) -> Path:
        """Ensure path settings are Path objects."""
        if isinstance(v, str):
            return Path(v)
        return v

    # HTTP Configuration
    request_timeout: int = Field(
        default=5,
        description="Default timeout for provider requests (seconds)"
    )
    upload_chunk_size: int = Field(
        default=8 * 1024,
        description="Chunk size used when streaming upload bodies (bytes)"
    )
    max_retry_count: int = Field(
        default=3,
        description="Number of re-logins attempted when a session token expires"
    )
    user_agent: str = Field(
        default=(
            "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
        ),
        description="User-Agent sent to providers that require a browser-like client"
    )

    # Logging Configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level"
    )
    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Log message format"
    )
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format"
    )
    log_file: Optional[Path] = Field(
        default=None,
        description="Path to log file (if None, logs to stdout only)"
    )

    @property
    def log_level_numeric(self) -> int:
        """Get numeric log level."""
        return getattr(logging, self.log_level)

    def _log_handlers(self) -> list[logging.Handler]:
        handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
        if self.log_file:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
            handlers.append(logging.FileHandler(self.log_file, encoding="utf-8"))
        return handlers

    def configure_logging(self) -> None:
        """Configure the root logger from the logging settings.

        Console output always goes to stdout; ``log_file`` adds a file handler.
        The JSON formatter writes non-ASCII provider messages unescaped.
        """
        formatter = JsonLogFormatter() if self.log_json else logging.Formatter(self.log_format)
        handlers = self._log_handlers()
        for handler in handlers:
            handler.setFormatter(formatter)

        logging.basicConfig(level=self.log_level_numeric, handlers=handlers, force=True)

        if self.debug:
            logging.getLogger("up2b").setLevel(logging.DEBUG)
            return
        for noisy in ("httpx", "httpcore", "PIL", "multipart"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

    def get_temp_path(self, *paths: str) -> Path:
        """Get a path under the temp directory."""
        return self.temp_dir.joinpath(*paths)


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
