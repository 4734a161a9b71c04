"""Application configuration settings."""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_data_dir() -> Path:
    return Path.home() / ".davsync"


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO")
    format: str = Field(default="console")
    file_path: Optional[str] = Field(default=None)

    model_config = SettingsConfigDict(env_prefix="DAVSYNC_LOG_")


class AppSettings(BaseSettings):
    """Main application settings."""

    name: str = Field(default="davsync")
    version: str = Field(default="0.1.0")

    # Local application data root; holds servers/ and history/
    data_dir: Path = Field(default_factory=_default_data_dir)
    # Stored WebDAV connection config, relative paths resolve against data_dir
    config_file: str = Field(default="webdav.json")

    # Local command API
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=8765)

    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_prefix="DAVSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def config_path(self) -> Path:
        path = Path(self.config_file)
        if not path.is_absolute():
            path = self.data_dir / path
        return path


# Global settings instance
settings = AppSettings()


def get_settings() -> AppSettings:
    """Get application settings."""
    return settings
