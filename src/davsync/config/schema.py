"""Configuration schema for the WebDAV connection."""

from typing import Any, Dict
from urllib.parse import urlparse

from pydantic import BaseModel, Field, field_validator, model_validator


MIN_SYNC_INTERVAL_SECONDS = 60
PASSWORD_MASK = "********"


class WebDavConfig(BaseModel):
    """Connection parameters for the remote WebDAV store.

    A disabled config may leave the connection fields empty; an enabled one
    must carry a usable URL and credentials.
    """

    enabled: bool = Field(default=False, description="Whether remote sync is turned on")
    server_url: str = Field(default="", description="Base URL of the WebDAV server")
    username: str = Field(default="", description="Basic auth user name")
    password: str = Field(default="", description="Basic auth password")
    remote_root: str = Field(default="ai-chat-sync", description="Remote directory holding the collections")
    timeout_seconds: int = Field(default=30, description="Per-request timeout")
    verify_ssl: bool = Field(default=True, description="Verify TLS certificates")

    # Periodic merge
    auto_sync_enabled: bool = Field(default=False, description="Run merge on a timer")
    sync_interval: int = Field(default=300, description="Seconds between automatic merges")

    @field_validator('server_url')
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.strip().rstrip('/')

    @field_validator('remote_root')
    @classmethod
    def normalize_remote_root(cls, v: str) -> str:
        return v.strip().strip('/')

    @field_validator('timeout_seconds')
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Timeout must be at least 1 second")
        return v

    @field_validator('sync_interval')
    @classmethod
    def validate_interval(cls, v: int) -> int:
        if v < MIN_SYNC_INTERVAL_SECONDS:
            raise ValueError(f"Sync interval must be at least {MIN_SYNC_INTERVAL_SECONDS} seconds")
        return v

    @model_validator(mode='after')
    def validate_enabled_connection(self) -> 'WebDavConfig':
        if not self.enabled:
            return self

        parsed = urlparse(self.server_url)
        if parsed.scheme not in ('http', 'https') or not parsed.netloc:
            raise ValueError(f"server_url must be an http(s) URL, got {self.server_url!r}")
        if not self.username or not self.password:
            raise ValueError("username and password are required when sync is enabled")
        return self

    @property
    def auto_sync_active(self) -> bool:
        return self.enabled and self.auto_sync_enabled

    def masked(self) -> Dict[str, Any]:
        """Dump for display, with the password hidden."""
        data = self.model_dump()
        if data["password"]:
            data["password"] = PASSWORD_MASK
        return data


WEBDAV_CONFIG_EXAMPLE = {
    "enabled": True,
    "server_url": "https://dav.example.com/remote.php/webdav",
    "username": "alice",
    "password": "app-password",
    "remote_root": "ai-chat-sync",
    "auto_sync_enabled": False,
    "sync_interval": 300
}
