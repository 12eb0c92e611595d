from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_ACTIVITY_SOURCES = ["pointer_move", "key_down", "scroll", "touch_start", "focus", "click"]


class StorageKeysConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    token: str = "token"
    user: str = "user"
    last_active: str = "lastActive"
    logout: str = "logout"


class SessionConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    inactivity_timeout_seconds: float = Field(default=3600.0, gt=0)
    enforce_token_expiry: bool = True
    activity_sources: List[str] = Field(default_factory=lambda: list(DEFAULT_ACTIVITY_SOURCES))
    storage_keys: StorageKeysConfig = Field(default_factory=StorageKeysConfig)
    storage_path: str = "runtime/storage.json"
    storage_poll_seconds: float = Field(default=0.5, gt=0, le=60)

    @field_validator("activity_sources")
    @classmethod
    def _known_sources(cls, v: List[str]) -> List[str]:
        unknown = [s for s in v if s not in DEFAULT_ACTIVITY_SOURCES]
        if unknown:
            raise ValueError(f"unknown activity sources: {unknown}")
        return v


class ApiConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    backend_url: str = "http://localhost:5000"
    timeout_seconds: float = Field(default=15.0, gt=0, le=300)
    login_path: str = "/api/auth/login"
    current_user_path: str = "/api/auth/me"

    @field_validator("backend_url")
    @classmethod
    def _http_url(cls, v: str) -> str:
        v = str(v or "").strip()
        if not v.startswith(("http://", "https://")):
            raise ValueError("backend_url must be an http(s) URL")
        return v.rstrip("/")


class LoggingConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    log_dir: str = "logs"
    level: str = "INFO"
    event_log_name: str = "session_events.jsonl"


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")
    session: SessionConfig
    api: ApiConfig
    logging: LoggingConfig
