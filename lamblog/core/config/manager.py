from __future__ import annotations

import os
from typing import Any, Dict, Optional

from pydantic import ValidationError

from lamblog.core.config.io import ReadResult, atomic_write_json, quarantine_corrupt, read_json_file
from lamblog.core.config.models import ApiConfig, AppConfig, LoggingConfig, SessionConfig
from lamblog.core.config.paths import ConfigFsPaths
from lamblog.core.errors import ConfigError


BACKEND_URL_ENV = "LAMBLOG_BACKEND_URL"

CONFIG_FILES = ("session.json", "api.json", "logging.json")


class ConfigManager:
    def __init__(self, *, fs: Optional[ConfigFsPaths] = None, logger=None, read_only: bool = False, environ: Optional[Dict[str, str]] = None):
        self.fs = fs or ConfigFsPaths(".")
        self.logger = logger
        self.read_only = read_only
        self._environ = environ if environ is not None else os.environ
        self._cfg: Optional[AppConfig] = None

    # ---------- public API ----------
    def load_all(self) -> AppConfig:
        if not self.read_only:
            os.makedirs(self.fs.config_dir, exist_ok=True)
            os.makedirs(self.fs.backups_dir, exist_ok=True)

        files = self._load_raw_files()
        ensured = self._ensure_defaults(files)
        cfg = self._validate_all(self._apply_env(ensured))
        self._cfg = cfg
        return cfg

    def get(self) -> AppConfig:
        if self._cfg is None:
            raise ConfigError("Config not loaded.")
        return self._cfg

    def save_non_sensitive(self, filename: str, data: Dict[str, Any]) -> AppConfig:
        """Atomic write + backup, then reload and validate the whole set."""
        if self.read_only:
            raise ConfigError("Config manager is read-only.", filename=filename)
        if filename not in CONFIG_FILES:
            raise ConfigError("Unknown config file.", filename=filename)
        if not isinstance(data, dict):
            raise ConfigError("Config data must be an object.", filename=filename)
        atomic_write_json(os.path.join(self.fs.config_dir, filename), data, self.fs.backups_dir)
        return self.load_all()

    def open_paths(self) -> Dict[str, str]:
        return {
            "config_dir": self.fs.config_dir,
            "backups_dir": self.fs.backups_dir,
            "runtime_dir": self.fs.runtime_dir,
        }

    # ---------- internals ----------
    def _load_raw_files(self) -> Dict[str, Dict[str, Any]]:
        out: Dict[str, Dict[str, Any]] = {}
        for name in CONFIG_FILES:
            path = os.path.join(self.fs.config_dir, name)
            rr: ReadResult = read_json_file(path)
            if rr.ok:
                out[name] = rr.data
                continue
            if not rr.missing:
                moved = None if self.read_only else quarantine_corrupt(path, self.fs.backups_dir)
                if self.logger:
                    self.logger.warning(f"Unreadable config {name} ({rr.error}); moved to {moved}, using defaults.")
            out[name] = {}
        return out

    def _ensure_defaults(self, files: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        defaults: Dict[str, Dict[str, Any]] = {
            "session.json": SessionConfig().model_dump(),
            "api.json": ApiConfig().model_dump(),
            "logging.json": LoggingConfig().model_dump(),
        }
        out = dict(files)
        for name, dflt in defaults.items():
            if not out.get(name):
                out[name] = dflt
                if self.logger:
                    self.logger.warning(f"Missing config {name}; creating defaults.")
                if not self.read_only:
                    atomic_write_json(os.path.join(self.fs.config_dir, name), dflt, self.fs.backups_dir)
        return out

    def _apply_env(self, files: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        url = str(self._environ.get(BACKEND_URL_ENV) or "").strip()
        if not url:
            return files
        out = dict(files)
        out["api.json"] = {**(files.get("api.json") or {}), "backend_url": url}
        return out

    def _validate_all(self, files: Dict[str, Dict[str, Any]]) -> AppConfig:
        try:
            return AppConfig(
                session=SessionConfig.model_validate(files.get("session.json") or {}),
                api=ApiConfig.model_validate(files.get("api.json") or {}),
                logging=LoggingConfig.model_validate(files.get("logging.json") or {}),
            )
        except ValidationError as e:
            raise ConfigError(str(e)) from e
