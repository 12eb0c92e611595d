from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass(frozen=True)
class ConfigFsPaths:
    root: str = "."

    @property
    def config_dir(self) -> str:
        return os.path.join(self.root, "config")

    @property
    def backups_dir(self) -> str:
        return os.path.join(self.config_dir, "backups")

    @property
    def runtime_dir(self) -> str:
        return os.path.join(self.root, "runtime")

    # Files
    @property
    def session(self) -> str:
        return os.path.join(self.config_dir, "session.json")

    @property
    def api(self) -> str:
        return os.path.join(self.config_dir, "api.json")

    @property
    def logging(self) -> str:
        return os.path.join(self.config_dir, "logging.json")

    def resolve(self, path: str) -> str:
        """Resolve a config-relative path (e.g. `runtime/storage.json`) against root."""
        if os.path.isabs(path):
            return path
        return os.path.join(self.root, path)
