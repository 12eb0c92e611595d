from __future__ import annotations

import json
import os
import shutil
import tempfile
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


@dataclass(frozen=True)
class ReadResult:
    """Outcome of reading a JSON object file. `error` is "missing", "not_object" or a parse/OS message."""

    ok: bool
    data: Dict[str, Any]
    error: Optional[str] = None

    @property
    def missing(self) -> bool:
        return self.error == "missing"


def _stamp() -> str:
    return time.strftime("%Y%m%d_%H%M%S", time.gmtime())


def _mkdir_for(path: str) -> str:
    parent = os.path.dirname(path) or "."
    os.makedirs(parent, exist_ok=True)
    return parent


def read_json_file(path: str) -> ReadResult:
    try:
        with open(path, "r", encoding="utf-8") as f:
            obj = json.load(f)
    except FileNotFoundError:
        return ReadResult(ok=False, data={}, error="missing")
    except json.JSONDecodeError as e:
        return ReadResult(ok=False, data={}, error=f"corrupt_json:{e.msg} (line {e.lineno})")
    except (OSError, UnicodeDecodeError) as e:
        return ReadResult(ok=False, data={}, error=f"unreadable:{e}")
    if not isinstance(obj, dict):
        return ReadResult(ok=False, data={}, error="not_object")
    return ReadResult(ok=True, data=obj)


def _prune(backups_dir: str, prefix: str, keep: int) -> None:
    try:
        names = [n for n in os.listdir(backups_dir) if n.startswith(prefix)]
    except OSError:
        return
    paths: List[str] = sorted((os.path.join(backups_dir, n) for n in names), key=os.path.getmtime, reverse=True)
    for old in paths[keep:]:
        try:
            os.remove(old)
        except OSError:
            continue


def backup_file(path: str, backups_dir: str, *, reason: str, max_backups: int = 10) -> Optional[str]:
    """Copy `path` to backups/<name>.<ts>.<reason>.json, keeping the newest `max_backups` per file."""
    if not os.path.isfile(path):
        return None
    os.makedirs(backups_dir, exist_ok=True)
    name = os.path.basename(path)
    target = os.path.join(backups_dir, f"{name}.{_stamp()}.{reason}.json")
    try:
        shutil.copy2(path, target)
    except OSError:
        return None
    _prune(backups_dir, f"{name}.", max_backups)
    return target


def atomic_write_json(path: str, data: Dict[str, Any], backups_dir: Optional[str] = None, *, max_backups: int = 10) -> None:
    """
    Replace `path` with `data` in one step (temp file in the same dir + os.replace).

    Config writes pass `backups_dir` to keep a prewrite copy; the session storage
    file is rewritten on every change and does not.
    """
    parent = _mkdir_for(path)
    if backups_dir:
        backup_file(path, backups_dir, reason="prewrite", max_backups=max_backups)
    fd, tmp = tempfile.mkstemp(prefix=".tmp_", suffix=".json", dir=parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False, sort_keys=True)
            f.write("\n")
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.remove(tmp)
        raise


def quarantine_corrupt(path: str, backups_dir: str) -> Optional[str]:
    """Move an unreadable file aside as backups/<name>.<ts>.corrupt.json so defaults can take its place."""
    if not os.path.exists(path):
        return None
    os.makedirs(backups_dir, exist_ok=True)
    target = os.path.join(backups_dir, f"{os.path.basename(path)}.{_stamp()}.corrupt.json")
    try:
        shutil.move(path, target)
    except OSError:
        return None
    return target
