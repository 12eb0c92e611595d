from __future__ import annotations

import json
import os
import time
from typing import Any, Dict, Optional


# matched as substrings of the lowercased key, so `resetPasswordToken` and `x-api-key` are caught too
SECRET_KEY_PARTS = (
    "password",
    "secret",
    "token",
    "api_key",
    "apikey",
    "authorization",
    "verificationcode",
)

REDACTED = "***REDACTED***"


def is_secret_key(key: Any) -> bool:
    k = str(key).lower().replace("-", "_")
    return any(part in k for part in SECRET_KEY_PARTS)


def redact(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: (REDACTED if is_secret_key(k) else redact(v)) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [redact(x) for x in obj]
    return obj


class EventLogger:
    """
    Append-only JSONL audit trail of session transitions.

    One line per event: `ts`, per-process `seq`, `trace_id` (the tab id), `event`
    and redacted `details`.
    """

    def __init__(self, path: str):
        self.path = path
        self._seq = 0

    def log(self, trace_id: str, event_type: str, details: Optional[Dict[str, Any]] = None) -> None:
        self._seq += 1
        record = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
            "seq": self._seq,
            "trace_id": trace_id,
            "event": event_type,
            "details": redact(details or {}),
        }
        parent = os.path.dirname(self.path)
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(self.path, "a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False, sort_keys=True) + "\n")
