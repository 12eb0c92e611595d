from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict

from lamblog.core.events import redact


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class LamblogError(Exception):
    code: str
    user_message: str
    severity: Severity = Severity.ERROR
    recoverable: bool = True
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "user_message": self.user_message,
            "severity": self.severity.value,
            "recoverable": bool(self.recoverable),
            "context": redact(self.context or {}),
        }


class ConfigError(LamblogError):
    def __init__(self, user_message: str = "Configuration error.", **ctx: Any):
        super().__init__("config_error", user_message, severity=Severity.CRITICAL, recoverable=False, context=ctx)


class AuthenticationError(LamblogError):
    """The Auth API rejected the credentials or token (HTTP 401/403)."""

    def __init__(self, user_message: str = "Your session has expired. Please log in again.", **ctx: Any):
        super().__init__("authentication_failed", user_message, severity=Severity.WARN, recoverable=False, context=ctx)


class ApiUnavailableError(LamblogError):
    """Network failure, timeout, server error or a malformed response body."""

    def __init__(self, user_message: str = "The server is unavailable right now.", **ctx: Any):
        super().__init__("api_unavailable", user_message, severity=Severity.WARN, recoverable=True, context=ctx)


class ApiRequestError(LamblogError):
    """The Auth API answered with a non-auth client error (4xx other than 401/403)."""

    def __init__(self, user_message: str = "The request was rejected.", **ctx: Any):
        super().__init__("api_request_rejected", user_message, severity=Severity.WARN, recoverable=True, context=ctx)
