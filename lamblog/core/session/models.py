from __future__ import annotations

import json
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class UserIdentity(BaseModel):
    """
    Client-side copy of the server's user document.

    The session guard treats it as opaque: unknown fields are kept so that a
    round trip through storage never loses what the API returned.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = Field(default="", alias="_id")
    username: str = ""
    email: str = ""
    bio: str = ""
    profilePicture: str = ""
    location: str = ""
    website: str = ""
    isPremium: bool = False

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, v: Any) -> str:
        return "" if v is None else str(v)

    def to_storage(self) -> str:
        return self.model_dump_json(by_alias=True)


class ActivitySource(str, Enum):
    POINTER_MOVE = "pointer_move"
    KEY_DOWN = "key_down"
    SCROLL = "scroll"
    TOUCH_START = "touch_start"
    FOCUS = "focus"
    CLICK = "click"


class ChangeKind(str, Enum):
    RESTORED = "restored"
    LOGIN = "login"
    LOGOUT = "logout"
    EXPIRED = "expired"
    REMOTE_LOGOUT = "remote_logout"
    IDENTITY = "identity"


@dataclass(frozen=True)
class SessionChange:
    kind: ChangeKind
    user: Optional[UserIdentity]
    reason: Optional[str]
    at: float


@dataclass(frozen=True)
class StorageEvent:
    """A change to one key of the shared storage, as seen by the other tabs."""

    key: str
    old_value: Optional[str]
    new_value: Optional[str]
    timestamp: float


def coerce_identity(obj: Any) -> Optional[UserIdentity]:
    if isinstance(obj, UserIdentity):
        return obj
    if not isinstance(obj, dict):
        return None
    try:
        return UserIdentity.model_validate(obj)
    except ValidationError:
        return None


def parse_identity(raw: Optional[str]) -> Optional[UserIdentity]:
    if not raw:
        return None
    try:
        obj = json.loads(raw)
    except ValueError:
        return None
    return coerce_identity(obj)


def parse_timestamp(raw: Optional[str]) -> Optional[float]:
    if raw is None:
        return None
    try:
        ts = float(raw)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(ts) or ts < 0:
        return None
    return ts


def format_timestamp(ts: float) -> str:
    return str(float(ts))
