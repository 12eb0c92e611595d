"""
Client session for Lamblog: identity, inactivity expiry and cross-tab sync.

`SessionGuard` is the only stateful piece; storage, clock and HTTP are injected
so every transition can be driven deterministically.
"""

from lamblog.core.session.activity import ActivityMonitor
from lamblog.core.session.clock import AsyncioClock, Clock, TimerHandle
from lamblog.core.session.guard import SessionGuard
from lamblog.core.session.models import ActivitySource, ChangeKind, SessionChange, StorageEvent, UserIdentity
from lamblog.core.session.routes import RouteDecision, protect, redirect_target, require_premium
from lamblog.core.session.storage import SharedStorage, StorageFileWatcher, TabStorage

__all__ = [
    "ActivityMonitor",
    "ActivitySource",
    "AsyncioClock",
    "ChangeKind",
    "Clock",
    "RouteDecision",
    "SessionChange",
    "SessionGuard",
    "SharedStorage",
    "StorageFileWatcher",
    "StorageEvent",
    "TabStorage",
    "TimerHandle",
    "UserIdentity",
    "protect",
    "redirect_target",
    "require_premium",
]
