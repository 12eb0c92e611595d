from __future__ import annotations

from enum import Enum
from typing import Any, Optional


LOGIN_PATH = "/login"
SUBSCRIBE_PATH = "/subscribe"


class RouteDecision(str, Enum):
    LOADING = "LOADING"
    REDIRECT_LOGIN = "REDIRECT_LOGIN"
    REDIRECT_SUBSCRIBE = "REDIRECT_SUBSCRIBE"
    ALLOW = "ALLOW"


def protect(guard: Any) -> RouteDecision:
    """Gate for pages that need a signed-in user. Waits for `restore()` before deciding."""
    if guard.loading:
        return RouteDecision.LOADING
    if guard.user is None:
        return RouteDecision.REDIRECT_LOGIN
    return RouteDecision.ALLOW


def require_premium(guard: Any) -> RouteDecision:
    decision = protect(guard)
    if decision != RouteDecision.ALLOW:
        return decision
    if not bool(getattr(guard.user, "isPremium", False)):
        return RouteDecision.REDIRECT_SUBSCRIBE
    return RouteDecision.ALLOW


def redirect_target(decision: RouteDecision) -> Optional[str]:
    if decision == RouteDecision.REDIRECT_LOGIN:
        return LOGIN_PATH
    if decision == RouteDecision.REDIRECT_SUBSCRIBE:
        return SUBSCRIBE_PATH
    return None
