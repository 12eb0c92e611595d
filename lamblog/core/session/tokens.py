from __future__ import annotations

from typing import Optional

import jwt


def token_deadline(token: Optional[str]) -> Optional[float]:
    """
    Expiry (`exp`, epoch seconds) of a JWT, or None for opaque/undecodable tokens.

    The signature is not checked: only the server can verify it.
    """
    if not token:
        return None
    try:
        claims = jwt.decode(token, options={"verify_signature": False})
    except jwt.PyJWTError:
        return None
    exp = claims.get("exp") if isinstance(claims, dict) else None
    if exp is None:
        return None
    try:
        return float(exp)
    except (TypeError, ValueError):
        return None


def is_token_expired(token: Optional[str], now: float) -> bool:
    deadline = token_deadline(token)
    return deadline is not None and deadline <= now
