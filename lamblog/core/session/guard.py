from __future__ import annotations

"""
SessionGuard: authenticated identity + inactivity expiry for one tab.

- one pending expiry timer at most (always cancelled before rescheduling)
- the inactivity clock is anchored to the persisted last-active timestamp, so a
  reload does not restart the countdown
- logout in any tab reaches every other tab through the storage channel
- no public operation raises; failures end in a state transition or a no-op
"""

from typing import Any, Callable, Dict, List, Optional

from lamblog.core.config.models import SessionConfig
from lamblog.core.errors import AuthenticationError, LamblogError
from lamblog.core.session.clock import Clock, TimerHandle
from lamblog.core.session.models import (
    ChangeKind,
    SessionChange,
    StorageEvent,
    UserIdentity,
    coerce_identity,
    format_timestamp,
    parse_identity,
    parse_timestamp,
)
from lamblog.core.session.storage import TabStorage
from lamblog.core.session.tokens import token_deadline


SessionListener = Callable[[SessionChange], None]


class SessionGuard:
    def __init__(
        self,
        *,
        storage: TabStorage,
        clock: Clock,
        cfg: Optional[SessionConfig] = None,
        logger=None,
        event_logger=None,
    ):
        self.cfg = cfg or SessionConfig()
        self.keys = self.cfg.storage_keys
        self.storage = storage
        self.clock = clock
        self.logger = logger
        self.event_logger = event_logger
        self.tab_id = storage.tab_id

        self._user: Optional[UserIdentity] = None
        self._last_active_at: float = 0.0
        self._token_deadline: Optional[float] = None
        self._pending: Optional[TimerHandle] = None
        self._pending_reason: str = "inactivity"
        self._timer_gen = 0
        self._loading = True
        self._closed = False
        self._listeners: List[SessionListener] = []

        storage.add_listener(self._on_storage_event)

    # ---- views ----
    @property
    def user(self) -> Optional[UserIdentity]:
        return self._user

    @property
    def last_active_at(self) -> float:
        return self._last_active_at

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def is_authenticated(self) -> bool:
        return self._user is not None

    @property
    def has_pending_expiry(self) -> bool:
        return self._pending is not None

    @property
    def token(self) -> Optional[str]:
        return self.storage.get(self.keys.token)

    def expires_at(self) -> Optional[float]:
        if self._user is None:
            return None
        deadline = self._last_active_at + float(self.cfg.inactivity_timeout_seconds)
        if self._token_deadline is not None:
            deadline = min(deadline, self._token_deadline)
        return deadline

    def snapshot(self) -> Dict[str, Any]:
        return {
            "tab_id": self.tab_id,
            "authenticated": self.is_authenticated,
            "user_id": self._user.id if self._user else None,
            "last_active_at": self._last_active_at,
            "expires_at": self.expires_at(),
            "pending_expiry": self.has_pending_expiry,
            "loading": self._loading,
            "closed": self._closed,
        }

    def subscribe(self, listener: SessionListener) -> bool:
        if not callable(listener):
            if self.logger:
                self.logger.error(f"[{self.tab_id}] ignoring non-callable session listener: {listener!r}")
            return False
        self._listeners.append(listener)
        return True

    def unsubscribe(self, listener: SessionListener) -> int:
        before = len(self._listeners)
        self._listeners = [x for x in self._listeners if x is not listener]
        return before - len(self._listeners)

    # ---- operations ----
    def restore(self) -> Optional[UserIdentity]:
        """
        Page-load entry point: rebuild the session from storage.

        Missing or malformed state means "logged out". A last-active timestamp is
        created when none exists; an elapsed window or an expired token ends the
        restored session immediately.
        """
        if self._closed:
            return None
        try:
            now = self.clock.time()
            last = parse_timestamp(self.storage.get(self.keys.last_active))
            if last is None:
                last = now
                self.storage.set(self.keys.last_active, format_timestamp(last))
            self._last_active_at = last

            user = parse_identity(self.storage.get(self.keys.user))
            if user is None:
                self._log_debug("restore: no persisted identity")
                return None

            self._user = user
            self._token_deadline = self._deadline_for(self.storage.get(self.keys.token))
            if self._reschedule():
                self._audit("session.restored", {"user_id": user.id, "last_active_at": last})
                self._notify(ChangeKind.RESTORED)
            return self._user
        except Exception as e:  # noqa: BLE001
            self._log_warning(f"restore failed; starting logged out: {e}")
            self._cancel_pending()
            self._user = None
            self._token_deadline = None
            return None
        finally:
            self._loading = False

    def login(self, identity: Any, token: str) -> bool:
        """Start (or join) a session. Returns False when nothing was established."""
        if self._closed:
            return False
        user = coerce_identity(identity)
        if user is None or not token:
            self._log_warning("login ignored: identity or token missing/invalid")
            return False

        now = self.clock.time()
        window = float(self.cfg.inactivity_timeout_seconds)
        existing = parse_timestamp(self.storage.get(self.keys.last_active))
        # an existing timestamp only belongs to a live session if another tab holds a token
        joining = existing is not None and bool(self.storage.get(self.keys.token)) and (now - existing) < window
        self._last_active_at = existing if joining and existing is not None else now

        # last-active goes first so a tab adopting the identity sees a current clock
        self.storage.set(self.keys.last_active, format_timestamp(self._last_active_at))
        self.storage.set(self.keys.token, token)
        self.storage.set(self.keys.user, user.to_storage())
        self._user = user
        self._token_deadline = self._deadline_for(token)

        if not self._reschedule():
            return False
        self._audit("session.login", {"user_id": user.id, "joined_existing_clock": joining})
        if self.logger:
            self.logger.info(f"[{self.tab_id}] login user={user.id or user.username}")
        self._notify(ChangeKind.LOGIN)
        return True

    def logout(self, reason: str = "logout") -> None:
        """
        End the session here and in every other tab. Idempotent.

        The logout signal goes out whenever a session existed, locally or only in
        storage (a tab that never restored still logs its siblings out).
        """
        was_logged_in = self._user is not None
        had_persisted = bool(self.storage.get(self.keys.token) or self.storage.get(self.keys.user))
        self._cancel_pending()
        self._user = None
        self._token_deadline = None
        self._clear_persisted()
        if not (was_logged_in or had_persisted):
            return
        self._emit_logout_signal()
        self._audit("session.logout", {"reason": reason})
        if self.logger:
            self.logger.info(f"[{self.tab_id}] logout reason={reason}")
        if was_logged_in:
            self._notify(ChangeKind.LOGOUT, reason=reason)

    def mark_active(self) -> None:
        """Activity happened now: reset the inactivity clock in every tab."""
        if self._closed:
            return
        now = self.clock.time()
        self._last_active_at = max(now, self._last_active_at)
        self.storage.set(self.keys.last_active, format_timestamp(self._last_active_at))
        if self._user is not None:
            self._reschedule()

    def update_identity(self, identity: Any) -> bool:
        """Replace the stored identity (profile edit, subscription change); counts as activity."""
        if self._closed or self._user is None:
            self._log_warning("update_identity ignored: no active session")
            return False
        user = coerce_identity(identity)
        if user is None:
            self._log_warning("update_identity ignored: invalid identity")
            return False
        return self._replace_identity(user, touch=True)

    def refresh_identity(self, api: Any) -> Optional[UserIdentity]:
        """
        Re-fetch the current user from the Auth API.

        Success replaces the identity without counting as activity. 401/403 ends
        the session; any other failure keeps it untouched.
        """
        if self._closed or self._user is None:
            return None
        try:
            fresh = api.current_user()
        except AuthenticationError as e:
            self._log_warning(f"identity refresh rejected ({e.context.get('status_code')}); logging out")
            self.logout(reason="unauthorized")
            return None
        except LamblogError as e:
            self._log_warning(f"identity refresh failed, keeping session: {e.code}")
            return self._user
        if self._user is None:
            return None
        user = coerce_identity(fresh)
        if user is None:
            self._log_warning("identity refresh returned an invalid identity; keeping session")
            return self._user
        # a background fetch is not user activity: the inactivity clock is left alone
        self._replace_identity(user)
        return self._user

    def _replace_identity(self, user: UserIdentity, *, touch: bool = False) -> bool:
        self._user = user
        self.storage.set(self.keys.user, user.to_storage())
        if touch:
            self.mark_active()
            if self._user is None:
                return False
        self._audit("session.identity_updated", {"user_id": user.id})
        self._notify(ChangeKind.IDENTITY)
        return True

    def close(self) -> None:
        """Tear down: cancel the pending timer and stop listening to other tabs."""
        if self._closed:
            return
        self._cancel_pending()
        self.storage.remove_listener(self._on_storage_event)
        self._listeners = []
        self._closed = True

    # ---- scheduling ----
    def _reschedule(self) -> bool:
        """Cancel, then expire now or arm one timer. Returns whether the session is still alive."""
        self._cancel_pending()
        if self._user is None:
            return False
        now = self.clock.time()
        time_left = float(self.cfg.inactivity_timeout_seconds) - (now - self._last_active_at)
        reason = "inactivity"
        if self._token_deadline is not None and (self._token_deadline - now) < time_left:
            time_left = self._token_deadline - now
            reason = "token_expired"
        if time_left <= 0:
            self._expire(reason)
            return False
        self._timer_gen += 1
        gen = self._timer_gen
        self._pending_reason = reason
        self._pending = self.clock.call_later(time_left, lambda: self._on_expiry_timer(gen))
        return True

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None
        self._timer_gen += 1

    def _on_expiry_timer(self, gen: int) -> None:
        if gen != self._timer_gen or self._pending is None or self._closed:
            return
        self._pending = None
        self._expire(self._pending_reason)

    def _expire(self, reason: str) -> None:
        self._cancel_pending()
        if self._user is None:
            return
        user_id = self._user.id
        self._user = None
        self._token_deadline = None
        self._clear_persisted()
        self._emit_logout_signal()
        self._audit("session.expired", {"reason": reason, "user_id": user_id})
        if self.logger:
            self.logger.info(f"[{self.tab_id}] session expired reason={reason}")
        self._notify(ChangeKind.EXPIRED, reason=reason)

    def _deadline_for(self, token: Optional[str]) -> Optional[float]:
        if not self.cfg.enforce_token_expiry:
            return None
        return token_deadline(token)

    # ---- storage ----
    def _clear_persisted(self) -> None:
        self.storage.remove(self.keys.token)
        self.storage.remove(self.keys.user)
        self.storage.remove(self.keys.last_active)

    def _emit_logout_signal(self) -> None:
        now_ms = int(self.clock.time() * 1000)
        prev = self.storage.get(self.keys.logout)
        try:
            prev_ms = int(prev) if prev is not None else -1
        except ValueError:
            prev_ms = -1
        self.storage.set(self.keys.logout, str(max(now_ms, prev_ms + 1)))

    def _on_storage_event(self, ev: StorageEvent) -> None:
        if self._closed:
            return
        if ev.key == self.keys.logout:
            if ev.new_value is not None:
                self._on_remote_logout()
        elif ev.key == self.keys.last_active:
            self._on_remote_activity(parse_timestamp(ev.new_value))
        elif ev.key == self.keys.user:
            self._on_remote_identity(parse_identity(ev.new_value))
        elif ev.key == self.keys.token:
            if self._user is not None and ev.new_value:
                self._token_deadline = self._deadline_for(ev.new_value)
                self._reschedule()

    def _on_remote_logout(self) -> None:
        if self._user is None:
            return
        self._cancel_pending()
        self._user = None
        self._token_deadline = None
        self._audit("session.remote_logout", {})
        if self.logger:
            self.logger.info(f"[{self.tab_id}] logged out by another tab")
        self._notify(ChangeKind.REMOTE_LOGOUT, reason="remote")

    def _on_remote_activity(self, ts: Optional[float]) -> None:
        # older timestamps (clock skew between tabs) never shorten the session
        if ts is None or ts <= self._last_active_at:
            return
        self._last_active_at = ts
        if self._user is not None:
            self._reschedule()

    def _on_remote_identity(self, user: Optional[UserIdentity]) -> None:
        if user is None:
            return
        if self._user is not None:
            self._user = user
            self._notify(ChangeKind.IDENTITY, reason="remote")
            return
        persisted = parse_timestamp(self.storage.get(self.keys.last_active))
        self._last_active_at = max(persisted if persisted is not None else self.clock.time(), self._last_active_at)
        self._user = user
        self._token_deadline = self._deadline_for(self.storage.get(self.keys.token))
        if self._reschedule():
            self._audit("session.adopted", {"user_id": user.id})
            self._notify(ChangeKind.LOGIN, reason="remote")

    # ---- plumbing ----
    def _notify(self, kind: ChangeKind, reason: Optional[str] = None) -> None:
        change = SessionChange(kind=kind, user=self._user, reason=reason, at=self.clock.time())
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as e:  # noqa: BLE001
                if self.logger:
                    self.logger.error(f"[{self.tab_id}] session listener failed on {kind.value}: {e}")

    def _audit(self, event_type: str, details: Dict[str, Any]) -> None:
        if self.event_logger is None:
            return
        try:
            self.event_logger.log(self.tab_id, event_type, details)
        except OSError as e:
            self._log_warning(f"audit write failed: {e}")

    def _log_warning(self, msg: str) -> None:
        if self.logger:
            self.logger.warning(f"[{self.tab_id}] {msg}")

    def _log_debug(self, msg: str) -> None:
        if self.logger:
            self.logger.debug(f"[{self.tab_id}] {msg}")
