from __future__ import annotations

import json

from lamblog.core.session.models import ChangeKind, UserIdentity, format_timestamp

from .helpers.fakes import RecordingLogger
from .helpers.session_builders import WINDOW, build_guard, build_user, seed


def _assert_timer_tracks_user(g) -> None:
    assert (g.user is None) == (not g.has_pending_expiry)


def test_login_then_idle_for_full_window_logs_out(shared, clock):
    g = build_guard(shared, clock)
    assert g.login(build_user(), "t") is True
    assert g.has_pending_expiry

    clock.advance(WINDOW)

    assert g.user is None
    assert not g.has_pending_expiry
    snap = shared.snapshot()
    assert "logout" in snap
    assert "token" not in snap and "user" not in snap


def test_activity_before_window_resets_clock(shared, clock):
    g = build_guard(shared, clock)
    g.login(build_user(), "t")
    clock.advance(0.9)
    g.mark_active()
    clock.advance(0.9)
    assert g.user is not None
    _assert_timer_tracks_user(g)

    clock.advance(0.2)
    assert g.user is None
    _assert_timer_tracks_user(g)


def test_restore_with_elapsed_window_expires_immediately(shared, clock):
    seed(shared, {"user": json.dumps(build_user()), "token": "t", "lastActive": format_timestamp(clock.time() - 1.5)})
    g = build_guard(shared, clock)
    changes = []
    g.subscribe(changes.append)

    assert g.restore() is None
    assert g.user is None
    assert not g.has_pending_expiry
    assert clock.scheduled == 0
    assert "logout" in shared.snapshot()
    assert [c.kind for c in changes] == [ChangeKind.EXPIRED]


def test_zero_time_left_expires_without_timer(shared, clock):
    seed(shared, {"user": json.dumps(build_user()), "token": "t", "lastActive": format_timestamp(clock.time() - WINDOW)})
    g = build_guard(shared, clock)
    g.restore()
    assert g.user is None
    assert clock.scheduled == 0


def test_restore_keeps_countdown_across_reload(shared, clock):
    seed(shared, {"user": json.dumps(build_user()), "token": "t", "lastActive": format_timestamp(clock.time() - 0.4)})
    g = build_guard(shared, clock)
    restored = g.restore()
    assert isinstance(restored, UserIdentity)
    assert restored.username == "ada"
    assert g.loading is False

    clock.advance(0.5)
    assert g.user is not None
    clock.advance(0.2)
    assert g.user is None


def test_restore_without_timestamp_initializes_it(shared, clock):
    seed(shared, {"user": json.dumps(build_user()), "token": "t"})
    g = build_guard(shared, clock)
    g.restore()
    assert g.user is not None
    assert shared.snapshot()["lastActive"] == format_timestamp(clock.time())
    assert g.last_active_at == clock.time()
    _assert_timer_tracks_user(g)


def test_restore_with_nothing_persisted_is_logged_out(shared, clock):
    g = build_guard(shared, clock)
    assert g.loading is True
    assert g.restore() is None
    assert g.loading is False
    assert g.user is None
    assert not g.has_pending_expiry
    assert "lastActive" in shared.snapshot()


def test_restore_treats_malformed_state_as_no_session(shared, clock):
    seed(shared, {"user": "{not json", "token": "t", "lastActive": "yesterday"})
    g = build_guard(shared, clock)
    assert g.restore() is None
    assert g.user is None
    assert shared.snapshot()["lastActive"] == format_timestamp(clock.time())

    seed(shared, {"user": "[1, 2]"})
    g2 = build_guard(shared, clock)
    assert g2.restore() is None


def test_logout_twice_emits_one_signal(shared, clock):
    g = build_guard(shared, clock)
    g.login(build_user(), "t")
    signals = []
    observer = shared.tab("observer")
    observer.add_listener(lambda ev: signals.append(ev) if ev.key == "logout" else None)

    g.logout()
    g.logout()

    assert g.user is None
    assert not g.has_pending_expiry
    assert len(signals) == 1
    assert clock.pending() == []


def test_many_activity_events_leave_one_timer(shared, clock):
    g = build_guard(shared, clock)
    g.login(build_user(), "t")
    for _ in range(50):
        clock.advance(0.01)
        g.mark_active()
        assert len(clock.pending()) == 1
    _assert_timer_tracks_user(g)


def test_update_identity_keeps_clock_monotonic(shared, clock):
    g = build_guard(shared, clock)
    g.login(build_user(), "t")
    clock.advance(0.3)
    before = g.last_active_at

    assert g.update_identity(build_user(bio="writes about owls", isPremium=True)) is True

    assert g.user.bio == "writes about owls"
    assert g.user.isPremium is True
    assert g.last_active_at >= before
    stored = json.loads(shared.snapshot()["user"])
    assert stored["_id"] == "u-1"
    assert stored["bio"] == "writes about owls"
    _assert_timer_tracks_user(g)


def test_update_identity_without_session_is_ignored(shared, clock):
    g = build_guard(shared, clock)
    assert g.update_identity(build_user()) is False
    assert g.user is None
    assert "user" not in shared.snapshot()


def test_login_rejects_missing_token_or_identity(shared, clock):
    g = build_guard(shared, clock)
    assert g.login(build_user(), "") is False
    assert g.login("not-a-user", "t") is False
    assert g.user is None
    assert clock.scheduled == 0


def test_login_joins_live_clock_of_another_tab(shared, clock):
    a = build_guard(shared, clock, tab_id="a")
    a.login(build_user(), "t")
    started = a.last_active_at
    clock.advance(0.5)

    c = build_guard(shared, clock, tab_id="c")
    assert c.login(build_user(), "t") is True
    assert c.last_active_at == started


def test_login_ignores_stale_timestamp_without_token(shared, clock):
    seed(shared, {"lastActive": format_timestamp(clock.time() - 50)})
    g = build_guard(shared, clock)
    assert g.login(build_user(), "t") is True
    assert g.last_active_at == clock.time()
    assert g.has_pending_expiry


def test_unknown_identity_fields_survive_storage(shared, clock):
    g = build_guard(shared, clock)
    g.login(build_user(subscription={"plan": "monthly"}), "t")
    stored = json.loads(shared.snapshot()["user"])
    assert stored["subscription"] == {"plan": "monthly"}


def test_close_cancels_timer_and_ignores_later_events(shared, clock):
    g = build_guard(shared, clock, tab_id="g")
    g.login(build_user(), "t")
    g.close()
    assert not g.has_pending_expiry
    assert clock.pending() == []

    other = shared.tab("other")
    other.set("logout", "999")
    clock.advance(WINDOW * 3)
    assert g.snapshot()["closed"] is True
    assert g.login(build_user(), "t") is False


def test_listener_failure_is_isolated(shared, clock):
    log = RecordingLogger()
    g = build_guard(shared, clock, logger=log)
    seen = []

    def _boom(_change):
        raise RuntimeError("ui crashed")

    g.subscribe(_boom)
    g.subscribe(seen.append)
    assert g.login(build_user(), "t") is True
    assert [c.kind for c in seen] == [ChangeKind.LOGIN]
    assert any("listener failed" in m for m in log.messages("error"))


def test_expires_at_and_snapshot(shared, clock):
    g = build_guard(shared, clock)
    assert g.expires_at() is None
    g.login(build_user(), "t")
    assert g.expires_at() == clock.time() + WINDOW
    snap = g.snapshot()
    assert snap["authenticated"] is True
    assert snap["user_id"] == "u-1"
    assert snap["pending_expiry"] is True


def test_unsubscribed_listener_is_not_called(shared, clock):
    g = build_guard(shared, clock)
    seen = []
    listener = seen.append
    g.subscribe(listener)
    assert g.unsubscribe(listener) == 1
    assert g.unsubscribe(listener) == 0
    g.login(build_user(), "t")
    assert seen == []


def test_login_after_idle_page_load_starts_a_fresh_clock(shared, clock):
    g = build_guard(shared, clock)
    g.restore()
    t0 = g.last_active_at
    clock.advance(0.5)

    assert g.login(build_user(), "t") is True

    assert g.last_active_at == t0 + 0.5
    assert g.expires_at() == clock.time() + WINDOW


def test_non_callable_listener_is_ignored(shared, clock):
    log = RecordingLogger()
    g = build_guard(shared, clock, logger=log)
    assert g.subscribe("not callable") is False
    assert g.login(build_user(), "t") is True
    assert any("non-callable" in m for m in log.messages("error"))
