from __future__ import annotations

from lamblog.core.session.activity import ActivityMonitor
from lamblog.core.session.models import ActivitySource
from lamblog.core.session.routes import RouteDecision, protect, redirect_target, require_premium

from .helpers.fakes import RecordingLogger
from .helpers.session_builders import build_guard, build_user


def test_activity_resets_clock(shared, clock):
    g = build_guard(shared, clock)
    g.login(build_user(), "t")
    mon = ActivityMonitor(g)

    clock.advance(0.7)
    assert mon.record(ActivitySource.POINTER_MOVE) is True
    clock.advance(0.7)
    assert mon.record("key_down") is True
    clock.advance(0.7)

    assert g.user is not None
    assert mon.stats()["recorded"] == {"pointer_move": 1, "key_down": 1}


def test_unknown_and_disabled_sources_are_ignored(shared, clock):
    log = RecordingLogger()
    g = build_guard(shared, clock)
    g.login(build_user(), "t")
    mon = ActivityMonitor(g, sources=["click"], logger=log)
    before = g.last_active_at
    clock.advance(0.5)

    assert mon.record("mind_reading") is False
    assert mon.record("scroll") is False
    assert g.last_active_at == before
    assert mon.stats()["ignored"] == 2
    assert any("unknown source" in m for m in log.messages("debug"))


def test_paused_monitor_drops_activity(shared, clock):
    g = build_guard(shared, clock)
    g.login(build_user(), "t")
    mon = ActivityMonitor(g)
    mon.pause()
    assert mon.paused
    clock.advance(0.5)
    assert mon.record("click") is False
    clock.advance(0.6)
    assert g.user is None

    mon.resume()
    assert mon.record("click") is True


def test_activity_without_session_still_updates_timestamp(shared, clock):
    g = build_guard(shared, clock)
    ActivityMonitor(g).record("focus")
    assert g.user is None
    assert not g.has_pending_expiry
    assert shared.snapshot()["lastActive"]


def test_protect_waits_for_restore(shared, clock):
    g = build_guard(shared, clock)
    assert protect(g) == RouteDecision.LOADING
    assert redirect_target(protect(g)) is None

    g.restore()
    assert protect(g) == RouteDecision.REDIRECT_LOGIN
    assert redirect_target(protect(g)) == "/login"

    g.login(build_user(), "t")
    assert protect(g) == RouteDecision.ALLOW


def test_require_premium(shared, clock):
    g = build_guard(shared, clock)
    g.restore()
    assert require_premium(g) == RouteDecision.REDIRECT_LOGIN

    g.login(build_user(), "t")
    assert require_premium(g) == RouteDecision.REDIRECT_SUBSCRIBE
    assert redirect_target(require_premium(g)) == "/subscribe"

    g.update_identity(build_user(isPremium=True))
    assert require_premium(g) == RouteDecision.ALLOW


def test_expiry_closes_protected_routes(shared, clock):
    g = build_guard(shared, clock)
    g.restore()
    g.login(build_user(), "t")
    clock.advance(1.1)
    assert protect(g) == RouteDecision.REDIRECT_LOGIN
