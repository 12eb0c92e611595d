from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from lamblog.core.api.client import AuthApiClient
from lamblog.core.config.models import AppConfig
from lamblog.core.session.activity import ActivityMonitor
from lamblog.core.session.clock import Clock
from lamblog.core.session.guard import SessionGuard
from lamblog.core.session.storage import SharedStorage, TabStorage


@dataclass
class TabSession:
    """Everything one open tab needs: its storage view, guard, activity monitor and API client."""

    storage: TabStorage
    guard: SessionGuard
    activity: ActivityMonitor
    api: AuthApiClient

    def login(self, email: str, password: str) -> bool:
        result = self.api.login(email, password)
        return self.guard.login(result.identity, result.token)

    def close(self) -> None:
        self.guard.close()
        self.storage.close()


def open_tab(
    cfg: AppConfig,
    shared: SharedStorage,
    clock: Clock,
    *,
    tab_id: Optional[str] = None,
    logger=None,
    event_logger=None,
    http_session: Any = None,
) -> TabSession:
    storage = shared.tab(tab_id)
    guard = SessionGuard(storage=storage, clock=clock, cfg=cfg.session, logger=logger, event_logger=event_logger)
    activity = ActivityMonitor(guard, sources=cfg.session.activity_sources, logger=logger)
    api = AuthApiClient(
        cfg=cfg.api,
        storage=storage,
        token_key=cfg.session.storage_keys.token,
        session=http_session,
        on_unauthorized=lambda: guard.logout(reason="unauthorized"),
        logger=logger,
    )
    return TabSession(storage=storage, guard=guard, activity=activity, api=api)
