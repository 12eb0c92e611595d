from __future__ import annotations

from typing import Any, Dict, Iterable, Optional, Union

from lamblog.core.session.models import ActivitySource


class ActivityMonitor:
    """
    Funnels raw input events into `SessionGuard.mark_active()`.

    Only the configured sources count as activity; anything else is dropped.
    """

    def __init__(self, guard: Any, *, sources: Optional[Iterable[str]] = None, logger=None):
        self.guard = guard
        self.logger = logger
        self._sources = {ActivitySource(s) for s in (sources if sources is not None else [x.value for x in ActivitySource])}
        self._paused = False
        self._counts: Dict[str, int] = {}
        self._ignored = 0

    def record(self, source: Union[ActivitySource, str]) -> bool:
        try:
            src = ActivitySource(source)
        except ValueError:
            self._ignored += 1
            if self.logger:
                self.logger.debug(f"activity ignored: unknown source {source!r}")
            return False
        if self._paused or src not in self._sources:
            self._ignored += 1
            return False
        self._counts[src.value] = self._counts.get(src.value, 0) + 1
        self.guard.mark_active()
        return True

    def pause(self) -> None:
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    @property
    def paused(self) -> bool:
        return self._paused

    def stats(self) -> Dict[str, Any]:
        return {
            "paused": self._paused,
            "sources": sorted(s.value for s in self._sources),
            "recorded": dict(self._counts),
            "ignored": self._ignored,
        }
