from __future__ import annotations

import time
import uuid
from typing import Callable, Dict, List, Optional

from lamblog.core.config.io import atomic_write_json, read_json_file
from lamblog.core.session.clock import Clock, TimerHandle
from lamblog.core.session.models import StorageEvent


StorageListener = Callable[[StorageEvent], None]


class SharedStorage:
    """
    One origin's key-value storage, shared by all of its tabs.

    - values are strings; setting a key to its current value is a no-op
    - a change is delivered to every attached tab except the writer
    - optional JSON file backing; a missing or corrupt file is an empty store
    - with a file, `sync()` picks up writes made by other processes and every
      write re-reads the file first, so concurrent writers do not drop each
      other's keys
    """

    def __init__(self, *, path: Optional[str] = None, logger=None, clock: Optional[Clock] = None):
        self.path = path
        self.logger = logger
        self.clock = clock
        self._data: Dict[str, str] = {}
        self._tabs: List["TabStorage"] = []
        self._unsaved = False
        if path:
            self._data = self._read_file(on_missing={}) or {}

    def tab(self, tab_id: Optional[str] = None) -> "TabStorage":
        t = TabStorage(self, tab_id=tab_id or uuid.uuid4().hex[:8])
        self._tabs.append(t)
        return t

    def snapshot(self) -> Dict[str, str]:
        return dict(self._data)

    def tabs(self) -> List[str]:
        return [t.tab_id for t in self._tabs]

    def sync(self) -> int:
        """
        Re-read the backing file and deliver one event per changed key to every tab.

        Returns the number of keys that changed. An unreadable file leaves the
        in-memory state as is; a deleted file means every key was removed.
        """
        # a failed write left memory ahead of the file; re-reading would undo it
        if not self.path or self._unsaved:
            return 0
        fresh = self._read_file(on_missing={})
        if fresh is None:
            return 0
        changed = 0
        for key in sorted(set(self._data) | set(fresh)):
            old, new = self._data.get(key), fresh.get(key)
            if old == new:
                continue
            changed += 1
            if new is None:
                self._data.pop(key, None)
            else:
                self._data[key] = new
            self._broadcast(StorageEvent(key=key, old_value=old, new_value=new, timestamp=self._now()), writer=None)
        return changed

    # ---- internals (used by TabStorage) ----
    def _get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def _write(self, writer: "TabStorage", key: str, value: Optional[str]) -> None:
        self.sync()
        old = self._data.get(key)
        if old == value:
            return
        if value is None:
            self._data.pop(key, None)
        else:
            self._data[key] = value
        self._persist()
        self._broadcast(StorageEvent(key=key, old_value=old, new_value=value, timestamp=self._now()), writer=writer)

    def _broadcast(self, ev: StorageEvent, *, writer: Optional["TabStorage"]) -> None:
        for t in list(self._tabs):
            if t is not writer:
                t._deliver(ev)

    def _now(self) -> float:
        return self.clock.time() if self.clock is not None else time.time()

    def _detach(self, tab: "TabStorage") -> None:
        self._tabs = [t for t in self._tabs if t is not tab]

    def _read_file(self, *, on_missing: Dict[str, str]) -> Optional[Dict[str, str]]:
        rr = read_json_file(str(self.path))
        if rr.missing:
            return dict(on_missing)
        if not rr.ok:
            if self.logger:
                self.logger.warning(f"Session storage unreadable ({rr.error}); keeping current state.")
            return None
        return {str(k): v for k, v in rr.data.items() if isinstance(v, str)}

    def _persist(self) -> None:
        if not self.path:
            return
        try:
            atomic_write_json(str(self.path), dict(self._data))
            self._unsaved = False
        except OSError as e:
            self._unsaved = True
            if self.logger:
                self.logger.warning(f"Session storage write failed: {e}")


class StorageFileWatcher:
    """
    Polls a file-backed SharedStorage so writes from other processes reach this one's tabs.

    Runs on the injected clock (one pending timer at a time), not on a thread.
    """

    def __init__(self, shared: SharedStorage, clock: Clock, *, interval_seconds: float = 0.5, logger=None):
        self.shared = shared
        self.clock = clock
        self.interval = max(0.05, float(interval_seconds))
        self.logger = logger
        self._handle: Optional[TimerHandle] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running or not self.shared.path:
            return
        self._running = True
        self._schedule()

    def stop(self) -> None:
        self._running = False
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _schedule(self) -> None:
        self._handle = self.clock.call_later(self.interval, self._poll)

    def _poll(self) -> None:
        self._handle = None
        if not self._running:
            return
        try:
            self.shared.sync()
        except Exception as e:  # noqa: BLE001
            if self.logger:
                self.logger.warning(f"Storage watcher error: {e}")
        if self._running:
            self._schedule()


class TabStorage:
    """A single tab's view of SharedStorage (the `localStorage` + `storage` event pair)."""

    def __init__(self, shared: SharedStorage, *, tab_id: str):
        self.shared = shared
        self.tab_id = tab_id
        self._listeners: List[StorageListener] = []
        self._closed = False

    def get(self, key: str) -> Optional[str]:
        return self.shared._get(key)

    def set(self, key: str, value: str) -> None:
        self.shared._write(self, key, str(value))

    def remove(self, key: str) -> None:
        self.shared._write(self, key, None)

    def clear(self) -> None:
        for key in list(self.shared.snapshot()):
            self.remove(key)

    def add_listener(self, listener: StorageListener) -> bool:
        """Register `listener`; a non-callable is logged and ignored (returns False)."""
        if not callable(listener):
            if self.shared.logger:
                self.shared.logger.error(f"Ignoring non-callable storage listener in tab {self.tab_id}: {listener!r}")
            return False
        self._listeners.append(listener)
        return True

    def remove_listener(self, listener: StorageListener) -> int:
        before = len(self._listeners)
        self._listeners = [x for x in self._listeners if x is not listener]
        return before - len(self._listeners)

    def close(self) -> None:
        self._closed = True
        self._listeners = []
        self.shared._detach(self)

    def _deliver(self, ev: StorageEvent) -> None:
        if self._closed:
            return
        for listener in list(self._listeners):
            try:
                listener(ev)
            except Exception as e:  # noqa: BLE001
                if self.shared.logger:
                    self.shared.logger.error(f"Storage listener failed in tab {self.tab_id} for key {ev.key!r}: {e}")
