from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import logging
import os
import sys

from lamblog.core.config import ConfigFsPaths, ConfigManager
from lamblog.core.errors import LamblogError
from lamblog.core.events import EventLogger
from lamblog.core.logger import setup_logging
from lamblog.core.session import AsyncioClock, SessionChange, SharedStorage, StorageFileWatcher
from lamblog.core.session.factory import open_tab


async def _run(args: argparse.Namespace) -> int:
    fs = ConfigFsPaths(args.root)
    cm = ConfigManager(fs=fs, logger=logging.getLogger("lamblog.config"))
    try:
        cfg = cm.load_all()
    except LamblogError as e:
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return 2

    logger = setup_logging(fs.resolve(cfg.logging.log_dir), level=cfg.logging.level)
    event_logger = EventLogger(os.path.join(fs.resolve(cfg.logging.log_dir), cfg.logging.event_log_name))
    clock = AsyncioClock(asyncio.get_running_loop())
    shared = SharedStorage(path=fs.resolve(cfg.session.storage_path), logger=logger, clock=clock)
    watcher = StorageFileWatcher(shared, clock, interval_seconds=cfg.session.storage_poll_seconds, logger=logger)
    tab = open_tab(cfg, shared, clock, logger=logger, event_logger=event_logger)

    ended = asyncio.Event()

    def _on_change(change: SessionChange) -> None:
        print(f"session: {change.kind.value}" + (f" ({change.reason})" if change.reason else ""))
        if change.user is None:
            ended.set()

    tab.guard.subscribe(_on_change)
    try:
        tab.guard.restore()
        if args.email:
            password = args.password or getpass.getpass("Password: ")
            try:
                tab.login(args.email, password)
            except LamblogError as e:
                print(e.user_message, file=sys.stderr)
                return 1
        if args.refresh:
            tab.guard.refresh_identity(tab.api)
        if args.logout:
            tab.guard.logout()

        print(json.dumps(tab.guard.snapshot(), indent=2, sort_keys=True))
        if args.watch and tab.guard.is_authenticated:
            # other processes sharing the storage file are picked up by polling
            watcher.start()
            await ended.wait()
        return 0
    finally:
        watcher.stop()
        tab.close()


def main() -> None:
    ap = argparse.ArgumentParser(description="Lamblog client session (login, restore, inactivity expiry)")
    ap.add_argument("--root", default=".", help="Directory holding config/, runtime/ and logs/.")
    ap.add_argument("--email", help="Log in with this email before reporting status.")
    ap.add_argument("--password", help="Password for --email (prompted when omitted).")
    ap.add_argument("--refresh", action="store_true", help="Refresh the identity from the Auth API.")
    ap.add_argument("--logout", action="store_true", help="Log out (every tab and process sharing the storage file; watchers notice within storage_poll_seconds).")
    ap.add_argument("--watch", action="store_true", help="Stay running until the session ends.")
    args = ap.parse_args()
    raise SystemExit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
