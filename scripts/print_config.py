from __future__ import annotations

import argparse
import json
import sys

from lamblog.core.config import ConfigManager
from lamblog.core.config.paths import ConfigFsPaths
from lamblog.core.errors import LamblogError


def main() -> None:
    ap = argparse.ArgumentParser(description="Print the effective Lamblog session config (never writes files).")
    ap.add_argument("--root", default=".")
    args = ap.parse_args()

    fs = ConfigFsPaths(args.root)
    cm = ConfigManager(fs=fs, logger=None, read_only=True)
    try:
        cfg = cm.load_all()
    except LamblogError as e:
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        raise SystemExit(2)

    paths = cm.open_paths()
    paths["storage_file"] = fs.resolve(cfg.session.storage_path)
    paths["log_dir"] = fs.resolve(cfg.logging.log_dir)
    print(json.dumps({"paths": paths, "config": cfg.model_dump()}, indent=2, sort_keys=True))


if __name__ == "__main__":
    main()
