from __future__ import annotations

import os

import pytest

from lamblog.core.config.manager import ConfigManager
from lamblog.core.config.paths import ConfigFsPaths
from lamblog.core.session.storage import SharedStorage

from .helpers.fakes import FakeClock


@pytest.fixture
def tmp_config_root(tmp_path):
    """
    Provides an isolated root with config/ under tmp_path.
    """
    fs = ConfigFsPaths(root=str(tmp_path))
    os.makedirs(fs.config_dir, exist_ok=True)
    return fs


@pytest.fixture
def config_manager(tmp_config_root):
    cm = ConfigManager(fs=tmp_config_root, logger=None, read_only=False, environ={})
    cm.load_all()
    return cm


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def shared(clock):
    return SharedStorage(clock=clock)
