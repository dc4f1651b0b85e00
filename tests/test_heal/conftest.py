"""Shared fixtures: every test gets its own data directory."""

from __future__ import annotations

import pytest

from selfheal.config import HealConfig
from selfheal.storage import RecordStore


@pytest.fixture
def config(tmp_path):
    return HealConfig(data_dir=tmp_path / "self-healing")


@pytest.fixture
def store(config):
    return RecordStore(config)


@pytest.fixture(autouse=True)
def _no_host_project(monkeypatch):
    # A real session's project dir would override the payload cwd
    monkeypatch.delenv("CLAUDE_PROJECT_DIR", raising=False)
