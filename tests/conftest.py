"""Shared fixtures: every test runs with an empty HOME and no managed settings."""

from __future__ import annotations

from pathlib import Path

import pytest
from shellgate.pipeline import GateContext
from shellgate.settings import MANAGED_SETTINGS_ENV


@pytest.fixture(autouse=True)
def home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolated HOME; the managed-settings location points into tmp_path."""
    home = tmp_path / 'home'
    home.mkdir()
    monkeypatch.setenv('HOME', str(home))
    monkeypatch.setenv(MANAGED_SETTINGS_ENV, str(tmp_path / 'managed-settings.json'))
    return home


@pytest.fixture
def project(tmp_path: Path) -> Path:
    project = tmp_path / 'project'
    project.mkdir()
    return project


@pytest.fixture
def context(project: Path) -> GateContext:
    return GateContext.load(str(project))
