"""Shared test fixtures for envlock."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest
import yaml

from envlock.store import MemoryObjectStore, ObjectMetadataStore


@pytest.fixture
def now() -> datetime:
    """A fixed point in time so expiry checks are deterministic."""
    return datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture
def objects() -> MemoryObjectStore:
    return MemoryObjectStore()


@pytest.fixture
def store(objects: MemoryObjectStore) -> ObjectMetadataStore:
    """A metadata store over an in-memory bucket."""
    return ObjectMetadataStore(objects, "envlock/testapp")


@pytest.fixture
def envlock_home(tmp_path: Path) -> Path:
    """Provide a temporary envlock home directory."""
    home = tmp_path / "home"
    home.mkdir()
    return home


@pytest.fixture
def project_dir(tmp_path: Path, monkeypatch) -> Path:
    """A project directory using a local store, made the working directory."""
    root = tmp_path / "project"
    (root / ".envlock").mkdir(parents=True)
    config = {
        "version": 1,
        "app_name": "demo",
        "backend": "local",
        "prefix": "envlock/demo",
        "path": "shared-store",
    }
    (root / ".envlock" / "project.yaml").write_text(
        yaml.dump(config, default_flow_style=False)
    )
    monkeypatch.chdir(root)
    return root
