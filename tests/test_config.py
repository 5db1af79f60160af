"""Tests for project configuration and store selection."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from envlock.config import (
    ProjectNotFoundError,
    default_prefix,
    find_project,
    load_project,
    open_store,
    project_file_path,
    write_project,
)
from envlock.errors import ValidationError
from envlock.models import BackendType, ProjectConfig
from envlock.store import LocalObjectStore, S3ObjectStore


class TestProjectFile:
    """Reading and writing .envlock/project.yaml."""

    def test_roundtrip(self, tmp_path):
        path = project_file_path(tmp_path)
        write_project(path, ProjectConfig(app_name="myapp", bucket="bkt",
                                          endpoint="https://t3.example"))
        loaded = load_project(path)
        assert loaded.app_name == "myapp"
        assert loaded.backend == BackendType.S3
        assert loaded.bucket == "bkt"
        assert loaded.prefix == "envlock/myapp"
        assert "path:" not in path.read_text()

    def test_default_prefix(self):
        assert default_prefix(" myapp ") == "envlock/myapp"

    def test_s3_needs_bucket(self, tmp_path):
        with pytest.raises(ValidationError, match="bucket"):
            write_project(project_file_path(tmp_path), ProjectConfig(app_name="x"))

    def test_local_needs_path(self, tmp_path):
        with pytest.raises(ValidationError, match="path"):
            write_project(project_file_path(tmp_path),
                          ProjectConfig(app_name="x", backend=BackendType.LOCAL))

    def test_invalid_yaml(self, tmp_path):
        path = project_file_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text("app_name: [unclosed\n")
        with pytest.raises(ValidationError, match="invalid project config"):
            load_project(path)

    def test_missing_fields(self, tmp_path):
        path = project_file_path(tmp_path)
        path.parent.mkdir(parents=True)
        path.write_text("backend: local\n")
        with pytest.raises(ValidationError):
            load_project(path)

    def test_find_project_from_cwd(self, project_dir):
        project, root = find_project()
        assert root == project_dir
        assert project.app_name == "demo"
        assert project.backend == BackendType.LOCAL

    def test_find_project_missing(self, tmp_path):
        with pytest.raises(ProjectNotFoundError, match="project init"):
            find_project(tmp_path)


class TestOpenStore:
    """Choosing a backend from the project config."""

    def test_local_relative_path(self, tmp_path):
        project = ProjectConfig(app_name="demo", backend=BackendType.LOCAL,
                                prefix="envlock/demo", path=Path("store"))
        store = open_store(project, tmp_path)
        assert isinstance(store.objects, LocalObjectStore)
        assert store.objects.root == tmp_path / "store"
        assert store.prefix == "envlock/demo"

    def test_s3(self, monkeypatch):
        monkeypatch.delenv("TIGRIS_ENDPOINT", raising=False)
        project = ProjectConfig(app_name="demo", bucket="bkt", prefix="envlock/demo",
                                endpoint="https://t3.example")
        with patch("envlock.store.s3.boto3.client"):
            store = open_store(project, conditional=True)
        assert isinstance(store.objects, S3ObjectStore)
        assert store.objects.bucket == "bkt"
        assert store.conditional
