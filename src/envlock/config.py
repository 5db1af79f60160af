"""
Project configuration.

A project is any directory containing ``.envlock/project.yaml``::

    version: 1
    app_name: myapp
    backend: s3            # or: local
    bucket: my-bucket      # s3 only
    endpoint: https://fly.storage.tigris.dev
    prefix: envlock/myapp
    path: /mnt/shared/envlock   # local only

The file says where the project's metadata lives; it holds no secrets.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError as ModelValidationError

from .errors import EnvlockError, ValidationError
from .models import BackendType, ProjectConfig
from .store import LocalObjectStore, MetadataStore, ObjectMetadataStore, S3ObjectStore

logger = logging.getLogger("envlock.config")

PROJECT_DIR = ".envlock"
PROJECT_FILE = "project.yaml"


class ProjectNotFoundError(EnvlockError):
    def __init__(self, start: Path) -> None:
        super().__init__(
            f"envlock project config not found in {start} (run `envlock project init`)"
        )


def default_prefix(app_name: str) -> str:
    return f"envlock/{app_name.strip().strip('/')}"


def project_file_path(base: Path) -> Path:
    return Path(base) / PROJECT_DIR / PROJECT_FILE


def normalize_project(project: ProjectConfig) -> ProjectConfig:
    """Fill defaults and check that the chosen backend is fully configured."""
    app = project.app_name.strip()
    if not app:
        raise ValidationError("project app_name is required")
    update: dict = {"app_name": app, "version": project.version or 1}
    update["prefix"] = project.prefix.strip().strip("/") or default_prefix(app)
    if project.backend == BackendType.S3 and not project.bucket.strip():
        raise ValidationError("project bucket is required for the s3 backend")
    if project.backend == BackendType.LOCAL and project.path is None:
        raise ValidationError("project path is required for the local backend")
    return project.model_copy(update=update)


def write_project(path: Path, project: ProjectConfig) -> Path:
    project = normalize_project(project)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    data = project.model_dump(mode="json", exclude_none=True)
    if not data.get("endpoint"):
        data.pop("endpoint", None)
    if not data.get("bucket"):
        data.pop("bucket", None)
    path.write_text(yaml.safe_dump(data, default_flow_style=False, sort_keys=False), encoding="utf-8")
    logger.info("Wrote project config %s", path)
    return path


def load_project(path: Path) -> ProjectConfig:
    """Parse and validate a project file.

    Raises:
        ValidationError: If the file is not valid YAML or misses fields.
    """
    path = Path(path)
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValidationError(f"invalid project config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValidationError(f"invalid project config {path}: expected a mapping")
    try:
        return normalize_project(ProjectConfig.model_validate(data))
    except ModelValidationError as exc:
        raise ValidationError(f"invalid project config {path}: {exc}") from exc


def find_project(start: Optional[Path] = None) -> tuple[ProjectConfig, Path]:
    """Load the project config for ``start`` (default: the working directory).

    Returns:
        (project, project_root)

    Raises:
        ProjectNotFoundError: If ``start`` has no ``.envlock/project.yaml``.
    """
    root = Path(start or Path.cwd())
    path = project_file_path(root)
    if not path.exists():
        raise ProjectNotFoundError(root)
    return load_project(path), root


def open_store(
    project: ProjectConfig,
    project_root: Optional[Path] = None,
    conditional: bool = False,
) -> MetadataStore:
    """Build the metadata store a project points at.

    A relative local ``path`` is resolved against ``project_root``.
    """
    if project.backend == BackendType.LOCAL:
        root = Path(project.path).expanduser()
        if not root.is_absolute() and project_root is not None:
            root = Path(project_root) / root
        objects = LocalObjectStore(root)
    else:
        objects = S3ObjectStore.from_environment(project.bucket, project.endpoint)
    return ObjectMetadataStore(objects, project.prefix, conditional=conditional)
