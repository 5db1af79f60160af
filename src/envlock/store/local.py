"""
Filesystem object store.

Objects are plain files under a root directory, one file per key.
Point the root at a NAS mount, USB drive, or a synced folder and
several machines can share project metadata without a bucket.
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from ..errors import ObjectNotFoundError, PreconditionFailedError, StoreError
from .base import ObjectStore, StoredObject

logger = logging.getLogger("envlock.store.local")


class LocalObjectStore(ObjectStore):
    """Key/value blobs stored as files below ``root``.

    Args:
        root: Directory holding the objects. Created on first write.
    """

    def __init__(self, root: Path) -> None:
        self.root = Path(root).expanduser()

    @property
    def name(self) -> str:
        return f"local:{self.root}"

    def get(self, key: str) -> StoredObject:
        path = self._path(key)
        try:
            data = path.read_bytes()
        except FileNotFoundError:
            raise ObjectNotFoundError(key) from None
        except OSError as exc:
            raise StoreError(f"read {key}: {exc}") from exc
        return StoredObject(data, _etag(data))

    def put(
        self,
        key: str,
        data: bytes,
        if_match: Optional[str] = None,
        if_none_match: bool = False,
    ) -> str:
        path = self._path(key)
        if if_none_match and path.exists():
            raise PreconditionFailedError(key)
        if if_match is not None:
            try:
                current = path.read_bytes()
            except FileNotFoundError:
                raise PreconditionFailedError(key) from None
            if _etag(current) != if_match:
                raise PreconditionFailedError(key)

        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(dir=path.parent, prefix=".tmp-", suffix=path.suffix)
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(data)
                os.replace(tmp, path)
            except BaseException:
                Path(tmp).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise StoreError(f"write {key}: {exc}") from exc

        logger.debug("Wrote %s", path)
        return _etag(data)

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise StoreError(f"delete {key}: {exc}") from exc

    def list_keys(self, prefix: str) -> list[str]:
        if not self.root.exists():
            return []
        keys = []
        for f in self.root.rglob("*"):
            if not f.is_file() or f.name.startswith(".tmp-"):
                continue
            key = f.relative_to(self.root).as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)

    def _path(self, key: str) -> Path:
        parts = [p for p in key.split("/") if p]
        if not parts or any(p in (".", "..") for p in parts):
            raise StoreError(f"invalid object key: {key!r}")
        return self.root.joinpath(*parts)


def _etag(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
