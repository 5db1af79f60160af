"""In-process object store, used by tests and dry runs."""

from __future__ import annotations

import hashlib
from typing import Optional

from ..errors import ObjectNotFoundError, PreconditionFailedError
from .base import ObjectStore, StoredObject


class MemoryObjectStore(ObjectStore):
    """Keeps every object in a dict. Nothing survives the process."""

    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}

    @property
    def name(self) -> str:
        return "memory"

    def get(self, key: str) -> StoredObject:
        if key not in self.objects:
            raise ObjectNotFoundError(key)
        data = self.objects[key]
        return StoredObject(data, _etag(data))

    def put(
        self,
        key: str,
        data: bytes,
        if_match: Optional[str] = None,
        if_none_match: bool = False,
    ) -> str:
        current = self.objects.get(key)
        if if_none_match and current is not None:
            raise PreconditionFailedError(key)
        if if_match is not None and (current is None or _etag(current) != if_match):
            raise PreconditionFailedError(key)
        self.objects[key] = bytes(data)
        return _etag(data)

    def delete(self, key: str) -> None:
        self.objects.pop(key, None)

    def list_keys(self, prefix: str) -> list[str]:
        return sorted(k for k in self.objects if k.startswith(prefix))


def _etag(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
