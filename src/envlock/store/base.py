"""
Storage contracts.

Two layers:

    ObjectStore    : dumb blobs by key (get / put / delete / list).
                     One implementation per backend.
    MetadataStore  : the typed port the enrollment core talks to:
                     recipients, invites, requests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import NamedTuple, Optional

from ..models import EnrollRequest, Invite
from ..recipients import RecipientRegistry


class StoredObject(NamedTuple):
    """Raw bytes of an object plus the backend's version tag for it."""

    data: bytes
    etag: str


class ObjectStore(ABC):
    """Abstract key/value blob backend."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name."""

    @abstractmethod
    def get(self, key: str) -> StoredObject:
        """Fetch an object.

        Raises:
            ObjectNotFoundError: If the key does not exist.
            StoreError: On any other backend failure.
        """

    @abstractmethod
    def put(
        self,
        key: str,
        data: bytes,
        if_match: Optional[str] = None,
        if_none_match: bool = False,
    ) -> str:
        """Write an object and return its new etag.

        Args:
            key: Object key.
            data: Full object content.
            if_match: Only write if the current etag equals this.
            if_none_match: Only write if the key does not exist yet.

        Raises:
            PreconditionFailedError: If a precondition does not hold.
            StoreError: On any other backend failure.
        """

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove an object. Deleting a missing key is not an error."""

    @abstractmethod
    def list_keys(self, prefix: str) -> list[str]:
        """All keys starting with ``prefix``, sorted."""


class MetadataStore(ABC):
    """Persistence port for the enrollment core.

    Every entity is stored whole; a save overwrites whatever is there.
    """

    @abstractmethod
    def load_recipients(self) -> RecipientRegistry:
        """Return the registry, or an empty version-1 registry if none exists."""

    @abstractmethod
    def write_recipients(self, registry: RecipientRegistry) -> None: ...

    @abstractmethod
    def save_invite(self, invite: Invite) -> None: ...

    @abstractmethod
    def load_invite(self, invite_id: str) -> Invite:
        """Raises InviteNotFoundError if absent."""

    @abstractmethod
    def list_invites(self) -> list[Invite]:
        """All invites, newest first."""

    @abstractmethod
    def save_request(self, request: EnrollRequest) -> None: ...

    @abstractmethod
    def load_request(self, request_id: str) -> EnrollRequest:
        """Raises RequestNotFoundError if absent."""

    @abstractmethod
    def list_requests(self) -> list[EnrollRequest]:
        """All enrollment requests, newest first."""

    @property
    def description(self) -> str:
        return type(self).__name__
