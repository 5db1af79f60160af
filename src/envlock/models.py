"""
Pydantic models for everything envlock persists.

Field names match the JSON records already stored in project buckets,
so older and newer tooling can read each other's metadata. Missing or
zero versions load as version 1.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    """Current time, timezone-aware UTC."""
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    # Go's zero time.Time, written by older clients for unset timestamps
    if value.year == 1:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class RecipientStatus(str, Enum):
    """Whether a recipient is still an encryption target."""

    ACTIVE = "active"
    REVOKED = "revoked"


class InviteStatus(str, Enum):
    """Lifecycle of an invite.

    LEGACY is the empty status written by early releases; it is
    treated exactly like ACTIVE.
    """

    ACTIVE = "active"
    USED = "used"
    REVOKED = "revoked"
    LEGACY = ""

    @property
    def is_usable(self) -> bool:
        return self in (InviteStatus.ACTIVE, InviteStatus.LEGACY)


class RequestStatus(str, Enum):
    """Lifecycle of an enrollment request."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class VersionedRecord(BaseModel):
    """Common serialization rules for stored records."""

    version: int = 1

    @field_validator("version", mode="before")
    @classmethod
    def _default_version(cls, v):
        return v or 1

    def to_json(self) -> str:
        return self.model_dump_json(indent=2, exclude_none=True) + "\n"


class Recipient(BaseModel):
    """A device whose public key is an encryption target.

    Attributes:
        name: Device name, unique case-insensitively within a registry.
        public_key: The device's public key string.
        fingerprint: Short hex digest of the public key.
        created_at: When the entry was added (filled on add if absent).
        status: active or revoked.
        source: How it was added (manual, local-init, enroll-approve).
        note: Free-form operator note.
    """

    name: str
    public_key: str
    fingerprint: str = ""
    created_at: Optional[datetime] = None
    status: RecipientStatus = RecipientStatus.ACTIVE
    source: str = ""
    note: str = ""

    @field_validator("created_at")
    @classmethod
    def _utc(cls, v):
        return _as_utc(v)

    @field_validator("status", mode="before")
    @classmethod
    def _default_status(cls, v):
        return v or RecipientStatus.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.status == RecipientStatus.ACTIVE


class Invite(VersionedRecord):
    """A single-use, short-lived permission for one machine to ask to join.

    Only the hash of the bearer secret is stored; the secret itself
    lives in the token handed to the operator.
    """

    id: str
    secret_hash: str
    status: InviteStatus = InviteStatus.ACTIVE
    created_at: datetime = Field(default_factory=utcnow)
    expires_at: Optional[datetime] = None
    created_by: str = ""
    used_by_request_id: str = ""
    used_at: Optional[datetime] = None

    @field_validator("created_at", "expires_at", "used_at")
    @classmethod
    def _utc(cls, v):
        return _as_utc(v)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """True only when ``now`` is strictly after ``expires_at``."""
        if self.expires_at is None:
            return False
        return (now or utcnow()) > self.expires_at


class EnrollRequest(VersionedRecord):
    """A pending ask, tied to an invite, to add a device as a recipient."""

    id: str
    invite_id: str
    status: RequestStatus = RequestStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    decision_at: Optional[datetime] = None
    decision_note: str = ""

    device_name: str
    public_key: str
    fingerprint: str

    @field_validator("created_at", "decision_at")
    @classmethod
    def _utc(cls, v):
        return _as_utc(v)

    @property
    def is_pending(self) -> bool:
        return self.status == RequestStatus.PENDING


class BackendType(str, Enum):
    """Where project metadata lives."""

    S3 = "s3"
    LOCAL = "local"


class ProjectConfig(BaseModel):
    """Per-project settings stored in ``.envlock/project.yaml``."""

    version: int = 1
    app_name: str
    backend: BackendType = BackendType.S3
    bucket: str = ""
    prefix: str = ""
    endpoint: str = ""
    path: Optional[Path] = None
