"""
Recipient registry: who future ciphertext is encrypted to.

The registry is one versioned JSON document per project. Callers load
it through the metadata store, mutate it in memory with add / revoke /
delete, and write the whole document back. Nothing here touches
storage.

Identity rules:
    - names are unique case-insensitively
    - public keys are unique
    - fingerprints are unique
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import Field

from .errors import DuplicateError, RecipientNotFoundError, ValidationError
from .models import Recipient, RecipientStatus, VersionedRecord, utcnow

logger = logging.getLogger("envlock.recipients")


class RecipientRegistry(VersionedRecord):
    """The authoritative list of encryption targets for a project."""

    recipients: list[Recipient] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "RecipientRegistry":
        return cls(version=1, recipients=[])

    def add(self, recipient: Recipient) -> Recipient:
        """Append a recipient after normalizing and checking for collisions.

        Surrounding whitespace is trimmed from name, public key and
        fingerprint. ``created_at`` defaults to now.

        Args:
            recipient: The entry to add. It is copied, not mutated.

        Returns:
            The entry as stored.

        Raises:
            ValidationError: If name or public key is empty.
            DuplicateError: If any entry matches by name (case-insensitive),
                public key, or fingerprint. The registry is unchanged.
        """
        r = recipient.model_copy(
            update={
                "name": recipient.name.strip(),
                "public_key": recipient.public_key.strip(),
                "fingerprint": recipient.fingerprint.strip(),
                "created_at": recipient.created_at or utcnow(),
            }
        )
        if not r.name:
            raise ValidationError("recipient name is required")
        if not r.public_key:
            raise ValidationError("recipient public key is required")

        for existing in self.recipients:
            if existing.name.casefold() == r.name.casefold():
                raise DuplicateError(f"duplicate recipient: name {r.name!r} already exists")
            if existing.public_key == r.public_key or existing.fingerprint == r.fingerprint:
                raise DuplicateError(
                    f"duplicate recipient: recipient {r.fingerprint!r} already exists"
                )

        self.recipients.append(r)
        logger.info("Added recipient %s (%s) from %s", r.name, r.fingerprint, r.source or "unknown")
        return r

    def revoke(self, query: str) -> Recipient:
        """Mark the first entry matching ``query`` as revoked.

        Revoking an already revoked entry is accepted and changes nothing.

        Raises:
            RecipientNotFoundError: If no name or fingerprint matches.
        """
        idx = self._find_index(query)
        if idx < 0:
            raise RecipientNotFoundError(query)
        r = self.recipients[idx]
        r.status = RecipientStatus.REVOKED
        logger.info("Revoked recipient %s (%s)", r.name, r.fingerprint)
        return r

    def delete(self, query: str) -> Recipient:
        """Remove the first entry matching ``query`` entirely.

        Raises:
            RecipientNotFoundError: If no name or fingerprint matches.
        """
        idx = self._find_index(query)
        if idx < 0:
            raise RecipientNotFoundError(query)
        removed = self.recipients.pop(idx)
        logger.info("Deleted recipient %s (%s)", removed.name, removed.fingerprint)
        return removed

    def find(self, query: str) -> Optional[Recipient]:
        idx = self._find_index(query)
        return self.recipients[idx] if idx >= 0 else None

    def active_count(self) -> int:
        return sum(1 for r in self.recipients if r.status == RecipientStatus.ACTIVE)

    def listing(self, include_revoked: bool = False) -> list[Recipient]:
        """Entries sorted by name, active only unless asked otherwise."""
        items = [r for r in self.recipients if include_revoked or r.is_active]
        return sorted(items, key=lambda r: r.name)

    def _find_index(self, query: str) -> int:
        q = query.strip().casefold()
        for i, r in enumerate(self.recipients):
            if r.name.casefold() == q or r.fingerprint.casefold() == q:
                return i
        return -1
