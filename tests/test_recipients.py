"""Tests for the recipient registry."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from envlock.errors import DuplicateError, RecipientNotFoundError, ValidationError
from envlock.models import Recipient, RecipientStatus
from envlock.recipients import RecipientRegistry


def _recipient(name: str, key: str, fp: str, **kw) -> Recipient:
    return Recipient(name=name, public_key=key, fingerprint=fp, **kw)


@pytest.fixture
def registry() -> RecipientRegistry:
    reg = RecipientRegistry.empty()
    reg.add(_recipient("alice-laptop", "pub-alice", "fpalice", source="local-init"))
    reg.add(_recipient("bobs-pc", "pub-bob", "fpbob", source="manual"))
    return reg


class TestAdd:
    """Adding recipients."""

    def test_empty_registry(self):
        """A fresh registry is version 1 with nobody in it."""
        reg = RecipientRegistry.empty()
        assert reg.version == 1
        assert reg.recipients == []
        assert reg.active_count() == 0

    def test_add_trims_and_defaults(self):
        """Whitespace is trimmed and created_at filled in."""
        reg = RecipientRegistry.empty()
        added = reg.add(_recipient("  carol  ", " pub-carol\n", " fpcarol "))
        assert added.name == "carol"
        assert added.public_key == "pub-carol"
        assert added.fingerprint == "fpcarol"
        assert added.created_at is not None
        assert added.status == RecipientStatus.ACTIVE

    def test_add_keeps_given_created_at(self):
        """An explicit timestamp is preserved."""
        ts = datetime(2025, 3, 1, tzinfo=timezone.utc)
        reg = RecipientRegistry.empty()
        added = reg.add(_recipient("carol", "pub-carol", "fpcarol", created_at=ts))
        assert added.created_at == ts

    def test_input_not_mutated(self):
        """add stores a copy; the caller's object is left alone."""
        original = _recipient(" carol ", "pub-carol", "fpcarol")
        RecipientRegistry.empty().add(original)
        assert original.name == " carol "

    def test_empty_name_rejected(self):
        """A blank name is a validation error."""
        with pytest.raises(ValidationError):
            RecipientRegistry.empty().add(_recipient("   ", "pub", "fp"))

    def test_empty_key_rejected(self):
        """A blank public key is a validation error."""
        with pytest.raises(ValidationError):
            RecipientRegistry.empty().add(_recipient("carol", "  ", "fp"))

    def test_duplicate_name_case_insensitive(self, registry):
        """Names collide regardless of case; the registry is unchanged."""
        before = len(registry.recipients)
        with pytest.raises(DuplicateError):
            registry.add(_recipient("ALICE-Laptop", "pub-other", "fpother"))
        assert len(registry.recipients) == before

    def test_duplicate_public_key(self, registry):
        """The same key under another name is still a duplicate."""
        with pytest.raises(DuplicateError):
            registry.add(_recipient("alice-2", "pub-alice", "fpnew"))

    def test_duplicate_fingerprint(self, registry):
        """The same fingerprint under another name is a duplicate."""
        with pytest.raises(DuplicateError):
            registry.add(_recipient("alice-2", "pub-new", "fpalice"))

    def test_revoked_entry_still_blocks(self, registry):
        """Revoked entries keep their identity reserved."""
        registry.revoke("bobs-pc")
        with pytest.raises(DuplicateError):
            registry.add(_recipient("bobs-pc", "pub-bob-2", "fpbob2"))


class TestRevokeDelete:
    """Revoking and deleting recipients."""

    def test_revoke_by_name(self, registry):
        """Revoke flips status but keeps the entry."""
        revoked = registry.revoke("bobs-pc")
        assert revoked.status == RecipientStatus.REVOKED
        assert len(registry.recipients) == 2
        assert registry.active_count() == 1
        assert [r.name for r in registry.listing()] == ["alice-laptop"]

    def test_revoke_by_fingerprint_case_insensitive(self, registry):
        """Fingerprint lookup ignores case and surrounding space."""
        revoked = registry.revoke("  FPBOB ")
        assert revoked.name == "bobs-pc"

    def test_revoke_twice_is_accepted(self, registry):
        """Revoking an already revoked entry changes nothing."""
        registry.revoke("bobs-pc")
        again = registry.revoke("bobs-pc")
        assert again.status == RecipientStatus.REVOKED
        assert registry.active_count() == 1

    def test_revoke_unknown(self, registry):
        """Unknown query raises RecipientNotFoundError."""
        with pytest.raises(RecipientNotFoundError, match="nobody"):
            registry.revoke("nobody")

    def test_delete_removes_entry(self, registry):
        """Delete drops the entry entirely."""
        removed = registry.delete("fpalice")
        assert removed.name == "alice-laptop"
        assert registry.find("alice-laptop") is None
        assert len(registry.recipients) == 1

    def test_delete_unknown(self, registry):
        """Unknown query raises RecipientNotFoundError."""
        with pytest.raises(RecipientNotFoundError):
            registry.delete("nobody")

    def test_delete_frees_identity(self, registry):
        """After a hard delete the same name can be added again."""
        registry.delete("bobs-pc")
        registry.add(_recipient("bobs-pc", "pub-bob", "fpbob"))
        assert registry.active_count() == 2


class TestListing:
    """Listing and serialization."""

    def test_listing_sorted_active_only(self, registry):
        """Default listing hides revoked entries and sorts by name."""
        registry.add(_recipient("aaron", "pub-aaron", "fpaaron"))
        registry.revoke("bobs-pc")
        names = [r.name for r in registry.listing()]
        assert names == ["aaron", "alice-laptop"]
        all_names = [r.name for r in registry.listing(include_revoked=True)]
        assert all_names == ["aaron", "alice-laptop", "bobs-pc"]

    def test_legacy_document_loads(self):
        """Old documents with no version or status load as active, version 1."""
        doc = {
            "version": 0,
            "recipients": [
                {"name": "old", "public_key": "pub-old", "fingerprint": "fpold",
                 "created_at": "2024-05-01T10:00:00Z", "status": ""},
            ],
        }
        reg = RecipientRegistry.model_validate_json(json.dumps(doc))
        assert reg.version == 1
        assert reg.recipients[0].is_active
        assert reg.active_count() == 1

    def test_json_field_names(self, registry):
        """Serialized documents use the stored field names."""
        data = json.loads(registry.to_json())
        assert data["version"] == 1
        entry = data["recipients"][0]
        assert set(entry) >= {"name", "public_key", "fingerprint", "created_at", "status"}
        assert entry["status"] == "active"
