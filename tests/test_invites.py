"""Tests for invite issuing and token validation."""

from __future__ import annotations

import hashlib
import re
from datetime import timedelta

import pytest

from envlock.errors import (
    InvalidTokenError,
    InviteExpiredError,
    InviteStatusError,
    InviteUsedError,
    StateConflictError,
    ValidationError,
)
from envlock.invites import (
    DEFAULT_TTL,
    TOKEN_PREFIX,
    extract_token,
    format_token,
    mark_used,
    new_invite,
    parse_token,
    revoke_invite,
    secret_hash,
    validate_for_approval,
    validate_for_join,
    verify_token,
)
from envlock.models import Invite, InviteStatus


class TestNewInvite:
    """Minting invites."""

    def test_token_shape(self, now):
        """Token is prefix + 16 hex id + '.' + 24 char secret."""
        invite, token = new_invite(DEFAULT_TTL, "alice-laptop", now=now)
        m = re.fullmatch(r"envlock-invite-([0-9a-f]{16})\.([A-Za-z0-9_-]{24})", token)
        assert m is not None
        assert m.group(1) == invite.id

    def test_fields(self, now):
        """The stored invite is active, expires after ttl, and holds only a hash."""
        invite, token = new_invite(timedelta(minutes=15), " alice-laptop ", now=now)
        _, secret = parse_token(token)
        assert invite.status == InviteStatus.ACTIVE
        assert invite.created_at == now
        assert invite.expires_at == now + timedelta(minutes=15)
        assert invite.created_by == "alice-laptop"
        assert invite.secret_hash == hashlib.sha256(secret.encode()).hexdigest()
        assert secret not in invite.to_json()

    def test_ids_are_unique(self, now):
        """Two invites never share an id or token."""
        a, ta = new_invite(DEFAULT_TTL, now=now)
        b, tb = new_invite(DEFAULT_TTL, now=now)
        assert a.id != b.id
        assert ta != tb

    @pytest.mark.parametrize("ttl", [timedelta(0), timedelta(seconds=-1)])
    def test_non_positive_ttl(self, ttl):
        """Zero or negative ttl is a validation error."""
        with pytest.raises(ValidationError):
            new_invite(ttl)


class TestTokens:
    """Parsing and verifying tokens."""

    def test_parse(self):
        """A well-formed token splits into id and secret."""
        assert parse_token("  envlock-invite-abc.s3cret \n") == ("abc", "s3cret")

    @pytest.mark.parametrize("bad", [
        "",
        "abc.s3cret",
        "envlock-invite-",
        "envlock-invite-abc",
        "envlock-invite-abc.",
        "envlock-invite-.s3cret",
        "envlock-invite-a.b.c",
    ])
    def test_parse_malformed(self, bad):
        """Anything else is an InvalidTokenError."""
        with pytest.raises(InvalidTokenError):
            parse_token(bad)

    def test_verify_ok(self, now):
        """The issued token verifies against its invite."""
        invite, token = new_invite(DEFAULT_TTL, now=now)
        verify_token(invite, token)

    def test_verify_wrong_secret(self, now):
        """A different secret for the same id is rejected."""
        invite, _ = new_invite(DEFAULT_TTL, now=now)
        with pytest.raises(InvalidTokenError):
            verify_token(invite, format_token(invite.id, "not-the-secret"))

    def test_verify_wrong_id(self, now):
        """A token for another invite is rejected even with a valid secret."""
        invite, token = new_invite(DEFAULT_TTL, now=now)
        other, _ = new_invite(DEFAULT_TTL, now=now)
        _, secret = parse_token(token)
        with pytest.raises(InvalidTokenError):
            verify_token(other, format_token(other.id, secret))

    def test_secret_hash_trims(self):
        """Surrounding whitespace does not change the hash."""
        assert secret_hash(" abc\n") == secret_hash("abc")

    def test_extract_bare_token(self):
        """A bare token is returned as-is."""
        assert extract_token(" envlock-invite-abc.def ") == "envlock-invite-abc.def"

    def test_extract_from_url(self):
        """A URL carrying the token in its query string yields the token."""
        url = "https://envlock.example/join?team=x&token=envlock-invite-abc.def"
        assert extract_token(url) == "envlock-invite-abc.def"

    def test_extract_garbage_left_for_parser(self):
        """Unrecognized input comes back trimmed and then fails parsing."""
        value = extract_token("  hello  ")
        assert value == "hello"
        assert TOKEN_PREFIX not in value


class TestValidation:
    """Join and approval checks."""

    def test_join_at_exact_expiry_is_valid(self, now):
        """now == expires_at is still inside the window."""
        invite, _ = new_invite(DEFAULT_TTL, now=now)
        validate_for_join(invite, invite.expires_at)

    def test_join_after_expiry(self, now):
        """One microsecond later the invite is expired."""
        invite, _ = new_invite(DEFAULT_TTL, now=now)
        with pytest.raises(InviteExpiredError):
            validate_for_join(invite, invite.expires_at + timedelta(microseconds=1))

    def test_join_used(self, now):
        """A used invite cannot be joined."""
        invite, _ = new_invite(DEFAULT_TTL, now=now)
        invite.status = InviteStatus.USED
        with pytest.raises(InviteUsedError):
            validate_for_join(invite, now)

    def test_join_used_and_expired_reports_used(self, now):
        """Status is checked before expiry."""
        invite, _ = new_invite(DEFAULT_TTL, now=now)
        invite.status = InviteStatus.USED
        with pytest.raises(InviteUsedError):
            validate_for_join(invite, now + timedelta(days=1))

    def test_join_revoked(self, now):
        """A revoked invite reports its status."""
        invite, _ = new_invite(DEFAULT_TTL, now=now)
        invite.status = InviteStatus.REVOKED
        with pytest.raises(InviteStatusError, match="revoked"):
            validate_for_join(invite, now)

    def test_legacy_empty_status_is_active(self, now):
        """Invites written with an empty status behave as active."""
        invite = Invite.model_validate({
            "version": 0, "id": "abc", "secret_hash": "x", "status": "",
            "created_at": now.isoformat(),
            "expires_at": (now + DEFAULT_TTL).isoformat(),
        })
        assert invite.status == InviteStatus.LEGACY
        assert invite.version == 1
        validate_for_join(invite, now)
        validate_for_approval(invite)

    def test_zero_timestamps_load_as_unset(self, now):
        """The all-zero timestamp of older records means 'never'."""
        invite = Invite.model_validate_json(
            '{"id": "abc", "secret_hash": "x", "status": "active",'
            ' "created_at": "2026-01-15T12:00:00Z",'
            ' "expires_at": "2026-01-15T12:15:00Z",'
            ' "used_at": "0001-01-01T00:00:00Z"}'
        )
        assert invite.used_at is None
        assert "used_at" not in invite.to_json()

    def test_approval_ignores_expiry(self, now):
        """Approval only looks at status."""
        invite, _ = new_invite(DEFAULT_TTL, now=now)
        assert invite.is_expired(now + timedelta(hours=1))
        validate_for_approval(invite)

    def test_approval_rejects_used(self, now):
        invite, _ = new_invite(DEFAULT_TTL, now=now)
        invite.status = InviteStatus.USED
        with pytest.raises(InviteUsedError):
            validate_for_approval(invite)


class TestTransitions:
    """Revoking and consuming invites."""

    def test_revoke_active(self, now):
        """An active invite becomes revoked."""
        invite, _ = new_invite(DEFAULT_TTL, now=now)
        revoke_invite(invite)
        assert invite.status == InviteStatus.REVOKED

    def test_revoke_twice_is_noop(self, now):
        invite, _ = new_invite(DEFAULT_TTL, now=now)
        revoke_invite(invite)
        revoke_invite(invite)
        assert invite.status == InviteStatus.REVOKED

    def test_revoke_used(self, now):
        """A used invite cannot be revoked."""
        invite, _ = new_invite(DEFAULT_TTL, now=now)
        mark_used(invite, "req1", now)
        with pytest.raises(InviteUsedError):
            revoke_invite(invite)

    def test_mark_used(self, now):
        """mark_used records which request consumed the invite and when."""
        invite, _ = new_invite(DEFAULT_TTL, now=now)
        mark_used(invite, "req1", now)
        assert invite.status == InviteStatus.USED
        assert invite.used_by_request_id == "req1"
        assert invite.used_at == now

    def test_mark_used_on_revoked(self, now):
        """A revoked invite cannot be consumed."""
        invite, _ = new_invite(DEFAULT_TTL, now=now)
        revoke_invite(invite)
        with pytest.raises(StateConflictError):
            mark_used(invite, "req1", now)
