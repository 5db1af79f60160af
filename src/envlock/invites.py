"""
Invite issuance and invite token handling.

An invite lets exactly one new machine file an enrollment request.
The operator gets a token of the form::

    envlock-invite-<invite id>.<secret>

and passes it to the new machine out of band (chat, terminal paste,
or a URL with a ``token`` query parameter). The metadata store only
ever sees the SHA-256 of the secret, so reading the bucket is not
enough to join.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta
from typing import Optional
from urllib.parse import parse_qs, urlparse

from .errors import (
    InvalidTokenError,
    InviteExpiredError,
    InviteStatusError,
    InviteUsedError,
    StateConflictError,
    ValidationError,
)
from .models import Invite, InviteStatus, utcnow

logger = logging.getLogger("envlock.invites")

TOKEN_PREFIX = "envlock-invite-"
TOKEN_SEPARATOR = "."

INVITE_ID_BYTES = 8
SECRET_BYTES = 18
DEFAULT_TTL = timedelta(minutes=15)


def new_invite(
    ttl: timedelta,
    created_by: str = "",
    now: Optional[datetime] = None,
) -> tuple[Invite, str]:
    """Mint an invite and the token that proves possession of it.

    Args:
        ttl: How long the invite can be used to join. Must be positive.
        created_by: Device name of the issuing machine (informational).
        now: Creation time; defaults to the current UTC time.

    Returns:
        (invite, token). Persist the invite; hand the token to the
        operator. The token is the only place the secret exists.

    Raises:
        ValidationError: If ``ttl`` is not positive.
    """
    if ttl <= timedelta(0):
        raise ValidationError("ttl must be greater than zero")

    invite_id = secrets.token_hex(INVITE_ID_BYTES)
    secret = secrets.token_urlsafe(SECRET_BYTES)
    created_at = now or utcnow()

    invite = Invite(
        version=1,
        id=invite_id,
        secret_hash=secret_hash(secret),
        status=InviteStatus.ACTIVE,
        created_at=created_at,
        expires_at=created_at + ttl,
        created_by=created_by.strip(),
    )
    logger.info("Created invite %s (expires %s)", invite.id, invite.expires_at.isoformat())
    return invite, format_token(invite.id, secret)


def format_token(invite_id: str, secret: str) -> str:
    return f"{TOKEN_PREFIX}{invite_id}{TOKEN_SEPARATOR}{secret}"


def parse_token(token: str) -> tuple[str, str]:
    """Split a token into (invite_id, secret).

    Raises:
        InvalidTokenError: If the prefix is missing, the body does not
            split into exactly two parts, or either part is blank.
    """
    t = token.strip()
    if not t.startswith(TOKEN_PREFIX):
        raise InvalidTokenError()
    parts = t[len(TOKEN_PREFIX):].split(TOKEN_SEPARATOR)
    if len(parts) != 2:
        raise InvalidTokenError()
    invite_id, secret = parts
    if not invite_id.strip() or not secret.strip():
        raise InvalidTokenError()
    return invite_id, secret


def extract_token(value: str) -> str:
    """Pull an invite token out of whatever the user pasted.

    Accepts a bare token or a URL carrying it in the ``token`` query
    parameter. Anything else is returned trimmed and left for
    :func:`parse_token` to reject.
    """
    s = value.strip()
    if not s or s.startswith(TOKEN_PREFIX):
        return s
    query = parse_qs(urlparse(s).query)
    for candidate in query.get("token", []):
        if candidate.strip():
            return candidate.strip()
    return s


def secret_hash(secret: str) -> str:
    return hashlib.sha256(secret.strip().encode("utf-8")).hexdigest()


def verify_token(invite: Invite, token: str) -> None:
    """Check that ``token`` was issued for ``invite``.

    Raises:
        InvalidTokenError: On a malformed token, an id mismatch, or a
            secret whose hash differs from the stored one.
    """
    invite_id, secret = parse_token(token)
    if invite.id.strip() != invite_id.strip():
        raise InvalidTokenError()
    if not hmac.compare_digest(invite.secret_hash, secret_hash(secret)):
        raise InvalidTokenError()


def validate_for_join(invite: Invite, now: Optional[datetime] = None) -> None:
    """Raise unless a new enrollment request may be filed against ``invite``.

    An invite is joinable while its status is active (or the legacy
    empty status) and ``now`` is not after ``expires_at``. The
    boundary instant itself is still valid.

    Raises:
        InviteUsedError: The invite was already consumed.
        InviteStatusError: The invite was revoked.
        InviteExpiredError: ``now`` is past ``expires_at``.
    """
    _check_status(invite)
    if invite.is_expired(now or utcnow()):
        raise InviteExpiredError()


def validate_for_approval(invite: Invite) -> None:
    """Raise unless a request filed against ``invite`` may be approved.

    Expiry is not checked here: a request that arrived in time is not
    penalized for being decided late.
    """
    _check_status(invite)


def revoke_invite(invite: Invite) -> Invite:
    """Withdraw an invite that has not been used yet.

    Raises:
        InviteUsedError: The invite already admitted a device.
    """
    if invite.status == InviteStatus.USED:
        raise InviteUsedError()
    if invite.status == InviteStatus.REVOKED:
        return invite
    invite.status = InviteStatus.REVOKED
    logger.info("Revoked invite %s", invite.id)
    return invite


def mark_used(invite: Invite, request_id: str, now: Optional[datetime] = None) -> Invite:
    """Record that ``request_id`` consumed this invite."""
    if not invite.status.is_usable:
        raise StateConflictError(
            f"invite {invite.id} is {invite.status.value or 'legacy'} (expected active)"
        )
    invite.status = InviteStatus.USED
    invite.used_by_request_id = request_id
    invite.used_at = now or utcnow()
    return invite


def _check_status(invite: Invite) -> None:
    if invite.status == InviteStatus.USED:
        raise InviteUsedError()
    if not invite.status.is_usable:
        raise InviteStatusError(invite.status.value)
