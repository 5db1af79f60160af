"""
Device enrollment: how a new machine joins the recipient set.

Flow:
    1. A trusted machine runs: envlock invite create
       and passes the printed token to the new machine.
    2. The new machine runs: envlock invite join <token>
       which files a pending request carrying its public key.
    3. A trusted machine runs: envlock requests approve <id>
       which adds the key to the registry and burns the invite.

Request states::

    pending --approve--> approved
    pending --reject---> rejected

Approval is three independent writes (registry, request, invite) with
no transaction around them. ApprovalSaga runs them in that order and
reports exactly which one failed.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable, NamedTuple, Optional

from .errors import (
    ApprovalIncompleteError,
    DuplicateError,
    InviteExpiredError,
    InviteStatusError,
    InviteUsedError,
    StateConflictError,
    StoreError,
    ValidationError,
)
from .invites import (
    mark_used,
    new_invite,
    parse_token,
    revoke_invite,
    validate_for_approval,
    validate_for_join,
    verify_token,
)
from .models import (
    EnrollRequest,
    Invite,
    InviteStatus,
    Recipient,
    RecipientStatus,
    RequestStatus,
    utcnow,
)
from .recipients import RecipientRegistry
from .store.base import MetadataStore

logger = logging.getLogger("envlock.enroll")

REQUEST_ID_BYTES = 8
APPROVE_SOURCE = "enroll-approve"


# ---------------------------------------------------------------------------
# Pure state transitions
# ---------------------------------------------------------------------------


def new_join_request(
    existing: Iterable[EnrollRequest],
    invite: Invite,
    device_name: str,
    public_key: str,
    fingerprint: str,
    now: Optional[datetime] = None,
) -> EnrollRequest:
    """Create a pending request for ``invite`` on behalf of a device.

    The invite is re-checked for joinability first; then ``existing``
    is scanned so that neither the invite nor the device has more
    than one outstanding request.

    Args:
        existing: Every request currently in the store.
        invite: The invite named by the joining machine's token.
        device_name: Proposed recipient name.
        public_key: The device's public key.
        fingerprint: Fingerprint of ``public_key``.
        now: Current time; defaults to UTC now.

    Returns:
        A new EnrollRequest in ``pending`` status (not yet persisted).

    Raises:
        ValidationError: Invite id missing.
        InviteExpiredError / InviteUsedError / InviteStatusError: The
            invite cannot be joined.
        StateConflictError: A pending request already exists for this
            invite or this device.
    """
    now = now or utcnow()
    if not invite.id.strip():
        raise ValidationError("invite id is required")
    if invite.is_expired(now):
        raise InviteExpiredError()
    if invite.status == InviteStatus.USED:
        raise InviteUsedError()
    if not invite.status.is_usable:
        raise InviteStatusError(invite.status.value)

    fp = fingerprint.strip()
    for r in existing:
        if r.status != RequestStatus.PENDING:
            continue
        if r.invite_id == invite.id:
            raise StateConflictError(f"pending request already exists for invite {invite.id}")
        if r.fingerprint == fp:
            raise StateConflictError(f"device {r.device_name} already has a pending request")

    request = EnrollRequest(
        version=1,
        id=secrets.token_hex(REQUEST_ID_BYTES),
        invite_id=invite.id,
        status=RequestStatus.PENDING,
        created_at=now,
        device_name=device_name.strip(),
        public_key=public_key.strip(),
        fingerprint=fp,
    )
    logger.info("New enrollment request %s for invite %s (%s)", request.id, invite.id, fp)
    return request


def ensure_pending(request: EnrollRequest) -> None:
    if request.status != RequestStatus.PENDING:
        raise StateConflictError(
            f"request {request.id} is {request.status.value} (expected pending)"
        )


def reject_request(
    request: EnrollRequest,
    reason: str = "",
    now: Optional[datetime] = None,
) -> EnrollRequest:
    """Move a pending request to ``rejected``. Registry and invite are untouched."""
    ensure_pending(request)
    request.status = RequestStatus.REJECTED
    request.decision_at = now or utcnow()
    request.decision_note = reason.strip()
    logger.info("Rejected enrollment request %s", request.id)
    return request


def mark_approved(
    request: EnrollRequest,
    note: str = "",
    now: Optional[datetime] = None,
) -> EnrollRequest:
    ensure_pending(request)
    request.status = RequestStatus.APPROVED
    request.decision_at = now or utcnow()
    request.decision_note = note.strip()
    return request


def sort_requests(requests: Iterable[EnrollRequest]) -> list[EnrollRequest]:
    """Newest first."""
    return sorted(requests, key=lambda r: r.created_at, reverse=True)


def recipient_for(request: EnrollRequest, now: Optional[datetime] = None) -> Recipient:
    """The registry entry an approved request turns into."""
    return Recipient(
        name=request.device_name,
        public_key=request.public_key,
        fingerprint=request.fingerprint,
        created_at=now or utcnow(),
        status=RecipientStatus.ACTIVE,
        source=APPROVE_SOURCE,
        note=f"Added via enrollment request {request.id}",
    )


# ---------------------------------------------------------------------------
# Approval saga
# ---------------------------------------------------------------------------


class ApprovalStep(str, Enum):
    """The steps of an approval, in execution order."""

    VALIDATE = "validate"
    WRITE_RECIPIENTS = "write_recipients"
    WRITE_REQUEST = "write_request"
    WRITE_INVITE = "write_invite"


class ApprovalResult(NamedTuple):
    request: EnrollRequest
    invite: Invite
    registry: RecipientRegistry
    recipient_existed: bool


class ApprovalSaga:
    """Approve one enrollment request against a metadata store.

    Steps, each recorded in ``completed`` once done:

        validate          request pending, invite not used or revoked,
                          recipient added (a duplicate is tolerated)
        write_recipients  registry persisted
        write_request     request marked approved and persisted
        write_invite      invite marked used and persisted

    A StoreError in any write step is re-raised as
    ApprovalIncompleteError naming the step; validation failures
    propagate unchanged since nothing has been written yet.

    Args:
        store: The project metadata store.
        request_id: Request to approve.
        note: Optional decision note.
        now: Decision time; defaults to UTC now.
    """

    def __init__(
        self,
        store: MetadataStore,
        request_id: str,
        note: str = "",
        now: Optional[datetime] = None,
    ) -> None:
        self.store = store
        self.request_id = request_id.strip()
        self.note = note
        self.now = now or utcnow()
        self.completed: list[ApprovalStep] = []

    def run(self) -> ApprovalResult:
        request = self.store.load_request(self.request_id)
        ensure_pending(request)

        invite = self.store.load_invite(request.invite_id)
        validate_for_approval(invite)

        registry = self.store.load_recipients()
        existed = False
        try:
            registry.add(recipient_for(request, self.now))
        except DuplicateError as exc:
            existed = True
            logger.warning("Approving %s: recipient already present (%s)", request.id, exc)
        self.completed.append(ApprovalStep.VALIDATE)

        self._write(ApprovalStep.WRITE_RECIPIENTS, self.store.write_recipients, registry)

        mark_approved(request, self.note, self.now)
        self._write(ApprovalStep.WRITE_REQUEST, self.store.save_request, request)

        mark_used(invite, request.id, self.now)
        self._write(ApprovalStep.WRITE_INVITE, self.store.save_invite, invite)

        logger.info("Approved enrollment request %s (%s)", request.id, request.fingerprint)
        return ApprovalResult(request, invite, registry, existed)

    def _write(self, step: ApprovalStep, fn, record) -> None:
        try:
            fn(record)
        except StoreError as exc:
            raise ApprovalIncompleteError(
                self.request_id,
                step.value,
                [s.value for s in self.completed],
                cause=exc,
            ) from exc
        self.completed.append(step)


def approve_request(
    store: MetadataStore,
    request_id: str,
    note: str = "",
    now: Optional[datetime] = None,
) -> ApprovalResult:
    """Approve ``request_id``; see :class:`ApprovalSaga`."""
    return ApprovalSaga(store, request_id, note=note, now=now).run()


# ---------------------------------------------------------------------------
# Store-backed operations used by the CLI
# ---------------------------------------------------------------------------


def create_invite(
    store: MetadataStore,
    ttl: timedelta,
    created_by: str = "",
    now: Optional[datetime] = None,
) -> tuple[Invite, str]:
    """Mint an invite, persist it, and return it with its token."""
    invite, token = new_invite(ttl, created_by, now=now)
    store.save_invite(invite)
    return invite, token


def submit_join_request(
    store: MetadataStore,
    token: str,
    device_name: str,
    public_key: str,
    fingerprint: str,
    now: Optional[datetime] = None,
) -> EnrollRequest:
    """Validate ``token`` against the stored invite and file a pending request."""
    now = now or utcnow()
    invite_id, _ = parse_token(token)
    invite = store.load_invite(invite_id)
    verify_token(invite, token)
    validate_for_join(invite, now)

    request = new_join_request(
        store.list_requests(), invite, device_name, public_key, fingerprint, now=now
    )
    store.save_request(request)
    return request


def withdraw_invite(store: MetadataStore, invite_id: str) -> Invite:
    """Revoke a stored invite so its token can no longer be used to join."""
    invite = store.load_invite(invite_id.strip())
    if invite.status == InviteStatus.REVOKED:
        return invite
    revoke_invite(invite)
    store.save_invite(invite)
    return invite


def reject(store: MetadataStore, request_id: str, reason: str = "") -> EnrollRequest:
    request = store.load_request(request_id.strip())
    reject_request(request, reason)
    store.save_request(request)
    return request


def pending_requests(store: MetadataStore) -> list[EnrollRequest]:
    return [r for r in sort_requests(store.list_requests()) if r.is_pending]
