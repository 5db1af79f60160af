"""
Error taxonomy for envlock.

Every failure the enrollment core can produce has its own type so the
CLI (or any other caller) can decide what is fatal. The one failure
callers routinely tolerate is DuplicateError from a registry add during
approval or project bootstrap: the recipient is already there.
"""

from __future__ import annotations

from typing import Optional, Sequence


class EnvlockError(Exception):
    """Base class for every error raised by envlock."""


class ValidationError(EnvlockError, ValueError):
    """Bad caller input: empty required field, non-positive TTL, bad key."""


class DuplicateError(EnvlockError):
    """A recipient collides with an existing one by name, key, or fingerprint."""


class NotFoundError(EnvlockError, LookupError):
    """A recipient, invite, request, or stored object does not exist."""


class RecipientNotFoundError(NotFoundError):
    def __init__(self, query: str = "") -> None:
        msg = f"recipient not found: {query}" if query else "recipient not found"
        super().__init__(msg)


class InviteNotFoundError(NotFoundError):
    def __init__(self, invite_id: str = "") -> None:
        msg = f"invite not found: {invite_id}" if invite_id else "invite not found"
        super().__init__(msg)


class RequestNotFoundError(NotFoundError):
    def __init__(self, request_id: str = "") -> None:
        msg = (
            f"enrollment request not found: {request_id}"
            if request_id
            else "enrollment request not found"
        )
        super().__init__(msg)


class InvalidTokenError(EnvlockError, ValueError):
    """The invite token is malformed or does not match the stored invite."""

    def __init__(self, msg: str = "invalid invite token") -> None:
        super().__init__(msg)


class InviteExpiredError(EnvlockError):
    def __init__(self, msg: str = "invite expired") -> None:
        super().__init__(msg)


class InviteUsedError(EnvlockError):
    def __init__(self, msg: str = "invite already used") -> None:
        super().__init__(msg)


class StateConflictError(EnvlockError):
    """An entity is not in the status the requested transition needs."""


class InviteStatusError(StateConflictError):
    """The invite is neither active nor used (e.g. revoked)."""

    def __init__(self, status: str) -> None:
        self.status = status
        super().__init__(f"invite status is {status}")


class StoreError(EnvlockError):
    """Opaque failure surfaced from a storage backend."""


class ObjectNotFoundError(NotFoundError):
    """A key is absent from the object store."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"object not found: {key}")


class PreconditionFailedError(StoreError):
    """A conditional write lost a race with another writer."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"object {key} changed since it was loaded")


class ApprovalIncompleteError(StoreError):
    """An approval stopped between its independent writes.

    Attributes:
        request_id: The request being approved.
        failed_step: Name of the write that failed.
        completed_steps: Steps that finished before the failure.
    """

    def __init__(
        self,
        request_id: str,
        failed_step: str,
        completed_steps: Sequence[str],
        cause: Optional[BaseException] = None,
    ) -> None:
        self.request_id = request_id
        self.failed_step = failed_step
        self.completed_steps = list(completed_steps)
        self.cause = cause
        done = ", ".join(self.completed_steps) or "none"
        hint = _recovery_hint(failed_step)
        super().__init__(
            f"approval of request {request_id} failed at step {failed_step} "
            f"(completed: {done}): {cause}. {hint}"
        )


def _recovery_hint(failed_step: str) -> str:
    if failed_step in ("write_recipients", "write_request"):
        return "Re-run approve; the recipient add is idempotent."
    return (
        "The request is already approved; mark the invite as used by hand "
        "or revoke it."
    )
