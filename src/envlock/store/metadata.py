"""
MetadataStore over any ObjectStore.

Key layout under the project prefix::

    <prefix>/_envlock/recipients.json
    <prefix>/_envlock/enroll/invites/<id>.json
    <prefix>/_envlock/enroll/requests/<id>.json
"""

from __future__ import annotations

import logging
from typing import Optional, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from ..errors import (
    InviteNotFoundError,
    ObjectNotFoundError,
    RequestNotFoundError,
    StoreError,
    ValidationError,
)
from ..models import EnrollRequest, Invite, VersionedRecord
from ..recipients import RecipientRegistry
from .base import MetadataStore, ObjectStore

logger = logging.getLogger("envlock.store.metadata")

M = TypeVar("M", bound=BaseModel)


class ObjectMetadataStore(MetadataStore):
    """Typed enrollment metadata stored as JSON objects.

    Args:
        objects: The blob backend.
        prefix: Project prefix, e.g. ``envlock/myapp``.
        conditional: When True, every save is conditional on the
            object being unchanged since this store last read it
            (or absent, if it never read it). Off by default, so
            concurrent writers silently last-write-win.
    """

    def __init__(self, objects: ObjectStore, prefix: str, conditional: bool = False) -> None:
        pfx = prefix.strip().strip("/")
        if not pfx:
            raise ValidationError("project prefix is required")
        self.objects = objects
        self.prefix = pfx
        self.conditional = conditional
        self._etags: dict[str, str] = {}

    @property
    def description(self) -> str:
        return f"{self.objects.name} ({self.prefix})"

    # -- keys --------------------------------------------------------------

    def recipients_key(self) -> str:
        return f"{self.prefix}/_envlock/recipients.json"

    def invites_prefix(self) -> str:
        return f"{self.prefix}/_envlock/enroll/invites/"

    def requests_prefix(self) -> str:
        return f"{self.prefix}/_envlock/enroll/requests/"

    def invite_key(self, invite_id: str) -> str:
        return f"{self.invites_prefix()}{invite_id.strip()}.json"

    def request_key(self, request_id: str) -> str:
        return f"{self.requests_prefix()}{request_id.strip()}.json"

    # -- recipients --------------------------------------------------------

    def load_recipients(self) -> RecipientRegistry:
        try:
            return self._get(self.recipients_key(), RecipientRegistry)
        except ObjectNotFoundError:
            return RecipientRegistry.empty()

    def write_recipients(self, registry: RecipientRegistry) -> None:
        self._put(self.recipients_key(), registry)

    # -- invites -----------------------------------------------------------

    def save_invite(self, invite: Invite) -> None:
        self._put(self.invite_key(invite.id), invite)

    def load_invite(self, invite_id: str) -> Invite:
        try:
            return self._get(self.invite_key(invite_id), Invite)
        except ObjectNotFoundError:
            raise InviteNotFoundError(invite_id) from None

    def list_invites(self) -> list[Invite]:
        invites = self._list(self.invites_prefix(), Invite)
        return sorted(invites, key=lambda i: i.created_at, reverse=True)

    # -- requests ----------------------------------------------------------

    def save_request(self, request: EnrollRequest) -> None:
        self._put(self.request_key(request.id), request)

    def load_request(self, request_id: str) -> EnrollRequest:
        try:
            return self._get(self.request_key(request_id), EnrollRequest)
        except ObjectNotFoundError:
            raise RequestNotFoundError(request_id) from None

    def list_requests(self) -> list[EnrollRequest]:
        requests = self._list(self.requests_prefix(), EnrollRequest)
        return sorted(requests, key=lambda r: r.created_at, reverse=True)

    # -- helpers -----------------------------------------------------------

    def _get(self, key: str, model: Type[M]) -> M:
        obj = self.objects.get(key)
        self._etags[key] = obj.etag
        try:
            return model.model_validate_json(obj.data)
        except ModelValidationError as exc:
            raise StoreError(f"decode {key}: {exc}") from exc

    def _put(self, key: str, record: VersionedRecord) -> None:
        data = record.to_json().encode("utf-8")
        if_match: Optional[str] = None
        if_none_match = False
        if self.conditional:
            if_match = self._etags.get(key)
            if_none_match = if_match is None
        etag = self.objects.put(key, data, if_match=if_match, if_none_match=if_none_match)
        self._etags[key] = etag
        logger.debug("Wrote %s (%d bytes)", key, len(data))

    def _list(self, prefix: str, model: Type[M]) -> list[M]:
        out = []
        for key in self.objects.list_keys(prefix):
            if not key.endswith(".json"):
                continue
            try:
                obj = self.objects.get(key)
            except ObjectNotFoundError:
                continue
            try:
                out.append(model.model_validate_json(obj.data))
            except ModelValidationError:
                logger.warning("Skipping unreadable record %s", key)
                continue
            self._etags[key] = obj.etag
        return out
