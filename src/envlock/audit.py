"""
Local audit trail of enrollment decisions.

Each invite, join, approval, rejection and recipient change made from
this machine is appended to ``<home>/audit.log`` as one JSON object per
line. Entries name the project they touched, so one log can serve every
project the machine works on.
"""

from __future__ import annotations

import json
import socket
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field
from pydantic import ValidationError as ModelValidationError

from .models import utcnow

AUDIT_LOG_NAME = "audit.log"


class AuditEvent(str, Enum):
    """What happened."""

    PROJECT_INIT = "PROJECT_INIT"
    INVITE_CREATE = "INVITE_CREATE"
    INVITE_REVOKE = "INVITE_REVOKE"
    ENROLL_JOIN = "ENROLL_JOIN"
    ENROLL_APPROVE = "ENROLL_APPROVE"
    ENROLL_REJECT = "ENROLL_REJECT"
    RECIPIENT_ADD = "RECIPIENT_ADD"
    RECIPIENT_REVOKE = "RECIPIENT_REVOKE"
    RECIPIENT_DELETE = "RECIPIENT_DELETE"
    # a line that could not be read back
    UNPARSED = "UNPARSED"


class AuditEntry(BaseModel):
    """A single audit log line."""

    timestamp: datetime = Field(default_factory=utcnow)
    event_type: AuditEvent
    app: str = ""
    detail: str
    host: str = Field(default_factory=socket.gethostname)
    ids: dict[str, str] = Field(default_factory=dict)


def audit_event(
    home: Path,
    event: AuditEvent,
    detail: str,
    app: str = "",
    **ids: Optional[str],
) -> AuditEntry:
    """Append an event to the audit log.

    Keyword arguments become the entry's ``ids`` (request_id, invite_id,
    fingerprint, ...); ``None`` values are left out.
    """
    home = Path(home)
    home.mkdir(parents=True, exist_ok=True)
    entry = AuditEntry(
        event_type=event,
        app=app,
        detail=detail,
        ids={k: str(v) for k, v in ids.items() if v is not None},
    )
    with (home / AUDIT_LOG_NAME).open("a", encoding="utf-8") as f:
        f.write(entry.model_dump_json() + "\n")
    return entry


def read_audit_log(
    home: Path,
    limit: int = 0,
    event: Optional[AuditEvent] = None,
    app: Optional[str] = None,
) -> list[AuditEntry]:
    """Parsed entries, oldest first.

    ``event`` and ``app`` filter the entries; ``limit`` then keeps the
    last N. Lines that do not parse come back as ``UNPARSED`` entries
    carrying the raw text, and are only dropped by a filter.
    """
    path = Path(home) / AUDIT_LOG_NAME
    if not path.exists():
        return []

    entries: list[AuditEntry] = []
    for line in path.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            entry = AuditEntry.model_validate(json.loads(line))
        except (json.JSONDecodeError, ModelValidationError):
            entry = AuditEntry(event_type=AuditEvent.UNPARSED, detail=line)
        if event is not None and entry.event_type != event:
            continue
        if app is not None and entry.app != app:
            continue
        entries.append(entry)

    if limit > 0:
        entries = entries[-limit:]
    return entries
