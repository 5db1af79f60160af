"""Recipient commands: list, add, remove."""

from __future__ import annotations

import click
from rich.markup import escape
from rich.table import Table

from ._common import (
    console,
    echo_json,
    fmt_time,
    home_option,
    home_path,
    json_option,
    load_project_store,
    reports_errors,
)

MANUAL_SOURCE = "manual"


def _status_cell(recipient) -> str:
    if recipient.is_active:
        return "[green]active[/]"
    return "[red]revoked[/]"


def _label(recipient) -> str:
    return f'"{escape(recipient.name)}" ({escape(recipient.fingerprint)})'


def register_recipients_commands(main: click.Group) -> None:
    """Register the recipients command group."""

    @main.group()
    def recipients():
        """The project's recipient set.

        Every active recipient can decrypt secrets encrypted from now
        on. Machines normally join through invites; ``add`` is the
        manual fallback.
        """

    @recipients.command("list")
    @click.option("--all", "show_all", is_flag=True, help="Include revoked recipients.")
    @json_option
    @reports_errors
    def recipients_list(show_all, json_out):
        """List recipients."""
        _, _, store = load_project_store()
        registry = store.load_recipients()
        rows = registry.listing(include_revoked=show_all)

        if json_out:
            echo_json([r.model_dump(mode="json", exclude_none=True) for r in rows])
            return

        if not rows:
            console.print("No recipients")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 1))
        table.add_column("Name", style="bold")
        table.add_column("Fingerprint", style="cyan")
        table.add_column("Status")
        table.add_column("Source")
        table.add_column("Created", style="dim")
        for r in rows:
            table.add_row(escape(r.name), escape(r.fingerprint), _status_cell(r),
                          escape(r.source or "-"), fmt_time(r.created_at))
        console.print(table)
        console.print(
            f"\n  {registry.active_count()} active / {len(registry.recipients)} total"
        )

    @recipients.command("add")
    @click.argument("name")
    @click.argument("public_key")
    @click.option("--note", default="", help="Free-form note.")
    @home_option
    @reports_errors
    def recipients_add(name, public_key, note, home):
        """Add a recipient by public key."""
        from ..audit import AuditEvent, audit_event
        from ..keys import fingerprint, validate_public_key
        from ..models import Recipient

        validate_public_key(public_key)
        fp = fingerprint(public_key)

        project, _, store = load_project_store()
        registry = store.load_recipients()
        added = registry.add(Recipient(
            name=name, public_key=public_key, fingerprint=fp,
            source=MANUAL_SOURCE, note=note,
        ))
        store.write_recipients(registry)

        audit_event(home_path(home), AuditEvent.RECIPIENT_ADD, f"Added recipient {added.name}",
                    app=project.app_name, fingerprint=added.fingerprint, source=MANUAL_SOURCE)
        console.print(f"Added recipient {_label(added)}")

    @recipients.command("remove")
    @click.argument("query")
    @click.option("--hard", is_flag=True, help="Delete the entry instead of revoking it.")
    @home_option
    @reports_errors
    def recipients_remove(query, hard, home):
        """Revoke (or with --hard, delete) a recipient by name or fingerprint."""
        from ..audit import AuditEvent, audit_event
        from ..errors import RecipientNotFoundError

        project, _, store = load_project_store()
        registry = store.load_recipients()
        target = registry.find(query)
        if target is None:
            raise RecipientNotFoundError(query)

        if hard:
            registry.delete(target.fingerprint)
            store.write_recipients(registry)
            audit_event(home_path(home), AuditEvent.RECIPIENT_DELETE,
                        f"Deleted recipient {target.name}",
                        app=project.app_name, fingerprint=target.fingerprint)
            console.print(f"Deleted recipient {_label(target)}")
            return

        if not target.is_active:
            console.print(f"Recipient {_label(target)} is already revoked")
            return

        registry.revoke(target.fingerprint)
        store.write_recipients(registry)
        audit_event(home_path(home), AuditEvent.RECIPIENT_REVOKE,
                    f"Revoked recipient {target.name}",
                    app=project.app_name, fingerprint=target.fingerprint)
        console.print(f"Revoked recipient {_label(target)}")
        console.print("Note: existing encrypted blobs remain decryptable until rekeyed.")
