"""Invite commands: create, join, ls, revoke."""

from __future__ import annotations

import click
from rich.markup import escape
from rich.table import Table

from ._common import (
    DURATION,
    console,
    default_device_name,
    echo_json,
    fail,
    fmt_time,
    home_option,
    home_path,
    json_option,
    key_name_option,
    load_local_identity,
    load_project_store,
    reports_errors,
)


def register_invite_commands(main: click.Group) -> None:
    """Register the invite command group."""

    @main.group()
    def invite():
        """One-time invites for enrolling new machines.

        A trusted machine creates an invite and hands the token to the
        new machine, which joins with it and waits for approval.
        """

    @invite.command("create")
    @home_option
    @key_name_option
    @click.option("--ttl", type=DURATION, default="15m", show_default=True,
                  help="How long the token stays valid.")
    @json_option
    @reports_errors
    def invite_create(home, key_name, ttl, json_out):
        """Create an invite token for a new machine."""
        from ..audit import AuditEvent, audit_event
        from ..enroll import create_invite
        from ..keys import KeyFileError

        try:
            created_by = load_local_identity(home, key_name).device_name
        except KeyFileError:
            created_by = ""
        created_by = created_by or default_device_name()

        project, _, store = load_project_store()
        inv, token = create_invite(store, ttl, created_by)
        audit_event(
            home_path(home), AuditEvent.INVITE_CREATE, f"Invite {inv.id} created by {created_by}",
            app=project.app_name, invite_id=inv.id, expires_at=inv.expires_at.isoformat(),
        )

        if json_out:
            echo_json({"invite_id": inv.id, "token": token,
                       "expires_at": inv.expires_at.isoformat()})
            return

        console.print(f"Created invite: [cyan]{inv.id}[/]")
        console.print(f"Expires at: {fmt_time(inv.expires_at)} UTC")
        click.echo(f"Invite token (share with new machine): {token}")
        console.print("[dim]On the new machine run: envlock invite join <token>[/]")

    @invite.command("join")
    @click.argument("value", required=False, default="")
    @click.option("--token", default="", help="Invite token or URL.")
    @click.option("--name", "device_name", default="", help="Device name to enroll under.")
    @home_option
    @key_name_option
    @reports_errors
    def invite_join(value, token, device_name, home, key_name):
        """Request enrollment using an invite token or URL."""
        from ..audit import AuditEvent, audit_event
        from ..enroll import submit_join_request
        from ..invites import extract_token

        raw = token.strip() or value.strip()
        if not raw:
            fail("invite token is required")
        resolved = extract_token(raw)

        identity = load_local_identity(home, key_name)
        name = device_name.strip() or identity.device_name or default_device_name()

        project, _, store = load_project_store()
        request = submit_join_request(
            store, resolved, name, identity.public_key, identity.fingerprint
        )
        audit_event(
            home_path(home), AuditEvent.ENROLL_JOIN, f"Enrollment request {request.id} for {name}",
            app=project.app_name, request_id=request.id, invite_id=request.invite_id,
            fingerprint=request.fingerprint,
        )

        console.print(f"Created enrollment request: [cyan]{request.id}[/]")
        console.print(f"Device: {escape(request.device_name)} ({escape(request.fingerprint)})")
        console.print(f"Ask a trusted machine to run: envlock requests approve {request.id}")

    @invite.command("ls")
    @click.option("--all", "show_all", is_flag=True, help="Include used, revoked and expired.")
    @json_option
    @reports_errors
    def invite_ls(show_all, json_out):
        """List invites."""
        from ..models import utcnow

        _, _, store = load_project_store()
        now = utcnow()
        invites = store.list_invites()
        if not show_all:
            invites = [i for i in invites if i.status.is_usable and not i.is_expired(now)]

        if json_out:
            echo_json([i.model_dump(mode="json", exclude={"secret_hash"}) for i in invites])
            return

        if not invites:
            console.print("No invites" if show_all else "No active invites")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 1))
        table.add_column("ID", style="cyan")
        table.add_column("Status")
        table.add_column("Expires", style="dim")
        table.add_column("Created by")
        table.add_column("Request")
        for i in invites:
            status = i.status.value or "active"
            if i.status.is_usable and i.is_expired(now):
                status = "expired"
            table.add_row(escape(i.id), status, fmt_time(i.expires_at), escape(i.created_by),
                          escape(i.used_by_request_id or "-"))
        console.print(table)

    @invite.command("revoke")
    @click.argument("invite_id")
    @home_option
    @reports_errors
    def invite_revoke(invite_id, home):
        """Revoke an unused invite."""
        from ..audit import AuditEvent, audit_event
        from ..enroll import withdraw_invite

        project, _, store = load_project_store()
        inv = withdraw_invite(store, invite_id)
        audit_event(home_path(home), AuditEvent.INVITE_REVOKE, f"Invite {inv.id} revoked",
                    app=project.app_name, invite_id=inv.id)
        console.print(f"Revoked invite {escape(inv.id)}")
