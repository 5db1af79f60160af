"""Enrollment request commands: ls, approve, reject."""

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


def register_requests_commands(main: click.Group) -> None:
    """Register the requests command group."""

    @main.group()
    def requests():
        """Review enrollment requests from joining machines."""

    @requests.command("ls")
    @click.option("--all", "show_all", is_flag=True, help="Include decided requests.")
    @json_option
    @reports_errors
    def requests_ls(show_all, json_out):
        """List enrollment requests (pending only by default)."""
        from ..enroll import pending_requests, sort_requests

        _, _, store = load_project_store()
        reqs = sort_requests(store.list_requests()) if show_all else pending_requests(store)

        if json_out:
            echo_json([r.model_dump(mode="json", exclude_none=True) for r in reqs])
            return

        if not reqs:
            console.print("No enrollment requests" if show_all else "No pending enrollment requests")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 1))
        table.add_column("ID", style="cyan")
        table.add_column("Status")
        table.add_column("Device", style="bold")
        table.add_column("Fingerprint")
        table.add_column("Created", style="dim")
        for r in reqs:
            table.add_row(escape(r.id), r.status.value, escape(r.device_name),
                          escape(r.fingerprint), fmt_time(r.created_at))
        console.print(table)

    @requests.command("approve")
    @click.argument("request_id")
    @click.option("--note", default="", help="Optional approval note.")
    @home_option
    @reports_errors
    def requests_approve(request_id, note, home):
        """Approve a request and add its device as a recipient."""
        from ..audit import AuditEvent, audit_event
        from ..enroll import approve_request

        project, _, store = load_project_store()
        result = approve_request(store, request_id, note=note)
        req = result.request
        device = f"{escape(req.device_name)} ({escape(req.fingerprint)})"

        audit_event(
            home_path(home), AuditEvent.ENROLL_APPROVE,
            f"Approved request {req.id} for {req.device_name}",
            app=project.app_name, request_id=req.id, invite_id=req.invite_id,
            fingerprint=req.fingerprint,
            recipient_existed=str(result.recipient_existed).lower(),
        )
        if result.recipient_existed:
            console.print(
                f"Approved request {escape(req.id)} (recipient already existed): {device}"
            )
        else:
            console.print(
                f"Approved request {escape(req.id)} and added recipient: {device}"
            )

    @requests.command("reject")
    @click.argument("request_id")
    @click.option("--reason", default="", help="Optional rejection reason.")
    @home_option
    @reports_errors
    def requests_reject(request_id, reason, home):
        """Reject a pending request."""
        from ..audit import AuditEvent, audit_event
        from ..enroll import reject

        project, _, store = load_project_store()
        req = reject(store, request_id, reason)
        audit_event(
            home_path(home), AuditEvent.ENROLL_REJECT,
            f"Rejected request {req.id} for {req.device_name}",
            app=project.app_name, request_id=req.id, fingerprint=req.fingerprint,
        )
        console.print(
            f"Rejected request {escape(req.id)} for "
            f"{escape(req.device_name)} ({escape(req.fingerprint)})"
        )
