"""Setup commands: init, status, audit, project init, project show."""

from __future__ import annotations

from pathlib import Path

import click
from rich.markup import escape
from rich.table import Table

from ._common import (
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
    reports_errors,
)

INIT_SOURCE = "local-init"


def register_setup_commands(main: click.Group) -> None:
    """Register init, status, audit, and the project group."""

    @main.command()
    @home_option
    @key_name_option
    @click.option("--name", "device_name", default="", help="Device name (default: hostname).")
    @click.option("--force", is_flag=True, help="Overwrite an existing key.")
    @reports_errors
    def init(home, key_name, device_name, force):
        """Generate this machine's device keypair."""
        from ..keys import default_key_path, generate_identity, write_identity

        path = default_key_path(home_path(home), key_name)
        identity = generate_identity(device_name.strip() or default_device_name())
        write_identity(path, identity, force=force)

        console.print(f"Created local device key: {escape(str(path))}")
        console.print(f"Device name: [bold]{escape(identity.device_name)}[/]")
        click.echo(f"Public key: {identity.public_key}")
        console.print(f"Fingerprint: [cyan]{identity.fingerprint}[/]")

    @main.command()
    @home_option
    @key_name_option
    @reports_errors
    def status(home, key_name):
        """Show the local key and the project in this directory."""
        from ..config import ProjectNotFoundError, find_project, open_store
        from ..keys import KeyFileError, default_key_path

        key_path = default_key_path(home_path(home), key_name)
        console.print(f"Key path: {escape(str(key_path))}")
        try:
            identity = load_local_identity(home, key_name)
        except KeyFileError:
            identity = None
            console.print("Local key: [yellow]missing[/] (run `envlock init`)")
        else:
            console.print("Local key: [green]present[/]")
            if identity.device_name:
                console.print(f"Device name: {escape(identity.device_name)}")
            click.echo(f"Public key: {identity.public_key}")
            console.print(f"Fingerprint: {identity.fingerprint}")

        try:
            project, root = find_project()
        except ProjectNotFoundError:
            console.print("Project config: not found in current directory")
            return

        store = open_store(project, root)
        console.print(f"App: [bold]{escape(project.app_name)}[/]")
        console.print(f"Store: {escape(store.description)}")
        registry = store.load_recipients()
        pending = [r for r in store.list_requests() if r.is_pending]
        console.print(
            f"Recipients: {registry.active_count()} active / {len(registry.recipients)} total"
        )
        console.print(f"Pending requests: {len(pending)}")
        if identity is not None:
            me = registry.find(identity.fingerprint)
            if me is None:
                console.print("This device: not a recipient")
            else:
                console.print(f"This device: {escape(me.name)} ({me.status.value})")

    @main.command()
    @home_option
    @click.option("--event", "event_name", default="", help="Only this event type.")
    @click.option("--app", default=None, help="Only events for this app.")
    @click.option("--limit", default=0, type=int, help="Show the last N entries.")
    @json_option
    @reports_errors
    def audit(home, event_name, app, limit, json_out):
        """Show this machine's audit log."""
        from ..audit import AuditEvent, read_audit_log

        event = None
        if event_name:
            try:
                event = AuditEvent(event_name.strip().upper())
            except ValueError:
                fail(f"unknown audit event: {event_name}")
        entries = read_audit_log(home_path(home), limit=limit, event=event, app=app)

        if json_out:
            echo_json([e.model_dump(mode="json") for e in entries])
            return

        if not entries:
            console.print("No audit entries")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 1))
        table.add_column("Time", style="dim", no_wrap=True)
        table.add_column("Event", style="bold cyan")
        table.add_column("App")
        table.add_column("Detail")
        for e in entries:
            table.add_row(fmt_time(e.timestamp), e.event_type.value, escape(e.app or "-"),
                          escape(e.detail))
        console.print(table)

    @main.group()
    def project():
        """Project configuration (.envlock/project.yaml)."""

    @project.command("init")
    @home_option
    @key_name_option
    @click.option("--app", default="", help="App name (default: directory name).")
    @click.option("--backend", type=click.Choice(["s3", "local"]), default="s3", show_default=True)
    @click.option("--bucket", default="", help="Bucket name (s3 backend).")
    @click.option("--prefix", default="", help="Key prefix (default: envlock/<app>).")
    @click.option("--endpoint", default="", help="S3 endpoint URL.")
    @click.option("--path", "store_path", default="", help="Store directory (local backend).")
    @click.option("--name", "device_name", default="", help="Recipient name for this machine.")
    @click.option("--force", is_flag=True, help="Overwrite an existing project config.")
    @reports_errors
    def project_init(home, key_name, app, backend, bucket, prefix, endpoint, store_path,
                     device_name, force):
        """Create the project config and enroll this machine as the first recipient."""
        from ..audit import AuditEvent, audit_event
        from ..config import normalize_project, open_store, project_file_path, write_project
        from ..errors import DuplicateError
        from ..models import BackendType, ProjectConfig, Recipient

        root = Path.cwd()
        cfg_path = project_file_path(root)
        if cfg_path.exists() and not force:
            fail(f"project config already exists at {cfg_path} (use --force to overwrite)")

        identity = load_local_identity(home, key_name)
        project_cfg = normalize_project(ProjectConfig(
            app_name=app.strip() or root.name,
            backend=BackendType(backend),
            bucket=bucket.strip(),
            prefix=prefix,
            endpoint=endpoint.strip(),
            path=Path(store_path) if store_path.strip() else None,
        ))

        # project.yaml is written only once the registry is in place
        store = open_store(project_cfg, root)
        registry = store.load_recipients()
        name = device_name.strip() or identity.device_name or default_device_name()
        added = True
        try:
            registry.add(Recipient(
                name=name,
                public_key=identity.public_key,
                fingerprint=identity.fingerprint,
                source=INIT_SOURCE,
                note="Added by project init",
            ))
        except DuplicateError:
            added = False
        else:
            store.write_recipients(registry)
        write_project(cfg_path, project_cfg)

        console.print(f"Project initialized: {escape(str(cfg_path))}")
        console.print(f"Store: {escape(store.description)}")
        if added:
            console.print(
                f"Added local device recipient: {escape(name)} ({identity.fingerprint})"
            )
        else:
            console.print(f"Local device already a recipient ({identity.fingerprint})")

        audit_event(
            home_path(home), AuditEvent.PROJECT_INIT,
            f"Project {project_cfg.app_name} initialized at {root}",
            app=project_cfg.app_name, backend=project_cfg.backend.value,
            prefix=project_cfg.prefix,
        )

    @project.command("show")
    @json_option
    @reports_errors
    def project_show(json_out):
        """Show the project config for this directory."""
        from ..config import find_project, project_file_path

        project_cfg, root = find_project()
        if json_out:
            echo_json(project_cfg.model_dump(mode="json", exclude_none=True))
            return

        console.print(f"Project file: {escape(str(project_file_path(root)))}")
        console.print(f"Version: {project_cfg.version}")
        console.print(f"App: [bold]{escape(project_cfg.app_name)}[/]")
        console.print(f"Backend: {project_cfg.backend.value}")
        if project_cfg.bucket:
            console.print(f"Bucket: {escape(project_cfg.bucket)}")
        if project_cfg.path is not None:
            console.print(f"Path: {escape(str(project_cfg.path))}")
        console.print(f"Prefix: {escape(project_cfg.prefix)}")
        if project_cfg.endpoint:
            console.print(f"Endpoint: {escape(project_cfg.endpoint)}")
