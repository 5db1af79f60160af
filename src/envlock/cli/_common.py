"""Shared utilities for all CLI command modules.

Provides the Rich consoles, error reporting, duration parsing, and
the project/identity loaders every command group needs.
"""

from __future__ import annotations

import functools
import json
import re
import socket
import sys
from datetime import datetime, timedelta
from pathlib import Path
from typing import NoReturn, Optional

import click
from rich.console import Console
from rich.markup import escape

from .. import ENVLOCK_HOME
from ..config import find_project, open_store
from ..errors import EnvlockError
from ..keys import DEFAULT_PROFILE, DeviceIdentity, default_key_path, load_identity
from ..models import ProjectConfig
from ..store import MetadataStore

console = Console(soft_wrap=True)
err_console = Console(stderr=True, soft_wrap=True)


def fail(message: str) -> NoReturn:
    """Print ``Error: <message>`` on stderr and exit 1."""
    err_console.print(f"[bold red]Error:[/] {escape(message)}")
    sys.exit(1)


def reports_errors(fn):
    """Turn any EnvlockError raised by a command into a one-line failure."""

    @functools.wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except EnvlockError as exc:
            fail(str(exc))

    return wrapper


home_option = click.option(
    "--home", default=ENVLOCK_HOME, type=click.Path(), help="envlock home directory."
)
key_name_option = click.option(
    "--key-name", default=DEFAULT_PROFILE, show_default=True, help="Local key profile name."
)
json_option = click.option("--json-out", is_flag=True, help="Output as JSON.")


def home_path(home: str) -> Path:
    return Path(home).expanduser()


def default_device_name() -> str:
    return socket.gethostname().split(".")[0] or "device"


def load_local_identity(home: str, key_name: str) -> DeviceIdentity:
    return load_identity(default_key_path(home_path(home), key_name))


def load_project_store() -> tuple[ProjectConfig, Path, MetadataStore]:
    """Project config of the working directory plus its metadata store."""
    project, root = find_project()
    return project, root, open_store(project, root)


def fmt_time(value: Optional[datetime]) -> str:
    if value is None:
        return "-"
    return value.strftime("%Y-%m-%d %H:%M")


def echo_json(data) -> None:
    click.echo(json.dumps(data, indent=2, default=str))


_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


class Duration(click.ParamType):
    """A duration such as ``15m``, ``1h30m`` or ``90s``."""

    name = "duration"

    def convert(self, value, param, ctx):
        if isinstance(value, timedelta):
            return value
        text = str(value).strip().lower()
        if text == "0":
            return timedelta(0)
        pos = 0
        seconds = 0.0
        for m in _DURATION_PART.finditer(text):
            if m.start() != pos:
                break
            seconds += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
            pos = m.end()
        if pos == 0 or pos != len(text):
            self.fail(f"{value!r} is not a valid duration (e.g. 15m, 1h30m, 90s)", param, ctx)
        return timedelta(seconds=seconds)


DURATION = Duration()
