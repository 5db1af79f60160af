"""Alias groups: ``devices`` and ``enroll``.

Both reuse the command objects registered under ``recipients``,
``invite`` and ``requests``.
"""

from __future__ import annotations

import click


def register_alias_commands(main: click.Group) -> None:
    """Register devices and enroll as aliases of existing commands."""
    recipients = main.commands["recipients"]
    invite = main.commands["invite"]
    requests = main.commands["requests"]

    @main.group()
    def devices():
        """Enrolled devices (alias of recipients)."""

    devices.add_command(recipients.commands["list"], "ls")
    devices.add_command(recipients.commands["remove"], "revoke")
    devices.add_command(recipients.commands["add"], "add")

    @main.group()
    def enroll():
        """Device enrollment (alias of invite and requests)."""

    enroll.add_command(invite.commands["create"], "invite")
    enroll.add_command(invite.commands["join"], "join")
    enroll.add_command(requests.commands["ls"], "list")
    enroll.add_command(requests.commands["approve"], "approve")
    enroll.add_command(requests.commands["reject"], "reject")
