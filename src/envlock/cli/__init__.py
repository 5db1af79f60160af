"""
envlock CLI.

Each command group lives in its own module and is attached to the
main group through a ``register_*_commands`` function.

Entry point: envlock.cli:main
"""

from __future__ import annotations

import logging
import sys

import click

from .. import __version__
from ._common import fail


class EnvlockGroup(click.Group):
    """Root group that reports every failure as one line and exit status 1.

    Usage errors (missing arguments, bad option values) and OS errors
    such as an unwritable home directory go through ``fail`` instead of
    click's usage block and status 2.
    """

    def main(self, *args, **kwargs):
        kwargs["standalone_mode"] = False
        try:
            rv = super().main(*args, **kwargs)
        except click.exceptions.NoArgsIsHelpError as exc:
            exc.show()
            sys.exit(0)
        except click.ClickException as exc:
            fail(exc.format_message())
        except click.Abort:
            fail("aborted")
        except OSError as exc:
            fail(str(exc))
        sys.exit(rv if isinstance(rv, int) else 0)


@click.group(cls=EnvlockGroup)
@click.version_option(version=__version__, prog_name="envlock")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
def main(verbose):
    """envlock: share encrypted .env files between trusted machines.

    Machines join a project through a one-time invite and an explicit
    approval on a machine that is already trusted.
    """
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .setup import register_setup_commands
from .invite import register_invite_commands
from .requests_cmd import register_requests_commands
from .recipients import register_recipients_commands
from .aliases import register_alias_commands

register_setup_commands(main)
register_invite_commands(main)
register_requests_commands(main)
register_recipients_commands(main)
register_alias_commands(main)
