"""CLI command modules for Cairn.

Each module contains related command handlers used by __main__.py.
"""

from cairn.cli.commands.admin import cmd_init, cmd_purge, cmd_settings
from cairn.cli.commands.records import cmd_show, cmd_task
from cairn.cli.commands.scope import cmd_enter, cmd_exit, cmd_find, cmd_status

__all__ = [
    "cmd_enter",
    "cmd_exit",
    "cmd_find",
    "cmd_init",
    "cmd_purge",
    "cmd_settings",
    "cmd_show",
    "cmd_status",
    "cmd_task",
]
