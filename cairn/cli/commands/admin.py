"""Administrative commands: init, settings, purge.

These talk to the storage layer directly. ``purge`` is the only way to hard
delete a project; the guarded API can only soft delete.
"""

import logging
import sys

from cairn import Cairn
from cairn.cli.commands.helpers import print_json, validate_input
from cairn.storage.schema import DEFAULT_SETTINGS
from cairn.validation import normalize_project_name

logger = logging.getLogger(__name__)


def cmd_init(args, c: Cairn):
    """Bring the database up to date and show what it holds."""
    print("=" * 40)
    print(f"  Cairn store: {c.storage.db_path}")
    print("=" * 40)
    for table, count in c.storage.table_counts().items():
        print(f"  {table:<18} {count}")
    print()
    print("Schema is up to date.")


def cmd_settings(args, c: Cairn):
    """Handle settings subcommands."""
    if args.settings_action == "list":
        settings = c.storage.get_all_settings()
        if args.json:
            print_json(settings)
            return
        for key, value in settings.items():
            print(f"{key} = {value}")

    elif args.settings_action == "get":
        value = c.storage.get_setting(args.key)
        if value is None:
            print(f"Setting '{args.key}' is not set.")
            sys.exit(1)
        print(value)

    elif args.settings_action == "set":
        key = validate_input(args.key, "key", 100)
        value = validate_input(args.value, "value", 1000)
        if key not in dict(DEFAULT_SETTINGS):
            logger.warning(f"Setting unknown key '{key}'")
        c.storage.set_setting(key, value)
        print(f"{key} = {value}")


def cmd_purge(args, c: Cairn):
    """Hard delete a project with all of its memories and tasks."""
    name = normalize_project_name(args.name)
    project = c.storage.get_project_by_name(name)
    if project is None:
        print(f'Project "{name}" not found.')
        sys.exit(1)

    if not args.yes:
        memories = c.storage.count_memories(project.id)
        try:
            answer = input(
                f'Permanently delete project "{name}" [{project.ref}] '
                f"with {memories} visible memories and all tasks? [y/N]: "
            )
        except (EOFError, KeyboardInterrupt):
            print("\nAborted.")
            return
        if answer.strip().lower() not in ("y", "yes"):
            print("Aborted.")
            return

    counts = c.storage.purge_project(project.id)
    print(
        f'Purged project "{name}": {counts["memories"]} memories, {counts["tasks"]} tasks removed.'
    )
