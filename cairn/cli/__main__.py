"""
Cairn CLI - administration and inspection of a Cairn store.

Usage:
    cairn [--db PATH] init
    cairn [--db PATH] status [--json]
    cairn [--db PATH] find [QUERY] [--type TYPE] [--json]
    cairn [--db PATH] enter NAME
    cairn [--db PATH] exit
    cairn [--db PATH] show MEMORY_ID [--json]
    cairn [--db PATH] task TASK_ID [--json]
    cairn [--db PATH] settings list [--json]
    cairn [--db PATH] settings get KEY
    cairn [--db PATH] settings set KEY VALUE
    cairn [--db PATH] purge NAME [--yes]
"""

import argparse
import logging
import sys

from cairn import Cairn
from cairn.cli.commands import (
    cmd_enter,
    cmd_exit,
    cmd_find,
    cmd_init,
    cmd_purge,
    cmd_settings,
    cmd_show,
    cmd_status,
    cmd_task,
)
from cairn.cli.commands.helpers import stdin_confirmer
from cairn.logging_config import setup_cairn_logging
from cairn.types import VALID_MEMORY_TYPE_VALUES, MigrationError

# Set up logging
logging.basicConfig(level=logging.WARNING)
logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cairn",
        description="Permissioned knowledge store for agents",
    )
    parser.add_argument("--db", help="Database file (default: $CAIRN_DATA_DIR/cairn.db)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Create or upgrade the store and show table counts")

    p_status = subparsers.add_parser("status", help="Show status for the current scope")
    p_status.add_argument("--json", "-j", action="store_true")

    p_find = subparsers.add_parser("find", help="Search memories")
    p_find.add_argument("query", nargs="?", help="Text to match (omit to list recent)")
    p_find.add_argument("--type", "-t", choices=sorted(VALID_MEMORY_TYPE_VALUES))
    p_find.add_argument("--json", "-j", action="store_true")

    p_enter = subparsers.add_parser("enter", help="Make a project the active scope")
    p_enter.add_argument("name", help="Project name")

    subparsers.add_parser("exit", help="Return to global mode")

    p_show = subparsers.add_parser("show", help="Show one memory")
    p_show.add_argument("memory_id", type=int, help="Memory id (the number in M12)")
    p_show.add_argument("--json", "-j", action="store_true")

    p_task = subparsers.add_parser("task", help="Show one task with its subtasks")
    p_task.add_argument("task_id", type=int, help="Task id (the number in T7)")
    p_task.add_argument("--json", "-j", action="store_true")

    # settings
    p_settings = subparsers.add_parser("settings", help="Inspect or change settings")
    settings_sub = p_settings.add_subparsers(dest="settings_action", required=True)
    s_list = settings_sub.add_parser("list", help="List all settings")
    s_list.add_argument("--json", "-j", action="store_true")
    s_get = settings_sub.add_parser("get", help="Show one setting")
    s_get.add_argument("key")
    s_set = settings_sub.add_parser("set", help="Change one setting")
    s_set.add_argument("key")
    s_set.add_argument("value")

    p_purge = subparsers.add_parser(
        "purge", help="Permanently delete a project with its memories and tasks"
    )
    p_purge.add_argument("name", help="Project name")
    p_purge.add_argument("--yes", "-y", action="store_true", help="Skip confirmation prompt")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_cairn_logging()

    # Open the store; a failed migration is fatal
    try:
        c = Cairn(db_path=args.db, confirm=stdin_confirmer)
    except MigrationError as e:
        logger.error(f"Failed to open Cairn store: {e}")
        sys.exit(1)

    # Dispatch with error handling
    try:
        if args.command == "init":
            cmd_init(args, c)
        elif args.command == "status":
            cmd_status(args, c)
        elif args.command == "find":
            cmd_find(args, c)
        elif args.command == "enter":
            cmd_enter(args, c)
        elif args.command == "exit":
            cmd_exit(args, c)
        elif args.command == "show":
            cmd_show(args, c)
        elif args.command == "task":
            cmd_task(args, c)
        elif args.command == "settings":
            cmd_settings(args, c)
        elif args.command == "purge":
            cmd_purge(args, c)
    except (ValueError, TypeError) as e:
        logger.error(f"Input validation error: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Command failed: {e}")
        sys.exit(1)
    finally:
        c.close()


if __name__ == "__main__":
    main()
