"""Scope and search commands: status, find, enter, exit."""

from cairn import Cairn
from cairn.cli.commands.helpers import print_json, unwrap, validate_input
from cairn.formatting import format_find, format_scope_summary, format_status


def cmd_status(args, c: Cairn):
    """Show the store's heads-up status for the current scope."""
    snapshot = unwrap(c.status())
    if args.json:
        print_json(snapshot)
    else:
        print(format_status(snapshot))


def cmd_find(args, c: Cairn):
    """Search memories, in-project first when a project is active."""
    query = validate_input(args.query, "query", 500) if args.query else None
    result = unwrap(c.find(query, args.type))
    if args.json:
        print_json(result)
    else:
        print(format_find(result))


def cmd_enter(args, c: Cairn):
    name = validate_input(args.name, "project name", 100)
    summary = unwrap(c.enter_scope(name))
    print(format_scope_summary(summary))


def cmd_exit(args, c: Cairn):
    summary = unwrap(c.exit_scope())
    print(format_scope_summary(summary))
