"""Record inspection commands: show, task."""

from cairn import Cairn
from cairn.cli.commands.helpers import print_json, unwrap
from cairn.formatting import format_memory, format_task_detail


def cmd_show(args, c: Cairn):
    """Print one memory with its tags and related memories."""
    memory = unwrap(c.get_memory(args.memory_id))
    if args.json:
        print_json(memory)
    else:
        print(format_memory(memory))


def cmd_task(args, c: Cairn):
    """Print one task with its direct subtasks."""
    task = unwrap(c.get_task(args.task_id))
    if args.json:
        print_json(task)
    else:
        print(format_task_detail(task))
