"""Plain-text rendering of Cairn results for the CLI and agent-facing tools."""

from typing import Dict, List

from cairn.types import (
    FindResult,
    Memory,
    MemoryHit,
    Project,
    ScopeSummary,
    StatusSnapshot,
    Task,
)

NO_RESULTS = "No memories found."


def format_hit(hit: MemoryHit) -> str:
    path = f" ({hit.path})" if hit.path else ""
    return f"[{hit.ref}] [{hit.type.value}] {hit.title}{path} — {hit.status.value}"


def format_find(result: FindResult) -> str:
    """Render a FindResult.

    Global mode is a flat list. Scoped mode shows the in-project section
    first, then the hits found elsewhere grouped by project.
    """
    if result.total == 0:
        return NO_RESULTS
    if result.scope_name is None:
        return "\n".join(format_hit(h) for h in result.in_scope)

    sections: List[str] = []
    if result.in_scope:
        sections.append(f"## In Project: {result.scope_name} ({len(result.in_scope)} matches)")
        sections.append("\n".join(format_hit(h) for h in result.in_scope))

    elsewhere = sum(len(g.items) for g in result.fallback)
    if elsewhere:
        sections.append(f"\n## Elsewhere ({elsewhere} matches)")
        for group in result.fallback:
            sections.append(f"\n### {group.name} ({len(group.items)})")
            sections.append("\n".join(format_hit(h) for h in group.items))
    return "\n".join(sections)


def format_memory(memory: Memory) -> str:
    lines = [f"# [{memory.ref}] {memory.title}"]
    lines.append(
        f"type: {memory.type.value} | status: {memory.status.value} | "
        f"permission: {memory.permission.value}"
    )
    lines.append(f"project: {memory.project_name or 'global'}")
    if memory.path:
        lines.append(f"path: {memory.path}")
    if memory.tags:
        lines.append(f"tags: {', '.join(memory.tags)}")
    lines.append("")
    lines.append(memory.content)
    if memory.related:
        lines.append("")
        lines.append("### Related")
        lines.extend(format_hit(h) for h in memory.related)
    return "\n".join(lines)


def format_task(task: Task, indent: int = 0) -> str:
    pad = "  " * indent
    return f"{pad}[{task.ref}] {task.title} ({task.priority.value}) — {task.status.value}"


def format_task_detail(task: Task) -> str:
    lines = [format_task(task)]
    lines.append(f"project: {task.project_name or 'none'}")
    if task.parent_id is not None:
        lines.append(f"parent: T{task.parent_id}")
    if task.description:
        lines.append("")
        lines.append(task.description)
    if task.children:
        lines.append("")
        lines.append(f"### Subtasks ({len(task.children)})")
        lines.extend(format_task(child, 1) for child in task.children)
    return "\n".join(lines)


def format_project(project: Project) -> str:
    return f"[{project.ref}] {project.name} — {project.status.value}"


def _format_counts(counts: Dict[str, int]) -> str:
    shown = [f"{name}: {n}" for name, n in counts.items() if n]
    return ", ".join(shown) if shown else "none"


def format_scope_summary(summary: ScopeSummary) -> str:
    """Briefing shown after entering or leaving a project."""
    sections: List[str] = []
    if summary.project is not None:
        project = summary.project
        sections.append(f"## Project: {project.name} [{project.ref}]")
        sections.append(f"status: {project.status.value}")
        if project.description:
            sections.append(project.description)
        if project.stack:
            sections.append(f"stack: {', '.join(project.stack)}")
    else:
        sections.append("## Global Mode")

    if summary.identity is not None:
        sections.append(f"\n### Identity\n{format_hit(summary.identity)}")

    if summary.in_progress:
        sections.append("\n### Active Focus")
        sections.extend(format_task(t) for t in summary.in_progress)

    sections.append("\n### Inventory")
    if summary.project is None:
        sections.append(f"- Global memories: {summary.global_memory_count}")
        sections.append(f"- Projects: {summary.project_count}")
    sections.append(f"- Memories: {_format_counts(summary.memory_counts)}")
    sections.append(f"- Tasks: {_format_counts(summary.task_counts)}")

    if summary.project is None and summary.projects:
        sections.append("\n### Available Projects")
        sections.extend(f"- {format_project(p)}" for p in summary.projects)
    return "\n".join(sections)


def format_status(snapshot: StatusSnapshot) -> str:
    scope = snapshot.project.name if snapshot.project else "global"
    lines = [f"Cairn Status ({scope})", "=" * 40]
    identity = format_hit(snapshot.identity) if snapshot.identity else "none"
    lines.append(f"Identity:  {identity}")
    lines.append(f"Projects:  {snapshot.project_count}")
    lines.append(f"Memories:  {snapshot.memory_count}")
    lines.append(f"Tasks:     {_format_counts(snapshot.task_counts)}")
    return "\n".join(lines)
