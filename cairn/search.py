"""Scoped search for Cairn.

In global mode ``find`` is a single scan over every visible memory. With a
project active it runs two independent scans, one inside the project and
one over everything else, and composes them with :func:`group_fallback`.
The two scans are separate snapshots; a write landing between them is
tolerated.
"""

import logging
from typing import Dict, List, Optional

from cairn.storage import SCOPE_ANY, SCOPE_INSIDE, SCOPE_OUTSIDE
from cairn.types import FallbackGroup, FindResult, MemoryHit, MemoryType, Scope
from cairn.validation import clamp_search_limit

logger = logging.getLogger(__name__)

GLOBAL_GROUP = "Global"
SEARCH_LIMIT_SETTING = "search_default_limit"


def _recency_key(hit: MemoryHit):
    return (-hit.updated_at, -hit.id)


def group_fallback(hits: List[MemoryHit]) -> List[FallbackGroup]:
    """Group out-of-scope hits by owning project.

    Named projects come first in alphabetical order, global memories last
    under ``GLOBAL_GROUP``. Within a group, most recently updated first.
    """
    buckets: Dict[Optional[str], List[MemoryHit]] = {}
    for hit in hits:
        buckets.setdefault(hit.project_name, []).append(hit)

    named = sorted(name for name in buckets if name is not None)
    groups = [FallbackGroup(name, sorted(buckets[name], key=_recency_key)) for name in named]
    if None in buckets:
        groups.append(FallbackGroup(GLOBAL_GROUP, sorted(buckets[None], key=_recency_key)))
    return groups


def find(
    storage,
    scope: Scope,
    query: Optional[str] = None,
    memory_type: Optional[MemoryType] = None,
    limit: Optional[int] = None,
) -> FindResult:
    """Search visible memories relative to ``scope``.

    Args:
        storage: SQLiteStorage instance.
        scope: Scope read for this call.
        query: Free text matched against title, content, path and tags.
        memory_type: Optional type filter.
        limit: Per-scan cap; defaults to the ``search_default_limit`` setting.

    Returns:
        FindResult with in-scope hits and grouped fallback hits.
    """
    if limit is None:
        limit = clamp_search_limit(storage.get_setting(SEARCH_LIMIT_SETTING))

    if scope.is_global:
        hits = storage.search_memories(query, memory_type, None, SCOPE_ANY, limit)
        logger.debug(f"find({query!r}) global: {len(hits)} hits")
        return FindResult(in_scope=hits)

    inside = storage.search_memories(query, memory_type, scope.project_id, SCOPE_INSIDE, limit)
    outside = storage.search_memories(query, memory_type, scope.project_id, SCOPE_OUTSIDE, limit)
    logger.debug(
        f"find({query!r}) in {scope.project_name}: {len(inside)} in scope, {len(outside)} elsewhere"
    )
    return FindResult(
        in_scope=inside,
        fallback=group_fallback(outside),
        scope_name=scope.project_name,
    )
