"""Tests for the pure fallback grouping used by scoped search."""

from cairn.search import GLOBAL_GROUP, group_fallback
from cairn.types import MemoryHit, MemoryStatus, MemoryType


def hit(hit_id, project=None, updated_at=0):
    return MemoryHit(
        id=hit_id,
        type=MemoryType.NOTE,
        title=f"hit {hit_id}",
        status=MemoryStatus.DRAFT,
        project_name=project,
        updated_at=updated_at,
    )


class TestGroupFallback:
    def test_empty(self):
        assert group_fallback([]) == []

    def test_named_groups_alphabetical_global_last(self):
        groups = group_fallback(
            [hit(1), hit(2, "zeta"), hit(3, "beta"), hit(4, "alpha"), hit(5)]
        )
        assert [g.name for g in groups] == ["alpha", "beta", "zeta", GLOBAL_GROUP]

    def test_global_only(self):
        groups = group_fallback([hit(1), hit(2)])
        assert len(groups) == 1
        assert groups[0].name == "Global"

    def test_most_recent_first_within_group(self):
        groups = group_fallback(
            [hit(1, "alpha", updated_at=100), hit(2, "alpha", updated_at=300), hit(3, "alpha", 200)]
        )
        assert [h.id for h in groups[0].items] == [2, 3, 1]

    def test_ties_broken_by_newer_id(self):
        hits = [hit(4, updated_at=50), hit(9, updated_at=50), hit(6, updated_at=50)]
        groups = group_fallback(hits)
        assert [h.id for h in groups[0].items] == [9, 6, 4]

    def test_every_hit_lands_in_exactly_one_group(self):
        hits = [hit(i, project=["a", "b", None][i % 3], updated_at=i) for i in range(12)]
        groups = group_fallback(hits)
        grouped_ids = sorted(h.id for g in groups for h in g.items)
        assert grouped_ids == list(range(12))

    def test_input_order_does_not_matter(self):
        hits = [hit(1, "b", 10), hit(2, None, 20), hit(3, "a", 30), hit(4, "b", 40)]
        forward = group_fallback(hits)
        backward = group_fallback(list(reversed(hits)))
        assert forward == backward
