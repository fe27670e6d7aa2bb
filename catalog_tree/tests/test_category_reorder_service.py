"""Tests for category_reorder_service: drag-and-drop reordering."""

import dataclasses
import logging
import random
from contextlib import contextmanager

import pytest
from sqlalchemy import event

from catalog_tree.services import category_reorder_service, category_service
from catalog_tree.services.category_reorder_service import (
    apply_plan,
    plan_move,
    plan_position,
    plan_reorder,
    sibling_group_locks,
    would_create_cycle,
)
from catalog_tree.services.category_tree_service import group_by_parent
from catalog_tree.services.exceptions import (
    CategoryNotFound,
    ConcurrentModification,
    CycleRejected,
    InvalidParent,
    TargetNotFound,
)


def _apply(rows, plan):
    """Apply a plan to a snapshot, returning the new snapshot."""
    updates = {u.category_id: u for u in plan.updates}
    return [
        dataclasses.replace(
            row,
            parent_id=updates[row.id].parent_id,
            sort_order=updates[row.id].sort_order,
        )
        if row.id in updates
        else row
        for row in rows
    ]


def _group(rows, parent_id):
    return [(row.name, row.sort_order) for row in group_by_parent(rows).get(parent_id, [])]


def _children(category):
    rows = category_service.get_all_rows()
    return [(r.name, r.sort_order) for r in group_by_parent(rows).get(category.id, [])]


# ============================================================================
# Pure planner tests
# ============================================================================


class TestPlanReorder:
    """Tests for plan_reorder()."""

    def test_move_up_within_group(self, scenario_rows):
        """A2 dropped on A1: A's children become [A2, A1]."""
        plan = plan_reorder(scenario_rows, moved_id=5, target_id=4)

        assert plan.new_parent_id == 2
        assert plan.parent_changed is False
        assert _group(_apply(scenario_rows, plan), 2) == [("A2", 0), ("A1", 1)]

    def test_move_down_lands_at_target_index(self, scenario_rows):
        """Splice semantics: remove, then insert at the target's index."""
        plan = plan_reorder(scenario_rows, moved_id=4, target_id=5)
        assert _group(_apply(scenario_rows, plan), 2) == [("A2", 0), ("A1", 1)]

    def test_move_down_in_longer_group(self, make_row):
        rows = [make_row(i, None, i - 1, name) for i, name in enumerate("PQRS", start=1)]
        plan = plan_reorder(rows, moved_id=1, target_id=3)
        assert [n for n, _ in _group(_apply(rows, plan), None)] == ["Q", "R", "P", "S"]

    def test_move_into_other_group(self, scenario_rows):
        """B dropped on A1 joins A before A1; Root's group closes its gap."""
        plan = plan_reorder(scenario_rows, moved_id=3, target_id=4)
        result = _apply(scenario_rows, plan)

        assert plan.parent_changed is True
        assert plan.affected_parent_ids == [1, 2]
        assert _group(result, 2) == [("B", 0), ("A1", 1), ("A2", 2)]
        assert _group(result, 1) == [("A", 0)]

    def test_move_to_root_level(self, scenario_rows):
        plan = plan_reorder(scenario_rows, moved_id=4, target_id=1)
        result = _apply(scenario_rows, plan)

        assert _group(result, None) == [("A1", 0), ("Root", 1)]
        assert _group(result, 2) == [("A2", 0)]

    def test_gaps_are_closed(self, make_row):
        rows = [make_row(1, None, 0, "X"), make_row(2, None, 5, "Y"), make_row(3, None, 9, "Z")]
        plan = plan_reorder(rows, moved_id=3, target_id=2)
        assert _group(_apply(rows, plan), None) == [("X", 0), ("Z", 1), ("Y", 2)]

    def test_unchanged_rows_are_not_written(self, scenario_rows):
        plan = plan_reorder(scenario_rows, moved_id=5, target_id=4)
        assert {u.category_id for u in plan.updates} == {4, 5}

    def test_drop_on_itself_is_noop(self, scenario_rows):
        plan = plan_reorder(scenario_rows, moved_id=4, target_id=4)
        assert plan.is_noop

    def test_target_inside_subtree_rejected(self, scenario_rows):
        """Dropping A on its own child would make A its own parent."""
        with pytest.raises(CycleRejected):
            plan_reorder(scenario_rows, moved_id=2, target_id=4)

    def test_target_deep_inside_subtree_rejected(self, scenario_rows):
        with pytest.raises(CycleRejected):
            plan_reorder(scenario_rows, moved_id=1, target_id=5)

    def test_missing_target(self, scenario_rows):
        with pytest.raises(TargetNotFound):
            plan_reorder(scenario_rows, moved_id=4, target_id=99)

    def test_missing_moved(self, scenario_rows):
        with pytest.raises(CategoryNotFound):
            plan_reorder(scenario_rows, moved_id=99, target_id=4)


class TestPlannerProperties:
    """Randomized reorders keep every group contiguous and the tree acyclic."""

    def test_random_reorders(self, make_row):
        rng = random.Random(20240611)
        rows = [make_row(1, None, 0, "N1")]
        for new_id in range(2, 26):
            parent = rng.choice([None] + [r.id for r in rows])
            siblings = [r for r in rows if r.parent_id == parent]
            rows.append(make_row(new_id, parent, len(siblings), f"N{new_id}"))

        for _ in range(200):
            moved_id = rng.choice(rows).id
            target_id = rng.choice(rows).id
            try:
                plan = plan_reorder(rows, moved_id, target_id)
            except CycleRejected:
                continue
            rows = _apply(rows, plan)

            for group in group_by_parent(rows).values():
                assert [r.sort_order for r in group] == list(range(len(group)))

            rows_by_id = {r.id: r for r in rows}
            for row in rows:
                steps, current = 0, row
                while current.parent_id is not None:
                    current = rows_by_id[current.parent_id]
                    steps += 1
                    assert steps <= len(rows)


class TestOtherPlans:
    """Tests for would_create_cycle, plan_position and plan_move."""

    def test_would_create_cycle(self, scenario_rows):
        assert would_create_cycle(scenario_rows, 2, 2) is True
        assert would_create_cycle(scenario_rows, 2, 5) is True
        assert would_create_cycle(scenario_rows, 4, 3) is False
        assert would_create_cycle(scenario_rows, 1, None) is False

    def test_plan_position_clamps(self, scenario_rows):
        high = _apply(scenario_rows, plan_position(scenario_rows, 4, 50))
        low = _apply(scenario_rows, plan_position(scenario_rows, 5, -3))

        assert _group(high, 2) == [("A2", 0), ("A1", 1)]
        assert _group(low, 2) == [("A2", 0), ("A1", 1)]

    def test_plan_move_appends(self, scenario_rows):
        result = _apply(scenario_rows, plan_move(scenario_rows, 4, 3))
        assert _group(result, 3) == [("A1", 0)]
        assert _group(result, 2) == [("A2", 0)]

    def test_plan_move_unknown_parent(self, scenario_rows):
        with pytest.raises(InvalidParent):
            plan_move(scenario_rows, 4, 99)

    def test_plan_move_into_descendant(self, scenario_rows):
        with pytest.raises(CycleRejected):
            plan_move(scenario_rows, 1, 4)


# ============================================================================
# Session-backed tests
# ============================================================================


class TestReorder:
    """Tests for category_reorder_service.reorder()."""

    def test_scenario_swap_children(self, hierarchy):
        category_reorder_service.reorder(hierarchy.a2.id, hierarchy.a1.id)
        assert _children(hierarchy.a) == [("A2", 0), ("A1", 1)]

    def test_cross_group_move_persists(self, hierarchy):
        plan = category_reorder_service.reorder(hierarchy.b.id, hierarchy.a2.id)

        assert plan.new_parent_id == hierarchy.a.id
        assert _children(hierarchy.a) == [("A1", 0), ("B", 1), ("A2", 2)]
        assert _children(hierarchy.root) == [("A", 0)]

    def test_cycle_rejected_leaves_store_unchanged(self, hierarchy):
        before = category_service.get_all_rows()
        with pytest.raises(CycleRejected):
            category_reorder_service.reorder(hierarchy.a.id, hierarchy.a2.id)
        assert category_service.get_all_rows() == before

    def test_missing_target(self, hierarchy):
        with pytest.raises(TargetNotFound):
            category_reorder_service.reorder(hierarchy.a1.id, 999)

    def test_versions_bumped(self, hierarchy):
        category_reorder_service.reorder(hierarchy.a2.id, hierarchy.a1.id)
        assert category_service.get_category(hierarchy.a2.id).version == 2

    def test_stale_snapshot_raises(self, hierarchy, test_db):
        """A plan computed before another write is refused as a whole."""
        snapshot = category_service.get_all_rows()
        category_service.update_category(hierarchy.a1.id, {"name": "A1 renamed"})
        plan = plan_reorder(snapshot, hierarchy.a2.id, hierarchy.a1.id)

        session = test_db()
        with pytest.raises(ConcurrentModification) as exc_info:
            apply_plan(session, plan, snapshot)
        session.rollback()

        assert hierarchy.a1.id in exc_info.value.category_ids
        assert _children(hierarchy.a) == [("A1 renamed", 0), ("A2", 1)]

    def test_sibling_created_after_snapshot_raises(self, hierarchy, test_db):
        """A new group member the snapshot never saw invalidates the batch."""
        snapshot = category_service.get_all_rows()
        d = category_service.create_category(name="D", parent_id=hierarchy.root.id)
        plan = plan_reorder(snapshot, hierarchy.a1.id, hierarchy.b.id)

        session = test_db()
        with pytest.raises(ConcurrentModification) as exc_info:
            apply_plan(session, plan, snapshot)
        session.rollback()

        assert d.id in exc_info.value.category_ids
        assert _children(hierarchy.root) == [("A", 0), ("B", 1), ("D", 2)]
        assert _children(hierarchy.a) == [("A1", 0), ("A2", 1)]

    def test_reorder_after_create_keeps_group_contiguous(self, hierarchy):
        category_service.create_category(name="D", parent_id=hierarchy.root.id)

        category_reorder_service.reorder(hierarchy.a1.id, hierarchy.b.id)

        assert _children(hierarchy.root) == [("A", 0), ("A1", 1), ("B", 2), ("D", 3)]
        assert _children(hierarchy.a) == [("A2", 0)]

    def test_logs_success(self, hierarchy, caplog):
        with caplog.at_level(logging.INFO):
            category_reorder_service.reorder(hierarchy.a2.id, hierarchy.a1.id)

        record = next(r for r in caplog.records if r.getMessage() == "reorder: success")
        assert record.moved_id == hierarchy.a2.id
        assert record.updated == 2

    def test_logs_cycle_rejection(self, hierarchy, caplog):
        with caplog.at_level(logging.WARNING):
            with pytest.raises(CycleRejected):
                category_reorder_service.reorder(hierarchy.root.id, hierarchy.a1.id)
        assert "reorder: cycle_rejected" in caplog.text


class TestUpdateOrderAndMove:
    """Tests for update_order() and move_category()."""

    def test_update_order(self, hierarchy):
        category_reorder_service.update_order(hierarchy.a1.id, 99)
        assert _children(hierarchy.a) == [("A2", 0), ("A1", 1)]

    def test_move_category_to_root(self, hierarchy):
        category_reorder_service.move_category(hierarchy.a1.id, None)

        moved = category_service.get_category(hierarchy.a1.id)
        assert moved.parent_id is None
        assert moved.sort_order == 1
        assert _children(hierarchy.a) == [("A2", 0)]

    def test_move_category_unknown_parent(self, hierarchy):
        with pytest.raises(InvalidParent):
            category_reorder_service.move_category(hierarchy.a1.id, 999)


class TestSiblingGroupLocks:
    """Tests for the in-process sibling-group lock registry."""

    @pytest.fixture
    def held_groups(self, monkeypatch):
        """Record the group keys locked at any moment."""
        held = []
        real_locks = category_reorder_service.sibling_group_locks

        @contextmanager
        def recording(parent_ids):
            keys = set(parent_ids)
            with real_locks(keys):
                held.append(keys)
                try:
                    yield
                finally:
                    held.remove(keys)

        monkeypatch.setattr(category_reorder_service, "sibling_group_locks", recording)
        return held

    def test_commit_happens_under_locks(self, hierarchy, test_db, held_groups):
        locked_at_commit = []
        event.listen(
            test_db(),
            "after_commit",
            lambda session: locked_at_commit.append(set().union(*held_groups)),
        )

        category_reorder_service.reorder(hierarchy.b.id, hierarchy.a1.id)

        assert locked_at_commit[-1] == {hierarchy.root.id, hierarchy.a.id}

    def test_create_locks_its_group(self, hierarchy, test_db, held_groups):
        locked_at_commit = []
        event.listen(
            test_db(),
            "after_commit",
            lambda session: locked_at_commit.append(set().union(*held_groups)),
        )

        category_service.create_category(name="C", parent_id=hierarchy.root.id)

        assert locked_at_commit[-1] == {hierarchy.root.id}

    def test_locks_are_reentrant(self):
        with sibling_group_locks([None, 3]):
            with sibling_group_locks([3]):
                pass

    def test_same_key_returns_same_lock(self):
        first = category_reorder_service._lock_for(7)
        assert category_reorder_service._lock_for(7) is first
