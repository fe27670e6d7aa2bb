"""
Category reorder service - drag-and-drop reordering and reparenting.

Feature: category hierarchy engine, reorder planner.

A move event {moved_id, target_id} means "place moved_id where target_id is
in the displayed order". The moved category adopts the target's parent
(sibling insertion, not nesting), is spliced into that sibling group at the
target's index, and the group is renumbered 0..n-1. When the moved category
leaves another group, that group is renumbered in the same batch.

Planning is pure (plan_reorder, plan_position, plan_move work on a
CategoryRow snapshot) and the sibling group is always recomputed from the
complete snapshot; a caller's visible, possibly filtered, slice only
identifies the target. Applying a plan is one transaction:

- every affected sibling group must still hold exactly the snapshot's
  members at their snapshot versions, and rows are written with SQLAlchemy
  versioned updates; anything added, removed or rewritten since the
  snapshot aborts the whole batch with ConcurrentModification
- writers in this process are serialized per sibling-group key; the locks
  are taken before the snapshot is read and held until the commit

Session Management Pattern:
- All functions accept optional `session` parameter
- If session is provided, use it directly (allows callers to manage transactions)
- If session is None, create a new session_scope for the operation
"""

import logging
import threading
from contextlib import ExitStack, contextmanager
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

from sqlalchemy import or_
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from catalog_tree.models.category import Category
from catalog_tree.services.category_service import get_all_rows
from catalog_tree.services.category_tree_service import ancestor_ids, group_by_parent
from catalog_tree.services.database import session_scope
from catalog_tree.services.dto import CategoryRow
from catalog_tree.services.exceptions import (
    CategoryNotFound,
    ConcurrentModification,
    CycleRejected,
    InvalidParent,
    TargetNotFound,
)
from catalog_tree.services.logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


@dataclass(frozen=True)
class OrderUpdate:
    """New parent and position for one category."""

    category_id: int
    parent_id: Optional[int]
    sort_order: int


@dataclass
class ReorderPlan:
    """
    One atomic batch of parent/order updates.

    Attributes:
        category_id: The category being moved
        old_parent_id / new_parent_id: Its parent before and after
        updates: Rows whose parent_id or sort_order actually change
    """

    category_id: int
    old_parent_id: Optional[int]
    new_parent_id: Optional[int]
    updates: List[OrderUpdate] = field(default_factory=list)

    @property
    def parent_changed(self) -> bool:
        return self.old_parent_id != self.new_parent_id

    @property
    def is_noop(self) -> bool:
        return not self.updates

    @property
    def affected_parent_ids(self) -> List[Optional[int]]:
        """Sibling groups this plan renumbers."""
        if self.parent_changed:
            return [self.old_parent_id, self.new_parent_id]
        return [self.new_parent_id]


# ============================================================================
# Pure planning
# ============================================================================


def would_create_cycle(
    rows: Iterable[CategoryRow], category_id: int, new_parent_id: Optional[int]
) -> bool:
    """
    Check whether giving category_id the parent new_parent_id would close a loop.

    True when new_parent_id is the category itself or one of its descendants,
    found by walking new_parent_id's ancestors.
    """
    if new_parent_id is None:
        return False
    if new_parent_id == category_id:
        return True
    rows_by_id = {row.id: row for row in rows}
    return category_id in ancestor_ids(rows_by_id, new_parent_id)


def renumber(
    group: Sequence[CategoryRow], parent_id: Optional[int]
) -> List[OrderUpdate]:
    """
    Assign sort_order = index to an ordered sibling group.

    Returns:
        Updates for rows whose parent_id or sort_order differ from their
        new values; rows already in place are skipped
    """
    return [
        OrderUpdate(category_id=row.id, parent_id=parent_id, sort_order=index)
        for index, row in enumerate(group)
        if row.sort_order != index or row.parent_id != parent_id
    ]


def _index_of(group: Sequence[CategoryRow], category_id: int) -> int:
    for index, row in enumerate(group):
        if row.id == category_id:
            return index
    raise ValueError(f"Category {category_id} is not in this sibling group")


def _splice(
    rows: List[CategoryRow],
    moved: CategoryRow,
    new_parent_id: Optional[int],
    new_index: Optional[int],
) -> ReorderPlan:
    """
    Move a row to new_index of new_parent_id's group (None appends).

    Within one group this is remove-then-insert; across groups the row is
    inserted into the destination and the source group closes its gap.
    """
    groups = group_by_parent(rows)
    destination = list(groups.get(new_parent_id, []))
    plan = ReorderPlan(
        category_id=moved.id, old_parent_id=moved.parent_id, new_parent_id=new_parent_id
    )

    if moved.parent_id == new_parent_id:
        destination.pop(_index_of(destination, moved.id))
    else:
        source = [row for row in groups.get(moved.parent_id, []) if row.id != moved.id]
        plan.updates.extend(renumber(source, moved.parent_id))

    if new_index is None or new_index > len(destination):
        new_index = len(destination)
    destination.insert(max(new_index, 0), moved)
    plan.updates.extend(renumber(destination, new_parent_id))
    return plan


def plan_reorder(rows: List[CategoryRow], moved_id: int, target_id: int) -> ReorderPlan:
    """
    Plan a drag-and-drop move of moved_id onto target_id.

    The moved category takes target's parent and target's index in the
    complete sibling group (arrayMove semantics: dragging down lands after
    the target, dragging up lands before it; a category arriving from
    another group lands before the target).

    Args:
        rows: Complete category snapshot
        moved_id: Category being dragged
        target_id: Category it was dropped on

    Returns:
        ReorderPlan (empty when moved_id == target_id)

    Raises:
        CategoryNotFound: If moved_id doesn't exist
        TargetNotFound: If target_id doesn't exist
        CycleRejected: If target_id is inside moved_id's subtree
    """
    rows_by_id = {row.id: row for row in rows}
    moved = rows_by_id.get(moved_id)
    if moved is None:
        raise CategoryNotFound(moved_id)
    target = rows_by_id.get(target_id)
    if target is None:
        raise TargetNotFound(target_id)

    if moved_id == target_id:
        return ReorderPlan(
            category_id=moved_id, old_parent_id=moved.parent_id, new_parent_id=moved.parent_id
        )

    new_parent_id = target.parent_id
    if would_create_cycle(rows, moved_id, new_parent_id):
        raise CycleRejected(moved_id, new_parent_id)

    target_index = _index_of(group_by_parent(rows)[new_parent_id], target_id)
    return _splice(rows, moved, new_parent_id, target_index)


def plan_position(rows: List[CategoryRow], category_id: int, new_order: int) -> ReorderPlan:
    """
    Plan moving a category to position new_order inside its own group.

    new_order is clamped to the group, so any integer is accepted.

    Raises:
        CategoryNotFound: If category_id doesn't exist
    """
    moved = next((row for row in rows if row.id == category_id), None)
    if moved is None:
        raise CategoryNotFound(category_id)
    return _splice(rows, moved, moved.parent_id, new_order)


def plan_move(
    rows: List[CategoryRow], category_id: int, new_parent_id: Optional[int]
) -> ReorderPlan:
    """
    Plan reparenting a category, appended at the end of the new group.

    Raises:
        CategoryNotFound: If category_id doesn't exist
        InvalidParent: If new_parent_id doesn't exist
        CycleRejected: If new_parent_id is the category or a descendant
    """
    rows_by_id = {row.id: row for row in rows}
    moved = rows_by_id.get(category_id)
    if moved is None:
        raise CategoryNotFound(category_id)
    if new_parent_id is not None and new_parent_id not in rows_by_id:
        raise InvalidParent(new_parent_id)
    if would_create_cycle(rows, category_id, new_parent_id):
        raise CycleRejected(category_id, new_parent_id)
    if moved.parent_id == new_parent_id:
        # Already there: keep the position, close any gaps
        current_index = _index_of(group_by_parent(rows)[new_parent_id], category_id)
        return _splice(rows, moved, new_parent_id, current_index)
    return _splice(rows, moved, new_parent_id, None)


def assign_positions(categories: Sequence[Category]) -> int:
    """
    Renumber ORM categories in list order (sort_order = index).

    Returns:
        Number of categories whose sort_order changed
    """
    changed = 0
    for index, category in enumerate(categories):
        if category.sort_order != index:
            category.sort_order = index
            changed += 1
    return changed


# ============================================================================
# Sibling-group locks
# ============================================================================

_registry_lock = threading.Lock()
_group_locks: Dict[Optional[int], threading.RLock] = {}


def _lock_for(parent_id: Optional[int]) -> threading.RLock:
    with _registry_lock:
        lock = _group_locks.get(parent_id)
        if lock is None:
            lock = threading.RLock()
            _group_locks[parent_id] = lock
        return lock


@contextmanager
def sibling_group_locks(parent_ids: Iterable[Optional[int]]):
    """
    Hold the in-process locks of several sibling groups.

    Locks are taken in a fixed order (root group first, then by id) so two
    writers touching the same groups cannot deadlock. They are re-entrant,
    so update_category can move and then reposition in one thread.
    """
    ordered = sorted(set(parent_ids), key=lambda p: (p is not None, p or 0))
    with ExitStack() as stack:
        for parent_id in ordered:
            stack.enter_context(_lock_for(parent_id))
        yield


# ============================================================================
# Applying plans
# ============================================================================


def verify_sibling_groups(
    sess: Session, parent_ids: Iterable[Optional[int]], snapshot: List[CategoryRow]
) -> None:
    """
    Check that sibling groups still hold exactly their snapshot members.

    Every current member of each group is compared by (id, parent_id,
    version) with the snapshot, so a category created in, moved into, moved
    out of or rewritten in one of the groups since the snapshot is caught.

    Raises:
        ConcurrentModification: Listing the ids that differ
    """
    keys = set(parent_ids)
    if not keys:
        return

    conditions = []
    ids = [key for key in keys if key is not None]
    if ids:
        conditions.append(Category.parent_id.in_(ids))
    if None in keys:
        conditions.append(Category.parent_id.is_(None))

    current = {
        (row.id, row.parent_id, row.version)
        for row in sess.query(Category.id, Category.parent_id, Category.version).filter(
            or_(*conditions)
        )
    }
    expected = {(row.id, row.parent_id, row.version) for row in snapshot if row.parent_id in keys}

    changed = sorted({entry[0] for entry in current ^ expected})
    if changed:
        raise ConcurrentModification(changed)


def apply_plan(sess: Session, plan: ReorderPlan, snapshot: List[CategoryRow]) -> int:
    """Write a ReorderPlan in the given session; see apply_updates."""
    return apply_updates(sess, plan.updates, snapshot, parent_ids=plan.affected_parent_ids)


def apply_updates(
    sess: Session,
    updates: Sequence[OrderUpdate],
    snapshot: List[CategoryRow],
    parent_ids: Iterable[Optional[int]] = (),
) -> int:
    """
    Write parent/order updates in the given session and flush them.

    The sibling groups named in parent_ids are verified against the
    snapshot first (see verify_sibling_groups). Each updated row is then
    checked against its snapshot version; the flush itself is a versioned
    UPDATE.

    Returns:
        Number of rows updated

    Raises:
        ConcurrentModification: If any affected group or row changed since
            the snapshot
    """
    verify_sibling_groups(sess, parent_ids, snapshot)
    if not updates:
        return 0

    versions = {row.id: row.version for row in snapshot}
    ids = [update.category_id for update in updates]
    categories = {
        c.id: c for c in sess.query(Category).filter(Category.id.in_(ids)).all()
    }

    stale = [
        category_id
        for category_id in ids
        if category_id not in categories or categories[category_id].version != versions.get(category_id)
    ]
    if stale:
        raise ConcurrentModification(stale)

    for update in updates:
        category = categories[update.category_id]
        category.parent_id = update.parent_id
        category.sort_order = update.sort_order

    try:
        sess.flush()
    except StaleDataError as e:
        raise ConcurrentModification(ids) from e
    return len(ids)


def _run_plan(
    operation: str,
    planner: Callable[[List[CategoryRow]], ReorderPlan],
    session: Optional[Session],
    **context,
) -> ReorderPlan:
    """
    Lock the affected groups, then snapshot, plan and apply in one transaction.

    A first, unlocked planning pass finds the sibling groups the move
    touches. Their locks are then held while the snapshot is re-read, the
    plan recomputed and applied, and (when this call owns the session) the
    transaction committed. Planning errors are logged with the operation's
    context and re-raised.
    """

    def _plan(snapshot: List[CategoryRow]) -> ReorderPlan:
        try:
            return planner(snapshot)
        except CycleRejected as e:
            log_operation(
                logger, operation, "cycle_rejected",
                level=logging.WARNING, new_parent_id=e.new_parent_id, **context,
            )
            raise
        except (CategoryNotFound, TargetNotFound, InvalidParent) as e:
            log_operation(
                logger, operation, "not_found",
                level=logging.WARNING, error=str(e), **context,
            )
            raise

    def _impl(sess: Session, locked: Set[Optional[int]]) -> ReorderPlan:
        snapshot = get_all_rows(session=sess)
        plan = _plan(snapshot)
        try:
            if not set(plan.affected_parent_ids) <= locked:
                # The move now touches a group that was not locked
                raise ConcurrentModification([plan.category_id])
            updated = apply_plan(sess, plan, snapshot)
        except ConcurrentModification as e:
            log_operation(
                logger, operation, "concurrent_modification",
                level=logging.WARNING, category_ids=e.category_ids, **context,
            )
            raise

        log_operation(
            logger, operation, "success",
            new_parent_id=plan.new_parent_id, updated=updated, **context,
        )
        return plan

    locked = set(_plan(get_all_rows(session=session)).affected_parent_ids)
    with sibling_group_locks(locked):
        if session is not None:
            return _impl(session, locked)

        with session_scope() as sess:
            return _impl(sess, locked)


def reorder(moved_id: int, target_id: int, session: Optional[Session] = None) -> ReorderPlan:
    """
    Drop moved_id onto target_id and persist the renumbered sibling groups.

    Args:
        moved_id: Category being dragged
        target_id: Category it was dropped on
        session: Optional database session

    Returns:
        The applied ReorderPlan

    Raises:
        CategoryNotFound: If moved_id doesn't exist
        TargetNotFound: If target_id doesn't exist
        CycleRejected: If target_id is inside moved_id's subtree
        ConcurrentModification: If an affected row changed concurrently
    """
    return _run_plan(
        "reorder",
        lambda rows: plan_reorder(rows, moved_id, target_id),
        session,
        moved_id=moved_id,
        target_id=target_id,
    )


def update_order(category_id: int, new_order: int, session: Optional[Session] = None) -> ReorderPlan:
    """
    Move a category to another position inside its sibling group.

    Args:
        category_id: Category to move
        new_order: Desired 0-based position (clamped to the group)
        session: Optional database session

    Raises:
        CategoryNotFound: If category_id doesn't exist
    """
    return _run_plan(
        "update_order",
        lambda rows: plan_position(rows, category_id, new_order),
        session,
        category_id=category_id,
        new_order=new_order,
    )


def move_category(
    category_id: int, new_parent_id: Optional[int], session: Optional[Session] = None
) -> ReorderPlan:
    """
    Reparent a category; it is appended at the end of its new sibling group.

    Args:
        category_id: Category to move
        new_parent_id: New parent (None moves it to the root level)
        session: Optional database session

    Raises:
        CategoryNotFound: If category_id doesn't exist
        InvalidParent: If new_parent_id doesn't exist
        CycleRejected: If new_parent_id is the category or one of its descendants
    """
    return _run_plan(
        "move_category",
        lambda rows: plan_move(rows, category_id, new_parent_id),
        session,
        category_id=category_id,
    )
