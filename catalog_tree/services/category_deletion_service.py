"""
Category deletion service - subtree removal under a cascade policy.

Feature: category hierarchy engine, deletion planner.

Two policies, chosen by the user when a category with children is deleted:

- DELETE_ALL removes the category and every descendant, leaves first, so no
  row ever points at a parent that is already gone.
- MOVE_UP re-parents the category's direct children to its own parent,
  appended (in their relative order) after the existing siblings there,
  then removes the now childless category.

Either way the surviving sibling group is renumbered 0..n-1, and the whole
cascade is one transaction. A category with no children degenerates to a
single leaf deletion under both policies.

The locks of every affected sibling group (the category's own group and
the child group of every category being deleted) are held from the
snapshot read until the commit, and those groups are verified against the
snapshot before anything is written.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Set

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from catalog_tree.models.category import Category
from catalog_tree.services.category_reorder_service import (
    OrderUpdate,
    apply_updates,
    renumber,
    sibling_group_locks,
    verify_sibling_groups,
)
from catalog_tree.services.category_service import get_all_rows
from catalog_tree.services.category_tree_service import collect_descendant_ids, group_by_parent
from catalog_tree.services.database import session_scope
from catalog_tree.services.dto import CategoryRow
from catalog_tree.services.exceptions import CategoryNotFound, ConcurrentModification, ValidationError
from catalog_tree.services.logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


class DeletePolicy(str, Enum):
    """What happens to the descendants of a deleted category."""

    DELETE_ALL = "delete-all"
    MOVE_UP = "move-up"

    @classmethod
    def parse(cls, value) -> "DeletePolicy":
        """
        Accept a DeletePolicy or its string value.

        Raises:
            ValidationError: If value names no policy
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            choices = ", ".join(p.value for p in cls)
            raise ValidationError([f"Policy: must be one of {choices}, got '{value}'"]) from None


@dataclass
class DeletionPlan:
    """
    Rows to delete and rows to re-parent or renumber.

    Attributes:
        category_id: The category the user asked to delete
        policy: Cascade policy
        parent_id: The deleted category's parent (its children's new parent
            under MOVE_UP)
        delete_ids: Categories to delete, leaves first
        moved_ids: Former direct children re-parented (MOVE_UP only)
        updates: parent/order writes, applied before any delete
    """

    category_id: int
    policy: DeletePolicy
    parent_id: Optional[int]
    delete_ids: List[int] = field(default_factory=list)
    moved_ids: List[int] = field(default_factory=list)
    updates: List[OrderUpdate] = field(default_factory=list)

    @property
    def affected_count(self) -> int:
        """Deleted categories plus re-parented children."""
        return len(self.delete_ids) + len(self.moved_ids)

    @property
    def affected_parent_ids(self) -> Set[Optional[int]]:
        """Sibling groups the cascade reads or rewrites."""
        return {self.parent_id, *self.delete_ids}


@dataclass(frozen=True)
class DeletionResult:
    """Outcome of delete_category."""

    affected_count: int
    deleted_ids: List[int]
    moved_ids: List[int]

    def to_dict(self) -> dict:
        return {
            "affected_count": self.affected_count,
            "deleted_ids": list(self.deleted_ids),
            "moved_ids": list(self.moved_ids),
        }


def plan_deletion(rows: List[CategoryRow], category_id: int, policy) -> DeletionPlan:
    """
    Work out a deletion cascade from a snapshot.

    Args:
        rows: Complete category snapshot
        category_id: Category to delete
        policy: DeletePolicy (or its string value)

    Returns:
        DeletionPlan

    Raises:
        CategoryNotFound: If category_id doesn't exist
        ValidationError: If policy is unknown
    """
    policy = DeletePolicy.parse(policy)
    rows_by_id = {row.id: row for row in rows}
    category = rows_by_id.get(category_id)
    if category is None:
        raise CategoryNotFound(category_id)

    groups = group_by_parent(rows)
    parent_id = category.parent_id
    remaining_siblings = [row for row in groups.get(parent_id, []) if row.id != category_id]
    plan = DeletionPlan(category_id=category_id, policy=policy, parent_id=parent_id)

    if policy is DeletePolicy.DELETE_ALL:
        subtree = [category_id] + collect_descendant_ids(groups, category_id)
        # Pre-order reversed puts every descendant before its ancestors
        plan.delete_ids = list(reversed(subtree))
        plan.updates = renumber(remaining_siblings, parent_id)
    else:
        children = list(groups.get(category_id, []))
        plan.moved_ids = [child.id for child in children]
        plan.delete_ids = [category_id]
        plan.updates = renumber(remaining_siblings + children, parent_id)

    return plan


def delete_category(category_id: int, policy, session: Optional[Session] = None) -> DeletionResult:
    """
    Delete a category under a cascade policy, atomically.

    Args:
        category_id: Category to delete
        policy: DeletePolicy.DELETE_ALL or DeletePolicy.MOVE_UP (or "delete-all"/"move-up")
        session: Optional database session

    Returns:
        DeletionResult with the affected count and the deleted/moved ids

    Raises:
        CategoryNotFound: If category_id doesn't exist (nothing is changed)
        ValidationError: If policy is unknown
        ConcurrentModification: If an affected row changed concurrently
    """
    policy = DeletePolicy.parse(policy)

    def _plan(snapshot: List[CategoryRow]) -> DeletionPlan:
        try:
            return plan_deletion(snapshot, category_id, policy)
        except CategoryNotFound:
            log_operation(
                logger, "delete_category", "not_found",
                level=logging.WARNING, category_id=category_id, policy=policy.value,
            )
            raise

    def _impl(sess: Session, locked: Set[Optional[int]]) -> DeletionResult:
        snapshot = get_all_rows(session=sess)
        plan = _plan(snapshot)
        try:
            if not plan.affected_parent_ids <= locked:
                # The subtree changed shape between the two reads
                raise ConcurrentModification([category_id])
            verify_sibling_groups(sess, plan.affected_parent_ids, snapshot)
            apply_updates(sess, plan.updates, snapshot)
            _delete_in_order(sess, plan.delete_ids)
        except ConcurrentModification as e:
            log_operation(
                logger, "delete_category", "concurrent_modification",
                level=logging.WARNING, category_id=category_id, category_ids=e.category_ids,
            )
            raise

        log_operation(
            logger, "delete_category", "success",
            category_id=category_id, policy=policy.value,
            deleted=len(plan.delete_ids), moved=len(plan.moved_ids),
        )
        return DeletionResult(
            affected_count=plan.affected_count,
            deleted_ids=plan.delete_ids,
            moved_ids=plan.moved_ids,
        )

    locked = _plan(get_all_rows(session=session)).affected_parent_ids
    with sibling_group_locks(locked):
        if session is not None:
            return _impl(session, locked)

        with session_scope() as sess:
            return _impl(sess, locked)


def _delete_in_order(sess: Session, delete_ids: List[int]) -> None:
    """Delete rows one flush at a time, in the given (leaves-first) order."""
    categories = {
        c.id: c for c in sess.query(Category).filter(Category.id.in_(delete_ids)).all()
    }
    missing = [category_id for category_id in delete_ids if category_id not in categories]
    if missing:
        raise ConcurrentModification(missing)

    for category_id in delete_ids:
        sess.delete(categories[category_id])
        try:
            sess.flush()
        except (StaleDataError, IntegrityError) as e:
            # IntegrityError: a child was attached after the snapshot
            raise ConcurrentModification([category_id]) from e
