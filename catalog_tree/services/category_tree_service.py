"""
Category tree service - nested tree assembly and hierarchy traversal.

Feature: category hierarchy engine, tree builder.

The builder is a pair of pure functions over an immutable snapshot of
CategoryRow values: build_tree() groups rows by parent_id in one pass and
assembles the nested tree in a second; tree_to_rows() goes back. Nothing
here mutates the store, and no tree is cached between calls - get_tree()
re-reads the snapshot every time.

Data integrity: a row whose parent_id points at a missing category, or
that is only reachable through a parent cycle, is promoted to a root and
reported in TreeBuildResult.warnings instead of being dropped.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy.orm import Session

from catalog_tree.services.database import session_scope
from catalog_tree.services.dto import CategoryRow
from catalog_tree.services.exceptions import CategoryNotFound
from catalog_tree.services.logging_utils import get_service_logger, log_operation

logger = get_service_logger(__name__)


@dataclass
class TreeNode:
    """
    One category with its children, ordered by sort_order.

    children is always a list (empty for leaves). descendant_count and
    descendants_active are computed by build_tree over the emitted tree.
    """

    id: int
    name: str
    slug: str
    parent_id: Optional[int]
    sort_order: int
    is_active: bool = True
    is_featured: bool = False
    products_count: int = 0
    description: Optional[str] = None
    children: List["TreeNode"] = field(default_factory=list)
    descendant_count: int = 0
    descendants_active: bool = False

    @property
    def children_count(self) -> int:
        return len(self.children)

    @property
    def has_children(self) -> bool:
        return bool(self.children)

    @classmethod
    def from_row(cls, row: CategoryRow) -> "TreeNode":
        return cls(
            id=row.id,
            name=row.name,
            slug=row.slug,
            parent_id=row.parent_id,
            sort_order=row.sort_order,
            is_active=row.is_active,
            is_featured=row.is_featured,
            products_count=row.products_count,
            description=row.description,
        )

    def _fields(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "parent_id": self.parent_id,
            "sort_order": self.sort_order,
            "is_active": self.is_active,
            "is_featured": self.is_featured,
            "products_count": self.products_count,
            "description": self.description,
            "children_count": self.children_count,
            "descendant_count": self.descendant_count,
            "descendants_active": self.descendants_active,
        }

    def to_dict(self) -> dict:
        """Nested dictionary form, children included."""
        result = self._fields()
        stack = [(self, result)]
        while stack:
            node, data = stack.pop()
            data["children"] = []
            for child in node.children:
                child_data = child._fields()
                data["children"].append(child_data)
                stack.append((child, child_data))
        return result


@dataclass
class TreeBuildResult:
    """Roots of the built tree plus any data-integrity warnings."""

    nodes: List[TreeNode]
    warnings: List[str] = field(default_factory=list)


# ============================================================================
# Pure helpers
# ============================================================================


def sibling_key(row: CategoryRow) -> Tuple[int, str, int]:
    """Sort key inside a sibling group: sort_order, then name, then id."""
    return (row.sort_order, row.name, row.id)


def group_by_parent(rows: Iterable[CategoryRow]) -> Dict[Optional[int], List[CategoryRow]]:
    """
    Group rows by parent_id, each group sorted by sibling_key.

    Returns:
        Mapping of parent_id (None for roots) to ordered child rows
    """
    groups: Dict[Optional[int], List[CategoryRow]] = defaultdict(list)
    for row in rows:
        groups[row.parent_id].append(row)
    for children in groups.values():
        children.sort(key=sibling_key)
    return groups


def ancestor_ids(rows_by_id: Dict[int, CategoryRow], category_id: int) -> List[int]:
    """
    Walk parent links upward from a category.

    Args:
        rows_by_id: Snapshot indexed by id
        category_id: Starting category (not included in the result)

    Returns:
        Ancestor ids, immediate parent first. The walk stops at a root, at
        a dangling parent_id, or when a corrupt cycle revisits a node.
    """
    result = []
    seen = {category_id}
    current = rows_by_id.get(category_id)
    while current is not None and current.parent_id is not None:
        parent_id = current.parent_id
        if parent_id in seen:
            break
        result.append(parent_id)
        seen.add(parent_id)
        current = rows_by_id.get(parent_id)
    return result


def collect_descendant_ids(
    groups: Dict[Optional[int], List[CategoryRow]], category_id: int
) -> List[int]:
    """
    All descendants of a category in pre-order (parents before children).

    Args:
        groups: Output of group_by_parent()
        category_id: Subtree root (not included in the result)
    """
    result: List[int] = []
    seen: Set[int] = {category_id}
    stack = list(reversed(groups.get(category_id, [])))
    while stack:
        child = stack.pop()
        if child.id in seen:
            continue
        seen.add(child.id)
        result.append(child.id)
        stack.extend(reversed(groups.get(child.id, [])))
    return result


def _assemble(
    row: CategoryRow,
    groups: Dict[Optional[int], List[CategoryRow]],
    visited: Set[int],
    active_only: bool,
) -> TreeNode:
    visited.add(row.id)
    root = TreeNode.from_row(row)
    parents_first = [root]
    stack = [root]
    while stack:
        node = stack.pop()
        for child in groups.get(node.id, []):
            if child.id in visited:
                continue
            if active_only and not child.is_active:
                _mark_subtree(child.id, groups, visited)
                continue
            visited.add(child.id)
            child_node = TreeNode.from_row(child)
            node.children.append(child_node)
            parents_first.append(child_node)
            stack.append(child_node)

    # Children before parents, so the aggregates can be summed upward
    for node in reversed(parents_first):
        node.descendant_count = sum(1 + c.descendant_count for c in node.children)
        node.descendants_active = (node.is_active and node.products_count > 0) or any(
            c.descendants_active for c in node.children
        )
    return root


def _mark_subtree(
    row_id: int, groups: Dict[Optional[int], List[CategoryRow]], visited: Set[int]
) -> None:
    stack = [row_id]
    while stack:
        current = stack.pop()
        if current in visited:
            continue
        visited.add(current)
        stack.extend(child.id for child in groups.get(current, []))


# ============================================================================
# Tree builder
# ============================================================================


def build_tree(
    rows: List[CategoryRow],
    root_parent_id: Optional[int] = None,
    active_only: bool = False,
) -> TreeBuildResult:
    """
    Assemble the nested category tree from a flat snapshot.

    One pass groups rows by parent_id; assembly then touches each row once,
    starting from the rows whose parent_id == root_parent_id. Every level is
    sorted by sort_order (name, then id, break ties).

    Args:
        rows: Category snapshot (see category_service.get_all_rows)
        root_parent_id: Build only below this category (None = whole tree)
        active_only: Drop inactive categories together with their subtrees

    Returns:
        TreeBuildResult with root nodes and data-integrity warnings. Orphans
        and cycle members are only reported for whole-tree builds.
    """
    groups = group_by_parent(rows)
    visited: Set[int] = set()
    warnings: List[str] = []

    roots = list(groups.get(root_parent_id, []))

    if root_parent_id is None:
        known_ids = {row.id for row in rows}
        orphans = [
            row for row in rows if row.parent_id is not None and row.parent_id not in known_ids
        ]
        for orphan in orphans:
            warnings.append(
                f"Category {orphan.id} references missing parent {orphan.parent_id}; "
                f"shown as a root"
            )
        roots.extend(orphans)
        roots.sort(key=sibling_key)

    nodes = []
    for row in roots:
        if row.id in visited:
            continue
        if active_only and not row.is_active:
            _mark_subtree(row.id, groups, visited)
            continue
        nodes.append(_assemble(row, groups, visited, active_only))

    if root_parent_id is None:
        # Rows still unvisited hang off a parent cycle; break each at its smallest id
        for row in sorted(rows, key=lambda r: r.id):
            if row.id in visited:
                continue
            if active_only and not row.is_active:
                _mark_subtree(row.id, groups, visited)
                continue
            warnings.append(
                f"Category {row.id} is part of a parent cycle; shown as a root"
            )
            nodes.append(_assemble(row, groups, visited, active_only))

    if warnings:
        log_operation(
            logger, "build_tree", "integrity_warning",
            level=logging.WARNING, warnings=warnings,
        )

    return TreeBuildResult(nodes=nodes, warnings=warnings)


def tree_to_rows(nodes: List[TreeNode], parent_id: Optional[int] = None) -> List[CategoryRow]:
    """
    Flatten a nested tree back into rows (the inverse of build_tree).

    parent_id and sort_order come from each node's position in the tree, so
    the result describes the tree exactly as given.

    Args:
        nodes: Sibling nodes to emit
        parent_id: parent_id to assign to those nodes

    Returns:
        Rows in pre-order
    """
    rows: List[CategoryRow] = []
    stack = [(node, parent_id, index) for index, node in reversed(list(enumerate(nodes)))]
    while stack:
        node, node_parent_id, index = stack.pop()
        rows.append(
            CategoryRow(
                id=node.id,
                name=node.name,
                slug=node.slug,
                parent_id=node_parent_id,
                sort_order=index,
                is_active=node.is_active,
                is_featured=node.is_featured,
                products_count=node.products_count,
                description=node.description,
            )
        )
        stack.extend(
            (child, node.id, child_index)
            for child_index, child in reversed(list(enumerate(node.children)))
        )
    return rows


def find_node(nodes: List[TreeNode], category_id: int) -> Optional[TreeNode]:
    """Depth-first search for a node by id."""
    stack = list(reversed(nodes))
    while stack:
        node = stack.pop()
        if node.id == category_id:
            return node
        stack.extend(reversed(node.children))
    return None


# ============================================================================
# Session-backed reads
# ============================================================================


def _load_rows(sess: Session) -> List[CategoryRow]:
    # Lazy import to avoid circular dependency
    from catalog_tree.services.category_service import get_all_rows

    return get_all_rows(session=sess)


def get_tree(
    root_parent_id: Optional[int] = None,
    active_only: bool = False,
    session: Optional[Session] = None,
) -> TreeBuildResult:
    """
    Build the category tree from the latest committed state.

    Args:
        root_parent_id: Build only below this category (None = whole tree)
        active_only: Drop inactive categories together with their subtrees
        session: Optional database session

    Returns:
        TreeBuildResult

    Raises:
        CategoryNotFound: If root_parent_id doesn't exist
    """

    def _impl(sess: Session) -> TreeBuildResult:
        rows = _load_rows(sess)
        if root_parent_id is not None and all(row.id != root_parent_id for row in rows):
            raise CategoryNotFound(root_parent_id)
        return build_tree(rows, root_parent_id=root_parent_id, active_only=active_only)

    if session is not None:
        return _impl(session)
    with session_scope() as session:
        return _impl(session)


def get_ancestors(category_id: int, session: Optional[Session] = None) -> List[CategoryRow]:
    """
    Get path from category to root (for breadcrumb display).

    Args:
        category_id: ID of category
        session: Optional database session

    Returns:
        Ancestors ordered from immediate parent to root

    Raises:
        CategoryNotFound: If category_id doesn't exist
    """

    def _impl(sess: Session) -> List[CategoryRow]:
        rows_by_id = {row.id: row for row in _load_rows(sess)}
        if category_id not in rows_by_id:
            raise CategoryNotFound(category_id)
        return [
            rows_by_id[a] for a in ancestor_ids(rows_by_id, category_id) if a in rows_by_id
        ]

    if session is not None:
        return _impl(session)
    with session_scope() as session:
        return _impl(session)


def get_descendant_ids(category_id: int, session: Optional[Session] = None) -> List[int]:
    """
    Get all descendant ids (recursive) of a category, parents first.

    Raises:
        CategoryNotFound: If category_id doesn't exist
    """

    def _impl(sess: Session) -> List[int]:
        rows = _load_rows(sess)
        if all(row.id != category_id for row in rows):
            raise CategoryNotFound(category_id)
        return collect_descendant_ids(group_by_parent(rows), category_id)

    if session is not None:
        return _impl(session)
    with session_scope() as session:
        return _impl(session)
