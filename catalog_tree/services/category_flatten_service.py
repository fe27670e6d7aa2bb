"""
Category flatten service - depth-annotated list projection of the tree.

Feature: category hierarchy engine, flatten projector.

flatten() turns a (sub)tree plus the caller's expand/collapse state into an
ordered list of FlatRow values for linear rendering (drag-and-drop lists,
indented tables). It is a pure function: the same (tree, expand state)
always yields the same list, and the list is recomputed rather than patched
whenever either input changes.

Expand state belongs to the caller. It is a mapping of category id to
bool; ids missing from the mapping count as expanded.
"""

from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Mapping, Optional

from sqlalchemy.orm import Session

from catalog_tree.services.category_tree_service import TreeNode, get_tree
from catalog_tree.services.database import session_scope


@dataclass(frozen=True)
class FlatRow:
    """
    One displayed line of the flattened tree.

    Attributes:
        id / name / slug: The category
        parent_id: The category's parent (None for roots)
        depth: Distance from the roots passed to flatten() (roots are 0)
        order: Position among displayed siblings
        is_expanded: Expand state the row was rendered with
        has_children: Whether the category has children (shown or not)
    """

    id: int
    name: str
    slug: str
    parent_id: Optional[int]
    depth: int
    order: int
    is_expanded: bool
    has_children: bool
    is_active: bool = True
    is_featured: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


def is_expanded(expand_state: Optional[Mapping[int, bool]], node_id: int) -> bool:
    """Expanded unless the state explicitly says otherwise."""
    if expand_state is None:
        return True
    return expand_state.get(node_id, True)


def flatten(
    nodes: List[TreeNode],
    expand_state: Optional[Mapping[int, bool]] = None,
) -> List[FlatRow]:
    """
    Project a tree into a pre-order, depth-annotated list.

    A node's children follow it immediately, but only when the node is
    expanded; collapsed nodes still appear, their descendants do not.

    Args:
        nodes: Roots of the (sub)tree; they are rendered at depth 0
        expand_state: id -> expanded flag; None or missing ids mean expanded

    Returns:
        Ordered FlatRow list
    """
    result: List[FlatRow] = []
    stack = [(node, 0, index) for index, node in reversed(list(enumerate(nodes)))]

    while stack:
        node, depth, index = stack.pop()
        expanded = is_expanded(expand_state, node.id)
        result.append(
            FlatRow(
                id=node.id,
                name=node.name,
                slug=node.slug,
                parent_id=node.parent_id,
                depth=depth,
                order=index,
                is_expanded=expanded,
                has_children=node.has_children,
                is_active=node.is_active,
                is_featured=node.is_featured,
            )
        )
        if expanded and node.children:
            stack.extend(
                (child, depth + 1, child_index)
                for child_index, child in reversed(list(enumerate(node.children)))
            )

    return result


def toggle_expand(
    expand_state: Optional[Mapping[int, bool]], node_id: int
) -> Dict[int, bool]:
    """
    Flip one node's expand flag.

    Returns a new mapping; the input is left untouched and the store is
    never consulted.
    """
    new_state = dict(expand_state or {})
    new_state[node_id] = not is_expanded(expand_state, node_id)
    return new_state


def expand_state_from_ids(nodes: List[TreeNode], expanded_ids: Iterable[int]) -> Dict[int, bool]:
    """
    Build an expand state in which exactly expanded_ids are expanded.

    Every node of the given tree gets an explicit flag, so nothing falls
    back to the expanded default.
    """
    wanted = set(expanded_ids)
    state: Dict[int, bool] = {}
    stack = list(nodes)
    while stack:
        node = stack.pop()
        state[node.id] = node.id in wanted
        stack.extend(node.children)
    return state


def rows_to_tree(rows: List[FlatRow]) -> List[TreeNode]:
    """
    Rebuild parent/child structure from a flattened list.

    Uses depth to find each row's parent (the nearest preceding row one
    level up). Only the structure is reproduced; aggregates are not.

    Raises:
        ValueError: If depths jump by more than one level, or a row's
            parent_id disagrees with the position its depth implies
    """
    roots: List[TreeNode] = []
    stack: List[TreeNode] = []

    for row in rows:
        if row.depth > len(stack):
            raise ValueError(f"Row {row.id} at depth {row.depth} has no parent row above it")
        del stack[row.depth:]

        node = TreeNode(
            id=row.id,
            name=row.name,
            slug=row.slug,
            parent_id=row.parent_id,
            sort_order=row.order,
            is_active=row.is_active,
            is_featured=row.is_featured,
        )
        if stack:
            parent = stack[-1]
            if row.parent_id != parent.id:
                raise ValueError(
                    f"Row {row.id} claims parent {row.parent_id} but sits under {parent.id}"
                )
            parent.children.append(node)
        else:
            roots.append(node)
        stack.append(node)

    return roots


def get_flat_list(
    root_parent_id: Optional[int] = None,
    expanded_ids: Optional[Iterable[int]] = None,
    active_only: bool = False,
    session: Optional[Session] = None,
) -> List[FlatRow]:
    """
    Flattened list of the latest committed tree.

    Args:
        root_parent_id: Project only below this category (None = whole tree)
        expanded_ids: Exactly these ids are expanded; None expands everything
        active_only: Drop inactive categories together with their subtrees
        session: Optional database session

    Returns:
        Ordered FlatRow list

    Raises:
        CategoryNotFound: If root_parent_id doesn't exist
    """

    def _impl(sess: Session) -> List[FlatRow]:
        nodes = get_tree(root_parent_id, active_only=active_only, session=sess).nodes
        state = None if expanded_ids is None else expand_state_from_ids(nodes, expanded_ids)
        return flatten(nodes, state)

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)
