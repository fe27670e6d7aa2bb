"""
Category folder service - one hierarchy level at a time.

Feature: category hierarchy engine, folder view.

A thin read projection over the category snapshot for folder-style
browsing: the children of one parent (or the roots) with child counts, and
the root-first path used to rebuild a breadcrumb. The service keeps no
navigation state; callers that need a back stack use BreadcrumbStack.
"""

from dataclasses import asdict, dataclass
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from catalog_tree.services.category_service import get_all_rows
from catalog_tree.services.category_tree_service import ancestor_ids, group_by_parent
from catalog_tree.services.database import session_scope
from catalog_tree.services.exceptions import CategoryNotFound


@dataclass(frozen=True)
class FolderRow:
    """One category shown as a folder entry."""

    id: int
    name: str
    slug: str
    sort_order: int
    is_active: bool
    children_count: int
    description: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def list_children(
    parent_id: Optional[int] = None,
    active_only: bool = False,
    session: Optional[Session] = None,
) -> List[FolderRow]:
    """
    List the direct children of a category, ordered by sort_order.

    Args:
        parent_id: Folder to open (None lists the roots)
        active_only: Hide inactive categories (children_count then counts
            active children only)
        session: Optional database session

    Returns:
        FolderRow list

    Raises:
        CategoryNotFound: If parent_id doesn't exist
    """

    def _impl(sess: Session) -> List[FolderRow]:
        rows = get_all_rows(session=sess)
        if parent_id is not None and all(row.id != parent_id for row in rows):
            raise CategoryNotFound(parent_id)

        groups = group_by_parent(
            row for row in rows if row.is_active or not active_only
        )
        return [
            FolderRow(
                id=row.id,
                name=row.name,
                slug=row.slug,
                sort_order=row.sort_order,
                is_active=row.is_active,
                children_count=len(groups.get(row.id, [])),
                description=row.description,
            )
            for row in groups.get(parent_id, [])
        ]

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


def get_first_level(active_only: bool = False, session: Optional[Session] = None) -> List[FolderRow]:
    """Root categories, shaped like list_children()."""
    return list_children(None, active_only=active_only, session=session)


def get_breadcrumb(category_id: int, session: Optional[Session] = None) -> List[Dict]:
    """
    Root-first path to a category, the category included.

    Returns:
        List of {"id", "name"} dicts, e.g.
        [{"id": 1, "name": "Clothing"}, {"id": 7, "name": "Shoes"}]

    Raises:
        CategoryNotFound: If category_id doesn't exist
    """

    def _impl(sess: Session) -> List[Dict]:
        rows_by_id = {row.id: row for row in get_all_rows(session=sess)}
        if category_id not in rows_by_id:
            raise CategoryNotFound(category_id)
        path = [category_id] + [a for a in ancestor_ids(rows_by_id, category_id) if a in rows_by_id]
        return [{"id": cid, "name": rows_by_id[cid].name} for cid in reversed(path)]

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


class BreadcrumbStack:
    """
    Caller-owned folder navigation stack.

    Holds {"id", "name"} entries from the outermost opened folder inward;
    an empty stack means the root level.

    Example:
        stack = BreadcrumbStack()
        stack.push(1, "Clothing")
        list_children(stack.current_parent_id)
    """

    def __init__(self, entries: Optional[List[Dict]] = None):
        self._entries: List[Dict] = [dict(e) for e in (entries or [])]

    @classmethod
    def for_category(cls, category_id: int, session: Optional[Session] = None) -> "BreadcrumbStack":
        """Stack positioned inside category_id (rebuilt from get_breadcrumb)."""
        return cls(get_breadcrumb(category_id, session=session))

    @property
    def entries(self) -> List[Dict]:
        return [dict(e) for e in self._entries]

    @property
    def current_parent_id(self) -> Optional[int]:
        """Folder currently open (None at the root level)."""
        return self._entries[-1]["id"] if self._entries else None

    @property
    def is_root(self) -> bool:
        return not self._entries

    def push(self, category_id: int, name: str) -> None:
        """Open a child folder."""
        self._entries.append({"id": category_id, "name": name})

    def pop(self) -> Optional[Dict]:
        """Go up one level; returns the folder left, or None at the root."""
        if not self._entries:
            return None
        return self._entries.pop()

    def truncate(self, category_id: Optional[int]) -> None:
        """
        Jump back to a folder already on the stack (None jumps to the root).

        Raises:
            ValueError: If category_id is not on the stack
        """
        if category_id is None:
            self._entries = []
            return
        for index, entry in enumerate(self._entries):
            if entry["id"] == category_id:
                del self._entries[index + 1:]
                return
        raise ValueError(f"Category {category_id} is not on the breadcrumb stack")

    def __len__(self) -> int:
        return len(self._entries)
