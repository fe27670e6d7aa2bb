"""
Category admin service - the operation surface callers talk to.

Feature: category hierarchy engine, admin operations.

Wraps the engine services in the operations an admin front end needs and
returns plain dictionaries (JSON-ready). Every mutation returns a
MutationResult whose `invalidated` lists the derived views (tree, flat
list, folder pages, list page) that are now stale and must be re-fetched;
reads are always recomputed from the latest commit, so there is nothing
else to invalidate.

Errors are the ServiceError subclasses raised by the underlying services,
passed through unchanged.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from catalog_tree.services import (
    category_deletion_service,
    category_flatten_service,
    category_folder_service,
    category_reorder_service,
    category_service,
    category_slug_service,
    category_tree_service,
)
from catalog_tree.services.dto import CategoryFilter, PaginationParams
from catalog_tree.utils.constants import DEFAULT_PAGE_SIZE, DERIVED_VIEWS, STATUS_ALL


@dataclass(frozen=True)
class MutationResult:
    """Result of a mutating operation plus the views it made stale."""

    value: Any
    invalidated: Tuple[str, ...] = field(default=DERIVED_VIEWS)

    def to_dict(self) -> Dict[str, Any]:
        return {"value": self.value, "invalidated": list(self.invalidated)}


# ============================================================================
# Reads
# ============================================================================


def tree(root_parent_id: Optional[int] = None, active_only: bool = False) -> Dict[str, Any]:
    """Nested tree as {"nodes": [...], "warnings": [...]}."""
    result = category_tree_service.get_tree(root_parent_id, active_only=active_only)
    return {
        "nodes": [node.to_dict() for node in result.nodes],
        "warnings": list(result.warnings),
    }


def flat_list(
    root_parent_id: Optional[int] = None,
    expanded_ids: Optional[Iterable[int]] = None,
    active_only: bool = False,
) -> List[Dict[str, Any]]:
    rows = category_flatten_service.get_flat_list(
        root_parent_id, expanded_ids=expanded_ids, active_only=active_only
    )
    return [row.to_dict() for row in rows]


def children(parent_id: Optional[int] = None, active_only: bool = False) -> Dict[str, Any]:
    """One folder level plus the breadcrumb leading to it."""
    rows = category_folder_service.list_children(parent_id, active_only=active_only)
    breadcrumb = [] if parent_id is None else category_folder_service.get_breadcrumb(parent_id)
    return {
        "parent_id": parent_id,
        "breadcrumb": breadcrumb,
        "items": [row.to_dict() for row in rows],
    }


def list_page(
    search: Optional[str] = None,
    status: str = STATUS_ALL,
    page: int = 1,
    per_page: int = DEFAULT_PAGE_SIZE,
) -> Dict[str, Any]:
    """
    Flat paginated listing.

    Raises:
        ValueError: For an unknown status or out-of-range page values
    """
    result = category_service.list_page(
        CategoryFilter(search=search, status=status),
        PaginationParams(page=page, per_page=per_page),
    )
    return {
        "items": [category.to_dict() for category in result.items],
        "total": result.total,
        "page": result.page,
        "per_page": result.per_page,
        "pages": result.pages,
        "has_next": result.has_next,
        "has_prev": result.has_prev,
    }


def check_slug(candidate: str, exclude_id: Optional[int] = None) -> Dict[str, Any]:
    check = category_slug_service.check_slug_available(candidate, exclude_id=exclude_id)
    conflict = None
    if check.conflict is not None:
        conflict = {
            "id": check.conflict.id,
            "name": check.conflict.name,
            "slug": check.conflict.slug,
        }
    return {"available": check.available, "conflict": conflict}


def generate_slug(base: str, exclude_id: Optional[int] = None) -> Dict[str, Any]:
    suggestion = category_slug_service.generate_unique_slug(base, exclude_id=exclude_id)
    return {
        "slug": suggestion.slug,
        "is_original": suggestion.is_original,
        "counter": suggestion.counter,
    }


# ============================================================================
# Mutations
# ============================================================================


def create(name: str, **fields) -> MutationResult:
    """Create a category; value is the stored category."""
    category = category_service.create_category(name, **fields)
    return MutationResult(category.to_dict())


def update(category_id: int, updates: Dict[str, Any]) -> MutationResult:
    category = category_service.update_category(category_id, updates)
    return MutationResult(category.to_dict())


def reorder(moved_id: int, target_id: int) -> MutationResult:
    """
    Drag-and-drop move; value reports the new parent and the rows written.

    A drop onto itself writes nothing but is still reported as a mutation
    so callers can treat every successful reorder the same way.
    """
    plan = category_reorder_service.reorder(moved_id, target_id)
    return MutationResult(
        {
            "moved_id": moved_id,
            "target_id": target_id,
            "new_parent_id": plan.new_parent_id,
            "updated": len(plan.updates),
        }
    )


def delete(category_id: int, policy) -> MutationResult:
    """Delete under a cascade policy; value is {affected_count, deleted_ids, moved_ids}."""
    result = category_deletion_service.delete_category(category_id, policy)
    return MutationResult(result.to_dict())
