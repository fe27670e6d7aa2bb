"""Data Transfer Objects for the service layer.

This module provides the plain data structures passed between the store
and the read projections:

- PaginationParams / PaginatedResult: page-based listing
- CategoryFilter: search/status filter for list_page
- CategoryRow: immutable snapshot of one stored category; every tree,
  flat-list and planner computation works on a list of these
"""

from dataclasses import dataclass, field
from typing import Generic, List, Optional, TypeVar

from catalog_tree.utils.constants import (
    CATEGORY_STATUSES,
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    STATUS_ALL,
)

T = TypeVar("T")


@dataclass
class PaginationParams:
    """Pagination parameters for list operations.

    Attributes:
        page: Page number (1-indexed, default 1)
        per_page: Items per page (default 12, max 1000)

    Examples:
        params = PaginationParams(page=2, per_page=25)
        result = category_service.list_page(pagination=params)

    Raises:
        ValueError: If page < 1, per_page < 1, or per_page > 1000
    """

    page: int = 1
    per_page: int = DEFAULT_PAGE_SIZE

    def __post_init__(self) -> None:
        if self.page < 1:
            raise ValueError("page must be >= 1")
        if self.per_page < 1:
            raise ValueError("per_page must be >= 1")
        if self.per_page > MAX_PAGE_SIZE:
            raise ValueError(f"per_page must be <= {MAX_PAGE_SIZE}")

    def offset(self) -> int:
        """Calculate SQL OFFSET value.

        Examples:
            >>> PaginationParams(page=1, per_page=12).offset()
            0
            >>> PaginationParams(page=3, per_page=25).offset()
            50
        """
        return (self.page - 1) * self.per_page


@dataclass
class PaginatedResult(Generic[T]):
    """Generic paginated result container.

    Attributes:
        items: List of items for this page
        total: Total number of items across all pages
        page: Current page number (1-indexed)
        per_page: Items per page
    """

    items: List[T]
    total: int
    page: int
    per_page: int

    @property
    def pages(self) -> int:
        """Total number of pages (minimum 1, even for empty results).

        Examples:
            >>> PaginatedResult(items=[], total=25, page=1, per_page=12).pages
            3
            >>> PaginatedResult(items=[], total=0, page=1, per_page=12).pages
            1
        """
        if self.total == 0:
            return 1
        return (self.total + self.per_page - 1) // self.per_page

    @property
    def has_next(self) -> bool:
        """Whether there is a page after this one."""
        return self.page < self.pages

    @property
    def has_prev(self) -> bool:
        """Whether there is a page before this one."""
        return self.page > 1


@dataclass
class CategoryFilter:
    """Filter for the flat category listing.

    Attributes:
        search: Case-insensitive substring matched against name and slug
        status: "all", "active" or "inactive"
    """

    search: Optional[str] = None
    status: str = STATUS_ALL

    def __post_init__(self) -> None:
        if self.status not in CATEGORY_STATUSES:
            raise ValueError(f"status must be one of {CATEGORY_STATUSES}, got '{self.status}'")


@dataclass(frozen=True)
class CategoryRow:
    """Immutable snapshot of one stored category."""

    id: int
    name: str
    slug: str
    parent_id: Optional[int]
    sort_order: int
    is_active: bool = True
    is_featured: bool = False
    products_count: int = 0
    description: Optional[str] = None
    version: int = field(default=1, compare=False)

    @classmethod
    def from_model(cls, category) -> "CategoryRow":
        """Snapshot a Category ORM instance."""
        return cls(
            id=category.id,
            name=category.name,
            slug=category.slug,
            parent_id=category.parent_id,
            sort_order=category.sort_order,
            is_active=category.is_active,
            is_featured=category.is_featured,
            products_count=category.products_count,
            description=category.description,
            version=category.version,
        )
