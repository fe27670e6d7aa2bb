"""Services package - Business logic layer for the catalog tree.

Architecture:
- Services: Stateless functions organized by concern
- Transactions: Managed via session_scope() context manager
- Exceptions: Consistent error handling via ServiceError hierarchy
- Read projections: Pure functions over CategoryRow snapshots

Service Modules:
- category_service: Category store (create, lookup, list page, updates)
- category_tree_service: Nested tree builder and ancestor/descendant walks
- category_flatten_service: Depth-annotated flat list with expand state
- category_reorder_service: Drag-and-drop reorder, reposition and reparent
- category_deletion_service: Delete-all / move-up cascades
- category_folder_service: One-level folder listing and breadcrumbs
- category_slug_service: Slug availability and suggestions
- category_admin_service: JSON-ready operation surface with invalidation

Infrastructure:
- exceptions: Custom exception classes for service layer errors
- database: Session management and database utilities
- logging_utils: Structured operation logging
- dto: Pagination, filters and row snapshots
"""

from . import (
    database,
    category_service,
    category_slug_service,
    category_tree_service,
    category_flatten_service,
    category_reorder_service,
    category_deletion_service,
    category_folder_service,
)

from .exceptions import (
    ServiceError,
    CategoryNotFound,
    TargetNotFound,
    DuplicateSlug,
    InvalidParent,
    CycleRejected,
    ValidationError,
    ConcurrentModification,
    DatabaseError,
)

__all__ = [
    "database",
    "category_service",
    "category_slug_service",
    "category_tree_service",
    "category_flatten_service",
    "category_reorder_service",
    "category_deletion_service",
    "category_folder_service",
    "ServiceError",
    "CategoryNotFound",
    "TargetNotFound",
    "DuplicateSlug",
    "InvalidParent",
    "CycleRejected",
    "ValidationError",
    "ConcurrentModification",
    "DatabaseError",
]
