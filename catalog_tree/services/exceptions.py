"""Service layer exception classes for the catalog tree.

Every error a caller can recover from by changing its input derives from
ServiceError and carries enough context (ids, slugs, conflicting names) to
be shown verbatim.

Exception Hierarchy:
    ServiceError
    ├── CategoryNotFound
    ├── TargetNotFound
    ├── DuplicateSlug
    ├── InvalidParent
    ├── CycleRejected
    ├── ValidationError
    ├── ConcurrentModification
    └── DatabaseError
"""

from typing import Iterable, Optional


class ServiceError(Exception):
    """Base exception for all service layer errors."""

    pass


class CategoryNotFound(ServiceError):
    """Raised when a category cannot be found.

    Args:
        category_id: The category ID (or slug) that was not found

    Example:
        >>> raise CategoryNotFound(123)
        CategoryNotFound: Category with ID 123 not found
    """

    def __init__(self, category_id):
        self.category_id = category_id
        super().__init__(f"Category with ID {category_id} not found")


class TargetNotFound(ServiceError):
    """Raised when a reorder's drop target does not exist."""

    def __init__(self, target_id):
        self.target_id = target_id
        super().__init__(f"Drop target category {target_id} not found")


class DuplicateSlug(ServiceError):
    """Raised when a slug collides (case-insensitively) with an existing category.

    Args:
        slug: The requested slug
        conflict_id: ID of the category already holding it, when known
        conflict_name: Name of that category, when known

    Example:
        >>> raise DuplicateSlug("shoes", 4, "Shoes")
        DuplicateSlug: Slug 'shoes' is already used by category 'Shoes' (ID 4)
    """

    def __init__(
        self,
        slug: str,
        conflict_id: Optional[int] = None,
        conflict_name: Optional[str] = None,
        conflict_slug: Optional[str] = None,
    ):
        self.slug = slug
        self.conflict_id = conflict_id
        self.conflict_name = conflict_name
        self.conflict_slug = conflict_slug
        if conflict_name is not None:
            msg = f"Slug '{slug}' is already used by category '{conflict_name}' (ID {conflict_id})"
        else:
            msg = f"Slug '{slug}' is already in use"
        super().__init__(msg)


class InvalidParent(ServiceError):
    """Raised when a parent_id does not reference a usable category."""

    def __init__(self, parent_id, reason: str = "does not exist"):
        self.parent_id = parent_id
        self.reason = reason
        super().__init__(f"Invalid parent category {parent_id}: {reason}")


class CycleRejected(ServiceError):
    """Raised when a move would make a category its own ancestor.

    Example:
        >>> raise CycleRejected(3, 7)
        CycleRejected: Cannot move category 3 under 7: it would become its own ancestor
    """

    def __init__(self, category_id, new_parent_id):
        self.category_id = category_id
        self.new_parent_id = new_parent_id
        super().__init__(
            f"Cannot move category {category_id} under {new_parent_id}: "
            f"it would become its own ancestor"
        )


class ValidationError(ServiceError):
    """Raised when required fields are missing or malformed."""

    def __init__(self, errors: list):
        self.errors = errors
        error_msg = "; ".join(errors)
        super().__init__(f"Validation failed: {error_msg}")


class ConcurrentModification(ServiceError):
    """Raised when rows changed under a batch between read and commit.

    Nothing from the batch is written; the caller may re-read and retry.
    """

    def __init__(self, category_ids: Iterable = ()):
        self.category_ids = list(category_ids)
        detail = f" (categories {self.category_ids})" if self.category_ids else ""
        super().__init__(f"Categories were modified concurrently{detail}; reload and retry")


class DatabaseError(ServiceError):
    """Raised when a storage operation fails for reasons outside the caller's input."""

    def __init__(self, message: str, original_error: Exception = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")
