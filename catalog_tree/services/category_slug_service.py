"""
Category slug service - availability checks and unique slug suggestions.

Slugs are unique across all categories, compared case-insensitively. These
are point-in-time queries with no caching; callers typing into a slug field
should debounce (SLUG_CHECK_DEBOUNCE_MS) before calling check_slug_available.

Session Management Pattern:
- All functions accept optional `session` parameter
- If session is provided, use it directly (allows callers to manage transactions)
- If session is None, create a new session_scope for the operation
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from catalog_tree.models.category import Category
from catalog_tree.services.database import session_scope
from catalog_tree.services.dto import CategoryRow
from catalog_tree.services.exceptions import ValidationError
from catalog_tree.utils.constants import MAX_SLUG_SUFFIX
from catalog_tree.utils.slug_utils import slugify, with_suffix


@dataclass(frozen=True)
class SlugCheck:
    """Result of a slug availability check."""

    available: bool
    conflict: Optional[CategoryRow] = None


@dataclass(frozen=True)
class SlugSuggestion:
    """A free slug derived from a base slug.

    Attributes:
        slug: The suggested slug
        is_original: True when the (normalized) base slug itself was free
        counter: Numeric suffix that was appended, None when is_original
    """

    slug: str
    is_original: bool
    counter: Optional[int] = None


def find_slug_conflict(
    slug: str,
    session: Session,
    exclude_id: Optional[int] = None,
) -> Optional[Category]:
    """
    Find the category already holding a slug, ignoring case.

    Args:
        slug: Slug to look up
        session: Database session
        exclude_id: Category to ignore (the one being edited)

    Returns:
        The conflicting Category, or None
    """
    query = session.query(Category).filter(func.lower(Category.slug) == slug.strip().lower())
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    return query.first()


def check_slug_available(
    candidate_slug: str,
    exclude_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> SlugCheck:
    """
    Check whether a slug is free.

    Args:
        candidate_slug: Slug to check (compared case-insensitively)
        exclude_id: Category to ignore, for edits of an existing category
        session: Optional database session

    Returns:
        SlugCheck with the conflicting category when taken

    Raises:
        ValidationError: If candidate_slug is empty
    """
    if not candidate_slug or not candidate_slug.strip():
        raise ValidationError(["Slug: This field is required"])

    def _impl(sess: Session) -> SlugCheck:
        conflict = find_slug_conflict(candidate_slug, sess, exclude_id=exclude_id)
        if conflict is None:
            return SlugCheck(available=True)
        return SlugCheck(available=False, conflict=CategoryRow.from_model(conflict))

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


def generate_unique_slug(
    base_slug: str,
    exclude_id: Optional[int] = None,
    session: Optional[Session] = None,
) -> SlugSuggestion:
    """
    Suggest a free slug by appending the smallest free numeric suffix.

    The base is normalized with slugify() first, so display names work too:
    "Test Category & More!" -> "test-category-and-more".

    Args:
        base_slug: Base slug or name
        exclude_id: Category to ignore, for edits of an existing category
        session: Optional database session

    Returns:
        SlugSuggestion (e.g., "shoes" when free, else "shoes-1", "shoes-2", ...)

    Raises:
        ValidationError: If base_slug has no usable characters, or no suffix
            up to MAX_SLUG_SUFFIX is free
    """
    normalized = slugify(base_slug or "")
    if not normalized:
        raise ValidationError([f"Slug: '{base_slug}' does not contain any usable characters"])

    def _impl(sess: Session) -> SlugSuggestion:
        if find_slug_conflict(normalized, sess, exclude_id=exclude_id) is None:
            return SlugSuggestion(slug=normalized, is_original=True)

        for counter in range(1, MAX_SLUG_SUFFIX + 1):
            candidate = with_suffix(normalized, counter)
            if find_slug_conflict(candidate, sess, exclude_id=exclude_id) is None:
                return SlugSuggestion(slug=candidate, is_original=False, counter=counter)

        raise ValidationError(
            [f"Slug: unable to find a free variant of '{normalized}' "
             f"after {MAX_SLUG_SUFFIX} attempts"]
        )

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)
