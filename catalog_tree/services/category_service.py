"""
Category Service - the category store.

This service owns category identity, slugs, parent links and sibling order:
create, lookup, the flat paginated listing, field updates and the immutable
row snapshot the read projections are built from.

Structural changes never happen here directly: parent_id and sort_order
updates are routed through category_reorder_service, and deletions through
category_deletion_service, so sibling groups stay contiguous.

Session Management Pattern:
- All functions accept optional `session` parameter
- If session is provided, use it directly (allows callers to manage transactions)
- If session is None, create a new session_scope for the operation
"""

import logging
from typing import List, Optional

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from catalog_tree.models.category import Category
from catalog_tree.services.category_slug_service import find_slug_conflict, generate_unique_slug
from catalog_tree.services.database import session_scope
from catalog_tree.services.dto import CategoryFilter, CategoryRow, PaginatedResult, PaginationParams
from catalog_tree.services.exceptions import (
    CategoryNotFound,
    DatabaseError,
    DuplicateSlug,
    InvalidParent,
    ValidationError,
)
from catalog_tree.services.logging_utils import get_service_logger, log_operation
from catalog_tree.utils.constants import STATUS_ACTIVE, STATUS_INACTIVE
from catalog_tree.utils.validators import sanitize_string, validate_category_data

logger = get_service_logger(__name__)

# Fields update_category writes directly
_PLAIN_FIELDS = (
    "description",
    "xml_id",
    "is_active",
    "is_featured",
    "products_count",
    "meta_title",
    "meta_description",
    "meta_keywords",
)
# Fields routed through the reorder service
_STRUCTURAL_FIELDS = ("parent_id", "sort_order")
_UPDATABLE_FIELDS = ("name", "slug") + _PLAIN_FIELDS + _STRUCTURAL_FIELDS


# ============================================================================
# Helpers
# ============================================================================


def _normalize_slug(slug: str) -> str:
    return slug.strip().lower()


def _get_or_raise(sess: Session, category_id: int) -> Category:
    category = sess.query(Category).filter(Category.id == category_id).first()
    if category is None:
        raise CategoryNotFound(category_id)
    return category


def _raise_duplicate_slug(sess: Session, slug: str, exclude_id: Optional[int] = None) -> None:
    conflict = find_slug_conflict(slug, sess, exclude_id=exclude_id)
    if conflict is not None:
        raise DuplicateSlug(slug, conflict.id, conflict.name, conflict.slug)


def _flush(sess: Session, slug: Optional[str]) -> None:
    """Flush pending writes, translating slug index violations into DuplicateSlug."""
    try:
        sess.flush()
    except IntegrityError as e:
        if slug is not None and "slug" in str(e.orig).lower():
            raise DuplicateSlug(slug) from e
        raise DatabaseError(str(e.orig), e) from e


def _current_parent_id(category_id: int, session: Optional[Session]) -> Optional[int]:
    def _impl(sess: Session) -> Optional[int]:
        return _get_or_raise(sess, category_id).parent_id

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


def _siblings(sess: Session, parent_id: Optional[int]) -> List[Category]:
    return (
        sess.query(Category)
        .filter(Category.parent_id.is_(None) if parent_id is None else Category.parent_id == parent_id)
        .order_by(Category.sort_order, Category.name, Category.id)
        .all()
    )


# ============================================================================
# CRUD Operations
# ============================================================================


def create_category(
    name: str,
    slug: Optional[str] = None,
    parent_id: Optional[int] = None,
    sort_order: Optional[int] = None,
    description: Optional[str] = None,
    is_active: bool = True,
    is_featured: bool = False,
    xml_id: Optional[str] = None,
    meta_title: Optional[str] = None,
    meta_description: Optional[str] = None,
    meta_keywords: Optional[str] = None,
    products_count: int = 0,
    session: Optional[Session] = None,
) -> Category:
    """
    Create a new category.

    Args:
        name: Category display name (e.g., "Running Shoes")
        slug: URL slug; generated from name when omitted. Stored lowercased.
        parent_id: Parent category (None for a root)
        sort_order: Position in the sibling group; appended at the end when
            omitted, otherwise inserted there and the group renumbered
        description, is_active, is_featured, xml_id, meta_*: Plain fields
        products_count: Products filed under this category
        session: Optional database session

    Returns:
        Created Category instance

    Raises:
        ValidationError: If a field is missing or malformed
        DuplicateSlug: If an explicit slug collides with another category
        InvalidParent: If parent_id doesn't exist
    """
    data = {
        "name": name,
        "description": description,
        "sort_order": sort_order,
        "products_count": products_count,
        "xml_id": xml_id,
        "meta_title": meta_title,
        "meta_description": meta_description,
        "meta_keywords": meta_keywords,
        "is_active": is_active,
        "is_featured": is_featured,
    }
    if slug is not None:
        data["slug"] = slug
    is_valid, errors = validate_category_data(data)
    if not is_valid:
        raise ValidationError(errors)

    def _impl(sess: Session) -> Category:
        if parent_id is not None:
            parent = sess.query(Category).filter(Category.id == parent_id).first()
            if parent is None:
                log_operation(
                    logger, "create_category", "invalid_parent",
                    level=logging.WARNING, parent_id=parent_id,
                )
                raise InvalidParent(parent_id)

        if slug is not None:
            final_slug = _normalize_slug(slug)
            try:
                _raise_duplicate_slug(sess, final_slug)
            except DuplicateSlug as e:
                log_operation(
                    logger, "create_category", "duplicate_slug",
                    level=logging.WARNING, slug=final_slug, conflict_id=e.conflict_id,
                )
                raise
        else:
            final_slug = generate_unique_slug(name, session=sess).slug

        siblings = _siblings(sess, parent_id)
        end_position = max((s.sort_order for s in siblings), default=-1) + 1

        category = Category(
            name=name.strip(),
            slug=final_slug,
            parent_id=parent_id,
            sort_order=end_position,
            description=sanitize_string(description),
            is_active=is_active,
            is_featured=is_featured,
            xml_id=sanitize_string(xml_id),
            meta_title=sanitize_string(meta_title),
            meta_description=sanitize_string(meta_description),
            meta_keywords=sanitize_string(meta_keywords),
            products_count=products_count,
        )
        sess.add(category)
        _flush(sess, final_slug)

        if sort_order is not None and sort_order < end_position:
            ordered = list(siblings)
            ordered.insert(sort_order, category)
            category_reorder_service.assign_positions(ordered)
            sess.flush()

        sess.refresh(category)
        log_operation(
            logger, "create_category", "success",
            category_id=category.id, slug=category.slug, parent_id=parent_id,
        )
        return category

    # Lazy import to avoid circular dependency
    from catalog_tree.services import category_reorder_service

    # The new member is numbered from the group as read under its lock
    with category_reorder_service.sibling_group_locks([parent_id]):
        if session is not None:
            return _impl(session)

        with session_scope() as sess:
            return _impl(sess)


def get_category(category_id: int, session: Optional[Session] = None) -> Category:
    """
    Get a category by ID.

    Raises:
        CategoryNotFound: If category doesn't exist
    """

    def _impl(sess: Session) -> Category:
        return _get_or_raise(sess, category_id)

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


def get_category_by_slug(slug: str, session: Optional[Session] = None) -> Category:
    """
    Get a category by slug, ignoring case.

    Raises:
        CategoryNotFound: If no category has this slug
    """

    def _impl(sess: Session) -> Category:
        category = find_slug_conflict(slug, sess)
        if category is None:
            raise CategoryNotFound(slug)
        return category

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


def get_all_rows(session: Optional[Session] = None) -> List[CategoryRow]:
    """
    Snapshot every category as immutable rows.

    Read projections (tree, flat list, folders) and the planners derive
    everything from this list, so one call sees one committed state.

    Returns:
        CategoryRow list ordered by sort_order, then name, then id
    """

    def _impl(sess: Session) -> List[CategoryRow]:
        categories = (
            sess.query(Category)
            .order_by(Category.sort_order, Category.name, Category.id)
            .all()
        )
        return [CategoryRow.from_model(c) for c in categories]

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


def list_page(
    category_filter: Optional[CategoryFilter] = None,
    pagination: Optional[PaginationParams] = None,
    session: Optional[Session] = None,
) -> PaginatedResult[Category]:
    """
    Flat paginated listing, independent of the hierarchy.

    Args:
        category_filter: Optional search/status filter
        pagination: Page parameters (defaults to the first page)
        session: Optional database session

    Returns:
        PaginatedResult of Category ordered by sort_order, then name
    """
    category_filter = category_filter or CategoryFilter()
    pagination = pagination or PaginationParams()

    def _impl(sess: Session) -> PaginatedResult[Category]:
        query = sess.query(Category)

        search = (category_filter.search or "").strip()
        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(
                or_(func.lower(Category.name).like(pattern), func.lower(Category.slug).like(pattern))
            )

        if category_filter.status == STATUS_ACTIVE:
            query = query.filter(Category.is_active.is_(True))
        elif category_filter.status == STATUS_INACTIVE:
            query = query.filter(Category.is_active.is_(False))

        total = query.count()
        items = (
            query.order_by(Category.sort_order, Category.name, Category.id)
            .offset(pagination.offset())
            .limit(pagination.per_page)
            .all()
        )
        return PaginatedResult(
            items=items, total=total, page=pagination.page, per_page=pagination.per_page
        )

    if session is not None:
        return _impl(session)

    with session_scope() as sess:
        return _impl(sess)


def update_category(
    category_id: int,
    updates: dict,
    session: Optional[Session] = None,
) -> Category:
    """
    Update a category's fields.

    Args:
        category_id: Category ID to update
        updates: Partial field dictionary. name/slug/plain fields are written
            directly; parent_id goes through move_category and sort_order
            through update_order, both in this same transaction.
        session: Optional database session

    Returns:
        Updated Category instance

    Raises:
        CategoryNotFound: If category doesn't exist
        ValidationError: If a field is unknown, missing or malformed
        DuplicateSlug: If the new slug collides with another category
        InvalidParent / CycleRejected: For invalid parent_id changes
    """
    unknown = sorted(set(updates) - set(_UPDATABLE_FIELDS))
    if unknown:
        raise ValidationError([f"Unknown field(s): {', '.join(unknown)}"])

    is_valid, errors = validate_category_data(updates, partial=True)
    if not is_valid:
        raise ValidationError(errors)

    def _impl(sess: Session) -> Category:
        category = _get_or_raise(sess, category_id)

        new_slug = None
        if "slug" in updates:
            new_slug = _normalize_slug(updates["slug"])
            try:
                _raise_duplicate_slug(sess, new_slug, exclude_id=category_id)
            except DuplicateSlug as e:
                log_operation(
                    logger, "update_category", "duplicate_slug",
                    level=logging.WARNING, category_id=category_id, slug=new_slug,
                    conflict_id=e.conflict_id,
                )
                raise
            category.slug = new_slug

        if "name" in updates:
            category.name = updates["name"].strip()

        for key in _PLAIN_FIELDS:
            if key in updates:
                value = updates[key]
                if isinstance(value, str):
                    value = sanitize_string(value)
                setattr(category, key, value)

        _flush(sess, new_slug)

        if "parent_id" in updates and updates["parent_id"] != category.parent_id:
            category_reorder_service.move_category(category_id, updates["parent_id"], session=sess)

        if updates.get("sort_order") is not None:
            category_reorder_service.update_order(category_id, updates["sort_order"], session=sess)

        sess.flush()
        sess.refresh(category)
        log_operation(
            logger, "update_category", "success",
            category_id=category_id, fields=sorted(updates),
        )
        return category

    # Lazy import to avoid circular dependency
    from catalog_tree.services import category_reorder_service

    # Structural changes hold the old and new groups' locks until commit
    group_keys = set()
    if any(key in updates for key in _STRUCTURAL_FIELDS):
        group_keys.add(_current_parent_id(category_id, session))
        if "parent_id" in updates:
            group_keys.add(updates["parent_id"])

    with category_reorder_service.sibling_group_locks(group_keys):
        if session is not None:
            return _impl(session)

        with session_scope() as sess:
            return _impl(sess)


def set_active(category_id: int, is_active: bool, session: Optional[Session] = None) -> Category:
    """Activation toggle; shorthand for update_category(id, {"is_active": ...})."""
    return update_category(category_id, {"is_active": is_active}, session=session)
