"""Tests for category_service: the category store."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import IntegrityError

from catalog_tree.models.category import Category
from catalog_tree.services import category_service
from catalog_tree.services.dto import CategoryFilter, PaginationParams
from catalog_tree.services.exceptions import (
    CategoryNotFound,
    CycleRejected,
    DatabaseError,
    DuplicateSlug,
    InvalidParent,
    ValidationError,
)


def _order_of(*categories):
    return [category_service.get_category(c.id).sort_order for c in categories]


# ============================================================================
# create_category tests
# ============================================================================


class TestCreateCategory:
    """Tests for category_service.create_category()."""

    def test_create_with_name_generates_slug(self, test_db):
        """Happy path: name provided, slug generated, placed first."""
        cat = category_service.create_category(name="Running Shoes")
        assert cat.name == "Running Shoes"
        assert cat.slug == "running-shoes"
        assert cat.sort_order == 0
        assert cat.parent_id is None
        assert cat.is_active is True
        assert cat.is_featured is False
        assert cat.version == 1
        assert cat.uuid is not None

    def test_create_appends_to_sibling_group(self, hierarchy):
        """Without sort_order a category goes to the end of its group."""
        c = category_service.create_category(name="C", parent_id=hierarchy.root.id)
        assert c.sort_order == 2

    def test_create_with_sort_order_inserts_and_renumbers(self, hierarchy):
        """An explicit position shifts the existing siblings down."""
        c = category_service.create_category(
            name="C", parent_id=hierarchy.root.id, sort_order=0
        )
        assert c.sort_order == 0
        assert _order_of(hierarchy.a, hierarchy.b) == [1, 2]

    def test_create_with_sort_order_past_end_is_appended(self, hierarchy):
        """A position beyond the group lands at the end."""
        c = category_service.create_category(
            name="C", parent_id=hierarchy.root.id, sort_order=10
        )
        assert c.sort_order == 2

    def test_create_explicit_slug_is_lowercased(self, test_db):
        """Explicit slugs are stored lowercased."""
        cat = category_service.create_category(name="Shoes", slug="Shoes")
        assert cat.slug == "shoes"

    def test_create_duplicate_slug_raises(self, test_db):
        """Explicit slug colliding case-insensitively raises DuplicateSlug."""
        existing = category_service.create_category(name="Shoes", slug="Shoes")

        with pytest.raises(DuplicateSlug) as exc_info:
            category_service.create_category(name="More Shoes", slug="shoes")

        assert exc_info.value.conflict_id == existing.id
        assert exc_info.value.conflict_name == "Shoes"
        assert "Shoes" in str(exc_info.value)

    def test_duplicate_slug_writes_nothing(self, test_db):
        """A rejected create leaves the store unchanged."""
        category_service.create_category(name="Shoes", slug="shoes")
        with pytest.raises(DuplicateSlug):
            category_service.create_category(name="Other", slug="SHOES")

        session = test_db()
        assert session.query(Category).count() == 1

    def test_generated_slug_collision_appends_suffix(self, test_db):
        """Generated slugs get the smallest free numeric suffix."""
        first = category_service.create_category(name="Shoes")
        second = category_service.create_category(name="Shoes")
        third = category_service.create_category(name="shoes!")
        assert first.slug == "shoes"
        assert second.slug == "shoes-1"
        assert third.slug == "shoes-2"

    def test_create_empty_name_raises(self, test_db):
        """Empty name raises ValidationError."""
        with pytest.raises(ValidationError, match="Name"):
            category_service.create_category(name="   ")

    def test_create_non_text_name_raises(self, test_db):
        with pytest.raises(ValidationError, match="Name"):
            category_service.create_category(name=123)

    def test_create_non_text_description_raises(self, test_db):
        with pytest.raises(ValidationError, match="Description"):
            category_service.create_category(name="Shoes", description=42)

    def test_create_malformed_slug_raises(self, test_db):
        """Slugs with spaces or punctuation are rejected."""
        with pytest.raises(ValidationError, match="Slug"):
            category_service.create_category(name="Shoes", slug="my shoes!")

    def test_create_negative_sort_order_raises(self, test_db):
        with pytest.raises(ValidationError, match="Sort order"):
            category_service.create_category(name="Shoes", sort_order=-1)

    def test_create_unknown_parent_raises(self, test_db):
        """parent_id must reference an existing category."""
        with pytest.raises(InvalidParent):
            category_service.create_category(name="Orphan", parent_id=999)

    def test_create_strips_name_and_blank_description(self, test_db):
        cat = category_service.create_category(name="  Boots  ", description="   ")
        assert cat.name == "Boots"
        assert cat.description is None

    def test_create_with_session(self, test_db):
        """Creating with an explicit session works."""
        session = test_db()
        cat = category_service.create_category(name="Boots", session=session)
        assert cat.id is not None
        session.commit()


# ============================================================================
# Lookup tests
# ============================================================================


class TestLookup:
    """Tests for get_category, get_category_by_slug and get_all_rows."""

    def test_get_category(self, hierarchy):
        cat = category_service.get_category(hierarchy.a.id)
        assert cat.name == "A"

    def test_get_category_missing_raises(self, test_db):
        with pytest.raises(CategoryNotFound):
            category_service.get_category(42)

    def test_get_by_slug_ignores_case(self, hierarchy):
        cat = category_service.get_category_by_slug("ROOT")
        assert cat.id == hierarchy.root.id

    def test_get_by_slug_missing_raises(self, test_db):
        with pytest.raises(CategoryNotFound):
            category_service.get_category_by_slug("nothing-here")

    def test_get_all_rows_snapshot(self, hierarchy):
        """Rows are immutable snapshots of every category."""
        rows = category_service.get_all_rows()
        assert {row.name for row in rows} == {"Root", "A", "B", "A1", "A2"}
        a_row = next(row for row in rows if row.id == hierarchy.a.id)
        assert a_row.parent_id == hierarchy.root.id
        with pytest.raises(AttributeError):
            a_row.name = "changed"


# ============================================================================
# list_page tests
# ============================================================================


class TestListPage:
    """Tests for category_service.list_page()."""

    def test_list_empty(self, test_db):
        result = category_service.list_page()
        assert result.items == []
        assert result.total == 0
        assert result.pages == 1

    def test_search_matches_name_and_slug(self, test_db):
        category_service.create_category(name="Running Shoes")
        category_service.create_category(name="Boots", slug="winter-footwear")
        category_service.create_category(name="Hats")

        by_name = category_service.list_page(CategoryFilter(search="shoe"))
        by_slug = category_service.list_page(CategoryFilter(search="FOOTWEAR"))

        assert [c.name for c in by_name.items] == ["Running Shoes"]
        assert [c.name for c in by_slug.items] == ["Boots"]

    def test_status_filter(self, test_db):
        category_service.create_category(name="Visible")
        category_service.create_category(name="Hidden", is_active=False)

        active = category_service.list_page(CategoryFilter(status="active"))
        inactive = category_service.list_page(CategoryFilter(status="inactive"))

        assert [c.name for c in active.items] == ["Visible"]
        assert [c.name for c in inactive.items] == ["Hidden"]

    def test_pagination(self, test_db):
        for i in range(5):
            category_service.create_category(name=f"Category {i}")

        result = category_service.list_page(pagination=PaginationParams(page=2, per_page=2))

        assert result.total == 5
        assert result.pages == 3
        assert [c.name for c in result.items] == ["Category 2", "Category 3"]
        assert result.has_next is True
        assert result.has_prev is True


# ============================================================================
# update_category tests
# ============================================================================


class TestUpdateCategory:
    """Tests for category_service.update_category()."""

    def test_rename(self, hierarchy):
        cat = category_service.update_category(hierarchy.a.id, {"name": "  Apparel "})
        assert cat.name == "Apparel"
        assert cat.version == hierarchy.a.version + 1

    def test_change_slug(self, hierarchy):
        cat = category_service.update_category(hierarchy.a.id, {"slug": "Apparel"})
        assert cat.slug == "apparel"

    def test_keep_own_slug(self, hierarchy):
        """Re-submitting the current slug is not a conflict."""
        cat = category_service.update_category(hierarchy.a.id, {"slug": "a"})
        assert cat.slug == "a"

    def test_slug_conflict_raises(self, hierarchy):
        with pytest.raises(DuplicateSlug):
            category_service.update_category(hierarchy.a.id, {"slug": "B"})
        assert category_service.get_category(hierarchy.a.id).slug == "a"

    def test_slug_conflict_writes_no_other_field(self, hierarchy):
        """A rejected update leaves the name it carried unwritten too."""
        with pytest.raises(DuplicateSlug):
            category_service.update_category(
                hierarchy.a.id, {"name": "Apparel", "slug": "b", "is_featured": True}
            )

        cat = category_service.get_category(hierarchy.a.id)
        assert cat.name == "A"
        assert cat.slug == "a"
        assert cat.is_featured is False
        assert cat.version == hierarchy.a.version

    def test_non_text_slug_raises(self, hierarchy):
        with pytest.raises(ValidationError, match="Slug"):
            category_service.update_category(hierarchy.a.id, {"slug": 123})

    def test_unknown_field_raises(self, hierarchy):
        with pytest.raises(ValidationError, match="Unknown field"):
            category_service.update_category(hierarchy.a.id, {"colour": "red"})

    def test_missing_category_raises(self, test_db):
        with pytest.raises(CategoryNotFound):
            category_service.update_category(99, {"name": "Nope"})

    def test_parent_change_appends_and_renumbers(self, hierarchy):
        """Moving A1 under B closes the gap in A's group."""
        moved = category_service.update_category(hierarchy.a1.id, {"parent_id": hierarchy.b.id})

        assert moved.parent_id == hierarchy.b.id
        assert moved.sort_order == 0
        assert category_service.get_category(hierarchy.a2.id).sort_order == 0

    def test_parent_change_to_descendant_rejected(self, hierarchy):
        with pytest.raises(CycleRejected):
            category_service.update_category(hierarchy.a.id, {"parent_id": hierarchy.a1.id})
        assert category_service.get_category(hierarchy.a.id).parent_id == hierarchy.root.id

    def test_sort_order_change_repositions(self, hierarchy):
        category_service.update_category(hierarchy.b.id, {"sort_order": 0})
        assert _order_of(hierarchy.b, hierarchy.a) == [0, 1]

    def test_set_active(self, hierarchy):
        cat = category_service.set_active(hierarchy.b.id, False)
        assert cat.is_active is False


# ============================================================================
# Storage failure translation
# ============================================================================


class TestFlushErrors:
    """IntegrityErrors from the database become service errors."""

    def _failing_session(self, message):
        session = MagicMock()
        session.flush.side_effect = IntegrityError("INSERT", {}, Exception(message))
        return session

    def test_slug_index_violation_becomes_duplicate_slug(self):
        session = self._failing_session("UNIQUE constraint failed: index 'uq_category_slug_lower'")
        with pytest.raises(DuplicateSlug):
            category_service._flush(session, "shoes")

    def test_other_violation_becomes_database_error(self):
        session = self._failing_session("NOT NULL constraint failed: categories.name")
        with pytest.raises(DatabaseError) as exc_info:
            category_service._flush(session, "shoes")
        assert isinstance(exc_info.value.original_error, IntegrityError)
