"""Tests for the Category model and its database constraints."""

import pytest
from sqlalchemy.exc import IntegrityError

from catalog_tree.models.category import Category
from catalog_tree.services import database as db_module


def _add(session, **fields):
    category = Category(**fields)
    session.add(category)
    session.flush()
    return category


class TestCategoryConstraints:
    """The schema backs up the service-level rules."""

    def test_slug_unique_ignoring_case(self, test_db):
        session = test_db()
        _add(session, name="Shoes", slug="shoes")

        with pytest.raises(IntegrityError):
            _add(session, name="Shoes Again", slug="SHOES")
        session.rollback()

    def test_parent_with_children_cannot_be_deleted(self, test_db):
        session = test_db()
        parent = _add(session, name="Parent", slug="parent")
        _add(session, name="Child", slug="child", parent_id=parent.id)

        session.delete(parent)
        with pytest.raises(IntegrityError):
            session.flush()
        session.rollback()

    def test_negative_sort_order_rejected(self, test_db):
        session = test_db()
        with pytest.raises(IntegrityError):
            _add(session, name="Bad", slug="bad", sort_order=-1)
        session.rollback()

    def test_defaults(self, test_db):
        session = test_db()
        category = _add(session, name="Shoes", slug="shoes")

        assert category.sort_order == 0
        assert category.is_active is True
        assert category.is_featured is False
        assert category.products_count == 0
        assert category.version == 1
        session.rollback()

    def test_version_bumped_on_update(self, test_db):
        session = test_db()
        category = _add(session, name="Shoes", slug="shoes")

        category.name = "Footwear"
        session.flush()

        assert category.version == 2
        session.rollback()

    def test_to_dict(self, test_db):
        session = test_db()
        category = _add(session, name="Shoes", slug="shoes")

        data = category.to_dict()

        assert data["name"] == "Shoes"
        assert isinstance(data["created_at"], str)
        session.rollback()


class TestDatabaseIsolation:
    """Each test gets its own database, even after leaving a tree behind."""

    def test_leaves_parent_and_child_rows(self, test_db):
        session = test_db()
        parent = _add(session, name="Parent", slug="parent")
        _add(session, name="Child", slug="child", parent_id=parent.id)
        session.commit()

    def test_next_database_starts_empty(self, test_db):
        assert db_module.get_session_factory() is test_db
        assert test_db().query(Category).count() == 0
