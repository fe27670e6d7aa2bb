"""Pytest configuration and fixtures for catalog tree tests."""

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, scoped_session

from catalog_tree.models.base import Base
from catalog_tree.services import database as db_module
from catalog_tree.services.dto import CategoryRow


@pytest.fixture(scope="function")
def test_db(monkeypatch):
    """Provide a clean test database for each test function.

    This fixture:
    1. Creates an in-memory SQLite database
    2. Creates all tables
    3. Provides the database to the test
    4. Disposes of the engine after the test completes, which discards the
       in-memory database (the RESTRICT parent key would refuse drop_all
       while parent and child rows remain)
    """
    # db_module registers the foreign-key pragma listener on every Engine
    engine = create_engine("sqlite:///:memory:", echo=False)

    Base.metadata.create_all(engine)

    session_factory = sessionmaker(bind=engine, expire_on_commit=False)
    Session = scoped_session(session_factory)

    # Patch the global session factory; monkeypatch restores it even when
    # the test fails
    monkeypatch.setattr(db_module, "get_session_factory", lambda: Session)

    yield Session

    Session.remove()
    engine.dispose()


@pytest.fixture(scope="function")
def hierarchy(test_db):
    """Provide a small category tree.

    Creates:
    - Root (order 0)
      - A (order 0)
        - A1 (order 0)
        - A2 (order 1)
      - B (order 1)
    """
    from catalog_tree.services import category_service

    root = category_service.create_category(name="Root")
    a = category_service.create_category(name="A", parent_id=root.id)
    b = category_service.create_category(name="B", parent_id=root.id)
    a1 = category_service.create_category(name="A1", parent_id=a.id)
    a2 = category_service.create_category(name="A2", parent_id=a.id)

    class HierarchyData:
        def __init__(self, root, a, b, a1, a2):
            self.root = root
            self.a = a
            self.b = b
            self.a1 = a1
            self.a2 = a2

    return HierarchyData(root, a, b, a1, a2)


def _make_row(id, parent_id=None, sort_order=0, name=None, **kwargs):
    name = name or f"Category {id}"
    return CategoryRow(
        id=id,
        name=name,
        slug=kwargs.pop("slug", f"category-{id}"),
        parent_id=parent_id,
        sort_order=sort_order,
        **kwargs,
    )


@pytest.fixture
def make_row():
    """Factory for CategoryRow values used by pure-function tests."""
    return _make_row


@pytest.fixture
def scenario_rows():
    """Snapshot rows: Root(1), A(2) and B(3) under Root, A1(4) and A2(5) under A."""
    return [
        _make_row(1, None, 0, "Root"),
        _make_row(2, 1, 0, "A"),
        _make_row(3, 1, 1, "B"),
        _make_row(4, 2, 0, "A1"),
        _make_row(5, 2, 1, "A2"),
    ]


@pytest.fixture
def deep_chain(test_db):
    """Store a single chain of categories deeper than the recursion limit.

    Returns the category ids from the top of the chain down.
    """
    from catalog_tree.models.category import Category

    depth = 1100
    session = test_db()
    session.add_all(
        Category(
            id=i,
            name=f"Level {i}",
            slug=f"level-{i}",
            parent_id=i - 1 if i > 1 else None,
            sort_order=0,
        )
        for i in range(1, depth + 1)
    )
    session.commit()
    return list(range(1, depth + 1))
