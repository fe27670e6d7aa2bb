"""
Category model for the catalog hierarchy.

Categories form a tree through a nullable self-reference (parent_id).
Siblings - categories sharing a parent_id - are ordered by sort_order.
"""

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Index, Integer, String, Text, func

from .base import BaseModel


class Category(BaseModel):
    """
    Category model representing one node of the catalog tree.

    Attributes:
        name: Display name (e.g., "Running Shoes")
        slug: URL-safe identifier, unique case-insensitively across all categories
        description: Optional description text
        xml_id: Optional identifier from an external catalog feed
        parent_id: Parent category, None for roots
        sort_order: Position among siblings (0-based after any reorder)
        is_active: Visible in the storefront
        is_featured: Highlighted in the storefront
        products_count: Number of products filed directly under this category
        meta_title / meta_description / meta_keywords: SEO metadata
        version: Optimistic-lock counter, bumped on every UPDATE/DELETE
    """

    __tablename__ = "categories"

    name = Column(String(255), nullable=False)
    slug = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    xml_id = Column(String(100), nullable=True)

    # RESTRICT: a parent row can only go once nothing points at it
    parent_id = Column(
        Integer,
        ForeignKey("categories.id", ondelete="RESTRICT"),
        nullable=True,
        index=True,
    )
    sort_order = Column(Integer, nullable=False, default=0)

    is_active = Column(Boolean, nullable=False, default=True)
    is_featured = Column(Boolean, nullable=False, default=False)
    products_count = Column(Integer, nullable=False, default=0)

    meta_title = Column(String(70), nullable=True)
    meta_description = Column(String(160), nullable=True)
    meta_keywords = Column(String(255), nullable=True)

    version = Column(Integer, nullable=False)

    __table_args__ = (
        CheckConstraint("parent_id IS NULL OR parent_id != id", name="ck_category_not_own_parent"),
        CheckConstraint("sort_order >= 0", name="ck_category_sort_order_non_negative"),
        CheckConstraint("products_count >= 0", name="ck_category_products_count_non_negative"),
        Index("idx_category_parent_sort", "parent_id", "sort_order"),
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Category(id={self.id}, slug='{self.slug}', parent_id={self.parent_id})>"


# Case-insensitive slug uniqueness is enforced by the database as well
Index("uq_category_slug_lower", func.lower(Category.slug), unique=True)
