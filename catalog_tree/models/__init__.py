"""
Database models package.

This package contains the SQLAlchemy ORM models for the catalog tree.
"""

from .base import Base, BaseModel
from .category import Category

__all__ = [
    "Base",
    "BaseModel",
    "Category",
]
