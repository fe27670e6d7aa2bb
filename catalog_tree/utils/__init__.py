"""Utilities package for the catalog tree engine."""

from .config import get_config, reset_config
from .slug_utils import slugify, validate_slug_format

__all__ = [
    "get_config",
    "reset_config",
    "slugify",
    "validate_slug_format",
]
