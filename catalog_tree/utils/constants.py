"""
Constants for the catalog tree engine.

This module defines system-wide constants including:
- Application metadata
- Field length limits for category validation
- Pagination defaults
- Slug generation limits
- Names of the derived views that mutations invalidate
"""

from typing import List, Tuple

# ============================================================================
# Application Metadata
# ============================================================================

APP_NAME = "Catalog Tree"
APP_VERSION = "0.1.0"
DATABASE_FILENAME = "catalog_tree.db"
DATABASE_VERSION = "1.0"

# Environment variables
ENV_VAR_ENVIRONMENT = "CATALOG_TREE_ENV"
ENV_VAR_DATABASE_URL = "CATALOG_TREE_DATABASE_URL"
ENV_VAR_LOG_LEVEL = "CATALOG_TREE_LOG_LEVEL"

# ============================================================================
# Field Limits
# ============================================================================

MAX_NAME_LENGTH = 255
MAX_SLUG_LENGTH = 100
MAX_XML_ID_LENGTH = 100
MAX_META_TITLE_LENGTH = 70
MAX_META_DESCRIPTION_LENGTH = 160
MAX_META_KEYWORDS_LENGTH = 255

# Slugs are lowercase letters, digits and hyphens
SLUG_PATTERN = r"^[a-z0-9-]+$"

# ============================================================================
# Pagination
# ============================================================================

DEFAULT_PAGE_SIZE = 12
MAX_PAGE_SIZE = 1000

# Status filter values for list_page
STATUS_ALL = "all"
STATUS_ACTIVE = "active"
STATUS_INACTIVE = "inactive"
CATEGORY_STATUSES: List[str] = [STATUS_ALL, STATUS_ACTIVE, STATUS_INACTIVE]

# ============================================================================
# Slugs
# ============================================================================

# Upper bound for numeric suffixes tried by generate_unique_slug
MAX_SLUG_SUFFIX = 10000

# Recommended delay between the last keystroke and a slug availability check
SLUG_CHECK_DEBOUNCE_MS = 400

# ============================================================================
# Derived Views
# ============================================================================

VIEW_TREE = "tree"
VIEW_FLAT_LIST = "flat_list"
VIEW_CHILDREN = "children"
VIEW_LIST_PAGE = "list_page"

# Every mutation makes all of these stale
DERIVED_VIEWS: Tuple[str, ...] = (VIEW_TREE, VIEW_FLAT_LIST, VIEW_CHILDREN, VIEW_LIST_PAGE)

# ============================================================================
# Error Messages
# ============================================================================

ERROR_REQUIRED_FIELD = "This field is required"
ERROR_INVALID_SLUG = "Slug may contain only lowercase letters, digits and hyphens"
ERROR_INVALID_NON_NEGATIVE = "Must be zero or greater"
ERROR_NOT_TEXT = "Must be text"
