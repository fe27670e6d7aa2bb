"""
Input validation functions for category data.

This module provides validation for category create/update payloads:
- String validation (required fields, length limits)
- Slug format validation
- Non-negative integer validation (sort order, product counts)

Each field check returns (is_valid, error_message); the payload-level
validators collect the messages into a list.
"""

from typing import Any, Optional, Tuple

from .constants import (
    ERROR_INVALID_NON_NEGATIVE,
    ERROR_INVALID_SLUG,
    ERROR_NOT_TEXT,
    ERROR_REQUIRED_FIELD,
    MAX_META_DESCRIPTION_LENGTH,
    MAX_META_KEYWORDS_LENGTH,
    MAX_META_TITLE_LENGTH,
    MAX_NAME_LENGTH,
    MAX_SLUG_LENGTH,
    MAX_XML_ID_LENGTH,
)
from .slug_utils import validate_slug_format

# Optional text fields and their limits
_OPTIONAL_TEXT_LIMITS = {
    "xml_id": (MAX_XML_ID_LENGTH, "External ID"),
    "meta_title": (MAX_META_TITLE_LENGTH, "Meta title"),
    "meta_description": (MAX_META_DESCRIPTION_LENGTH, "Meta description"),
    "meta_keywords": (MAX_META_KEYWORDS_LENGTH, "Meta keywords"),
}


def validate_required_string(value: Optional[str], field_name: str = "Field") -> Tuple[bool, str]:
    """
    Validate that a string field is not empty.

    Args:
        value: The string value to validate
        field_name: Name of the field for error messages

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value is None:
        return False, f"{field_name}: {ERROR_REQUIRED_FIELD}"
    if not isinstance(value, str):
        return False, f"{field_name}: {ERROR_NOT_TEXT}"
    if value.strip() == "":
        return False, f"{field_name}: {ERROR_REQUIRED_FIELD}"
    return True, ""


def validate_string_length(
    value: Optional[str], max_length: int, field_name: str = "Field"
) -> Tuple[bool, str]:
    """
    Validate that a string doesn't exceed maximum length.

    Returns:
        Tuple of (is_valid, error_message)
    """
    if value and len(value) > max_length:
        return False, f"{field_name}: Must be {max_length} characters or less"
    return True, ""


def validate_slug(value: Optional[str], field_name: str = "Slug") -> Tuple[bool, str]:
    """Validate a slug: required, length-limited, lowercase/digits/hyphens only."""
    is_valid, error = validate_required_string(value, field_name)
    if not is_valid:
        return is_valid, error
    is_valid, error = validate_string_length(value.strip(), MAX_SLUG_LENGTH, field_name)
    if not is_valid:
        return is_valid, error
    if not validate_slug_format(value.strip().lower()):
        return False, f"{field_name}: {ERROR_INVALID_SLUG}"
    return True, ""


def validate_non_negative_int(value: Any, field_name: str = "Field") -> Tuple[bool, str]:
    """Validate that a value is an integer >= 0 (bools are rejected)."""
    if isinstance(value, bool) or not isinstance(value, int):
        return False, f"{field_name}: Must be a whole number"
    if value < 0:
        return False, f"{field_name}: {ERROR_INVALID_NON_NEGATIVE}"
    return True, ""


def validate_category_data(data: dict, partial: bool = False) -> Tuple[bool, list]:  # noqa: C901
    """
    Validate the fields of a category payload.

    Args:
        data: Dictionary of category fields
        partial: If True (updates), only fields present in data are checked
                 and name is not required. A slug is checked whenever the
                 key is present (creates generate one when it is absent).

    Returns:
        Tuple of (is_valid, list_of_errors)
    """
    errors = []

    if not partial or "name" in data:
        name = data.get("name")
        is_valid, error = validate_required_string(name, "Name")
        if not is_valid:
            errors.append(error)
        else:
            is_valid, error = validate_string_length(name.strip(), MAX_NAME_LENGTH, "Name")
            if not is_valid:
                errors.append(error)

    if "slug" in data:
        is_valid, error = validate_slug(data.get("slug"))
        if not is_valid:
            errors.append(error)

    if data.get("description") is not None and not isinstance(data["description"], str):
        errors.append(f"Description: {ERROR_NOT_TEXT}")

    for key, (limit, label) in _OPTIONAL_TEXT_LIMITS.items():
        if data.get(key) is not None and not isinstance(data[key], str):
            errors.append(f"{label}: {ERROR_NOT_TEXT}")
        elif data.get(key):
            is_valid, error = validate_string_length(data[key], limit, label)
            if not is_valid:
                errors.append(error)

    if data.get("sort_order") is not None:
        is_valid, error = validate_non_negative_int(data["sort_order"], "Sort order")
        if not is_valid:
            errors.append(error)

    if data.get("products_count") is not None:
        is_valid, error = validate_non_negative_int(data["products_count"], "Products count")
        if not is_valid:
            errors.append(error)

    for flag in ("is_active", "is_featured"):
        if flag in data and data[flag] is not None and not isinstance(data[flag], bool):
            errors.append(f"{flag}: Must be true or false")

    return len(errors) == 0, errors


def sanitize_string(value: Optional[str]) -> Optional[str]:
    """
    Trim a string, turning empty results into None.

    Args:
        value: String to sanitize

    Returns:
        Stripped string or None
    """
    if value is None:
        return None
    value = value.strip()
    return value if value else None
