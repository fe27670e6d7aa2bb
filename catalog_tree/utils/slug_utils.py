"""Slug generation utilities for category URLs.

Slugs are URL-safe, lowercase, hyphen-separated strings derived from a
display name or a user-typed candidate.

Key Features:
- Unicode normalization (NFD decomposition) and ASCII transliteration
- "&" is spelled out as "and"
- Runs of anything that is not a letter or digit collapse to one hyphen
- Deterministic output (same input always gives same slug)

Examples:
    >>> slugify("Running Shoes")
    'running-shoes'

    >>> slugify("Test Category & More!")
    'test-category-and-more'

    >>> slugify("Crème Brûlée")
    'creme-brulee'
"""

import re
import unicodedata

from .constants import MAX_SLUG_LENGTH, SLUG_PATTERN


def slugify(text: str) -> str:
    """Generate a URL-safe slug from arbitrary text.

    Algorithm:
        1. Normalize Unicode to NFD (decompose accented characters)
        2. Encode to ASCII, ignoring non-ASCII characters
        3. Lowercase, and replace "&" with " and "
        4. Replace every run of non-alphanumeric characters with one hyphen
        5. Strip leading/trailing hyphens and truncate to MAX_SLUG_LENGTH

    Args:
        text: Name or candidate slug

    Returns:
        Slug string; empty when the input has no usable characters

    Examples:
        >>> slugify("  Extra  Spaces  ")
        'extra-spaces'

        >>> slugify("100% Cotton")
        '100-cotton'

        >>> slugify("already-a-slug")
        'already-a-slug'
    """
    if not text:
        return ""

    normalized = unicodedata.normalize("NFD", text)
    slug = normalized.encode("ascii", "ignore").decode("ascii")
    slug = slug.lower().replace("&", " and ")
    slug = re.sub(r"[^a-z0-9]+", "-", slug)
    slug = slug.strip("-")

    if len(slug) > MAX_SLUG_LENGTH:
        slug = slug[:MAX_SLUG_LENGTH].rstrip("-")

    return slug


def validate_slug_format(slug: str) -> bool:
    """Validate that a slug meets format requirements.

    Valid slugs:
        - Contain only lowercase letters, digits, and hyphens
        - Are not empty and not longer than MAX_SLUG_LENGTH

    Examples:
        >>> validate_slug_format("running-shoes")
        True

        >>> validate_slug_format("Running")
        False

        >>> validate_slug_format("")
        False
    """
    if not slug or len(slug) > MAX_SLUG_LENGTH:
        return False
    return re.match(SLUG_PATTERN, slug) is not None


def with_suffix(base_slug: str, counter: int) -> str:
    """Append a numeric disambiguating suffix, keeping within MAX_SLUG_LENGTH.

    Examples:
        >>> with_suffix("shoes", 2)
        'shoes-2'
    """
    suffix = f"-{counter}"
    head = base_slug[: MAX_SLUG_LENGTH - len(suffix)].rstrip("-")
    return f"{head}{suffix}"
