"""Timezone-aware UTC timestamps for model defaults.

Usage:
    from catalog_tree.utils.datetime_utils import utc_now

    updated_at = Column(DateTime, default=utc_now, onupdate=utc_now)
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return the current UTC time with tzinfo attached."""
    return datetime.now(timezone.utc)
