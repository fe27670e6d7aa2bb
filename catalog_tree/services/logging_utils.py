"""Service layer logging utilities.

Provides structured logging functions for service operations, so every
mutation of the category tree leaves one consistently formatted entry.

Usage:
    from catalog_tree.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    log_operation(
        logger,
        operation="reorder",
        outcome="success",
        moved_id=12,
        target_id=9,
        updated=4,
    )

    log_operation(
        logger,
        operation="reorder",
        outcome="cycle_rejected",
        level=logging.WARNING,
        moved_id=12,
        new_parent_id=15,
    )
"""

import logging
from typing import Any

LOGGER_PREFIX = "catalog_tree.services"


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger named 'catalog_tree.services.<module>'

    Example:
        >>> get_service_logger("catalog_tree.services.category_service").name
        'catalog_tree.services.category_service'
    """
    if "." in name:
        name = name.split(".")[-1]
    return logging.getLogger(f"{LOGGER_PREFIX}.{name}")


def log_operation(
    logger: logging.Logger,
    operation: str,
    outcome: str,
    level: int = logging.INFO,
    **context: Any,
) -> None:
    """
    Log a service operation with structured context.

    The message is "<operation>: <outcome>"; the context is attached via
    'extra' so handlers can emit it as structured fields.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "create_category", "reorder")
        outcome: Outcome description (e.g., "success", "duplicate_slug")
        level: Log level (default: INFO)
        **context: Additional context fields (category ids, counts, errors)
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    logger.log(level, f"{operation}: {outcome}", extra=extra)
