"""Service layer logging utilities.

Provides structured logging functions for service operations, enabling
consistent log format and context across the production, packing and
finished goods services.

Usage:
    from batchflow.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    # Log successful operation
    log_operation(
        logger,
        operation="issue_stock_for_packing",
        outcome="success",
        stock_id=12,
        quantity="30",
    )

    # Log a business-rule rejection
    log_operation(
        logger,
        operation="claim_fg_dispatch",
        outcome="already_claimed",
        level=logging.WARNING,
        dispatch_id=7,
    )
"""

import logging
from typing import Any

LOGGER_PREFIX = "batchflow.services"

# LogRecord attributes that cannot be passed through `extra`
_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", None, None).__dict__.keys()
) | {"message", "asctime"}


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger instance with the 'batchflow.services' prefix.

    Example:
        >>> logger = get_service_logger(__name__)
        >>> logger.name
        'batchflow.services.dispatch_service'
    """
    # Extract just the module name if full path is provided
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

    The message is "<operation>: <outcome>"; the operation, outcome and
    context fields are attached to the record via `extra`. Context keys that
    collide with LogRecord attributes are prefixed with "ctx_".

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "package_bulk_product")
        outcome: Outcome description (e.g., "success", "insufficient_stock")
        level: Log level (default: INFO). Use WARNING for rejected requests.
        **context: Additional context fields (entity IDs, quantities, errors)

    Example:
        >>> log_operation(
        ...     logger,
        ...     operation="create_fg_dispatch",
        ...     outcome="success",
        ...     dispatch_id=3,
        ...     release_code="2503011030AB12CD",
        ... )
        # Logs: "create_fg_dispatch: success" with extra context
    """
    extra = {"operation": operation, "outcome": outcome}
    for key, value in context.items():
        if key in _RESERVED_ATTRS:
            key = f"ctx_{key}"
        extra[key] = value
    logger.log(level, f"{operation}: {outcome}", extra=extra)
