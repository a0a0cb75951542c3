"""Service layer logging utilities.

Provides structured logging functions for service operations, enabling
consistent log format and context across the lot ledger, the batch lifecycle
and materialization.

Usage:
    from src.services.logging_utils import get_service_logger, log_operation

    logger = get_service_logger(__name__)

    # Log successful operation
    log_operation(
        logger,
        operation="reserve",
        outcome="success",
        batch_id=12,
        lot_id=3,
        quantity="30.000",
    )

    # Log a refused operation
    log_operation(
        logger,
        operation="finalize_batch",
        outcome="qa_not_resolved",
        level=logging.WARNING,
        batch_id=12,
        qa_status="hold",
    )
"""

import logging
from typing import Any

LOGGER_PREFIX = "batch_tracker.services"


def get_service_logger(name: str) -> logging.Logger:
    """
    Get a logger configured for service operations.

    Args:
        name: Logger name (typically __name__ of the calling module)

    Returns:
        Logger named 'batch_tracker.services.<module>'.

    Example:
        >>> logger = get_service_logger("src.services.lot_service")
        >>> logger.name
        'batch_tracker.services.lot_service'
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

    The context is passed via the 'extra' parameter so handlers that format
    structured records (JSON, key=value) can pick the fields up individually.

    Args:
        logger: Logger instance to use
        operation: Operation name (e.g., "reserve", "finalize_batch")
        outcome: Outcome description (e.g., "success", "insufficient_quantity")
        level: Log level (default: INFO)
        **context: Additional context fields (batch_id, lot_id, quantity, ...)
    """
    extra = {
        "operation": operation,
        "outcome": outcome,
        **context,
    }
    logger.log(level, f"{operation}: {outcome}", extra=extra)
