"""
Structured logging helpers for consistent log formatting.

Provides utilities for concise batch and lineup summaries.
"""
import logging


def log_batch_plan(logger: logging.Logger, kind: str, requested: int, hits: int) -> None:
    """
    Log how a batch splits into cache hits and misses.

    Args:
        logger: Logger instance
        kind: Entity kind being resolved
        requested: Number of distinct ids requested
        hits: Number served from the cache
    """
    logger.debug(f"{kind} batch: {requested} requested, {hits} cached, {requested - hits} to fetch")


def log_batch_summary(
    logger: logging.Logger,
    kind: str,
    decoded: int,
    failed: int
) -> None:
    """
    Log the outcome of a batch.

    Args:
        logger: Logger instance
        kind: Entity kind being resolved
        decoded: Number of entities returned
        failed: Number of ids recorded as failures
    """
    if failed:
        logger.warning(f"{kind} batch summary - Decoded: {decoded}, Failed: {failed}")
    else:
        logger.info(f"{kind} batch summary - Decoded: {decoded}")


def log_lineup_summary(
    logger: logging.Logger,
    lineup_id: str,
    stations: int,
    failures: int,
    physical: bool
) -> None:
    """Log lineup detail loading statistics."""
    logger.info(
        f"Lineup {lineup_id}: {stations} stations, {failures} failures, "
        f"physical mapping: {physical}"
    )
