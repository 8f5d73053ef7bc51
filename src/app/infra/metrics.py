# src/app/infra/metrics.py
"""
Structured metric events, emitted as log records on the "ratings.metrics"
logger so the log pipeline can turn them into counters.
"""
from __future__ import annotations

import logging

metrics_logger = logging.getLogger("ratings.metrics")

OUTCOME_RETRYING = "retrying"
OUTCOME_EXHAUSTED = "exhausted"


def track_retry_attempt(operation: str, attempt: int, outcome: str) -> None:
    metrics_logger.info(
        "retry_attempt operation=%s attempt=%d outcome=%s",
        operation, attempt, outcome,
        extra={"metric": "retry_attempt", "operation": operation, "attempt": attempt, "outcome": outcome},
    )


def track_database_operation(operation: str, duration_ms: float, success: bool) -> None:
    metrics_logger.debug(
        "database_operation operation=%s duration_ms=%.1f success=%s",
        operation, duration_ms, success,
        extra={"metric": "database_operation", "operation": operation, "duration_ms": duration_ms, "success": success},
    )


def track_rating_submitted(rating: int, verified_cook: bool, auto_approved: bool) -> None:
    metrics_logger.info(
        "rating_submitted rating=%d verified_cook=%s auto_approved=%s",
        rating, verified_cook, auto_approved,
        extra={"metric": "rating_submitted", "rating": rating, "verified_cook": verified_cook, "auto_approved": auto_approved},
    )
