from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional


class RatingServiceError(Exception):
    code = "internal_error"
    status_code = 500

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": self.code,
            "message": self.message,
            "details": self.details,
            "timestamp": self.timestamp,
        }


class ValidationError(RatingServiceError):
    code = "validation_error"
    status_code = 400

    def __init__(self, field: str, message: str):
        super().__init__(message, {"field": field})
        self.field = field


class NotFoundError(RatingServiceError):
    code = "not_found"
    status_code = 404


class RecipeNotFoundError(NotFoundError):
    code = "recipe_not_found"

    def __init__(self, recipe_id: str):
        super().__init__("Recipe not found", {"recipe_id": recipe_id})
        self.recipe_id = recipe_id


class ConflictError(RatingServiceError):
    code = "conflict"
    status_code = 409


class AlreadyRatedError(ConflictError):
    code = "already_rated"

    def __init__(self, recipe_id: str, user_id: str):
        super().__init__(
            "You have already rated this recipe",
            {"recipe_id": recipe_id, "user_id": user_id},
        )
        self.recipe_id = recipe_id
        self.user_id = user_id


class InternalError(RatingServiceError):
    code = "internal_error"
    status_code = 500


class DatabaseError(InternalError):
    code = "database_error"
    status_code = 503

    def __init__(self, operation: str, reason: str, retry_after: Optional[int] = None):
        details: dict[str, Any] = {"operation": operation}
        if retry_after is not None:
            details["retry_after"] = retry_after
        super().__init__(f"Database operation {operation} failed: {reason}", details)
        self.operation = operation
        self.reason = reason
        self.retry_after = retry_after


class RateLimitedError(DatabaseError):
    code = "rate_limit_exceeded"
    status_code = 429

    def __init__(self, operation: str, retry_after: int = 30):
        super().__init__(
            operation,
            "Database is temporarily overloaded. Please try again.",
            retry_after=retry_after,
        )
