# src/app/domain/models.py
"""
Domain models for recipe ratings and auto-approval.
These are pure data structures with no infrastructure dependencies.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Iterable, Optional


class ApprovalState(str, Enum):
    """Approval lifecycle of a recipe. PENDING -> APPROVED is one-way."""
    PENDING = "pending"
    APPROVED = "approved"


APPROVAL_TYPE_AUTO_RATING = "auto_rating"
NOTIFICATION_TYPE_RECIPE_APPROVED = "recipe_approved"
COOKING_STATUS_COMPLETED = "completed"


def _as_bool(value: object) -> bool:
    return bool(value) if value is not None else False


def _as_int(value: object, default: int = 0) -> int:
    return int(value) if value is not None else default


def _as_float(value: object, default: float = 0.0) -> float:
    return float(value) if value is not None else default


def round_half_up(value: Decimal | float, places: int = 2) -> float:
    """Round like a person would (2.345 -> 2.35), not like round() does."""
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


@dataclass
class RatingStats:
    """Aggregate score of a recipe."""
    average_rating: float
    rating_count: int


def compute_rating_stats(values: Iterable[int]) -> RatingStats:
    """
    Derive the aggregate from the full set of rating values.

    The average is rounded half-up to two places; an empty set yields (0.0, 0).
    """
    scores = [int(value) for value in values]
    if not scores:
        return RatingStats(average_rating=0.0, rating_count=0)
    average = Decimal(sum(scores)) / Decimal(len(scores))
    return RatingStats(average_rating=round_half_up(average), rating_count=len(scores))


@dataclass
class Recipe:
    """The slice of a recipe this service reads and mutates."""
    recipe_id: str
    title: str = ""
    owner_id: Optional[str] = None
    is_approved: bool = False
    is_public: bool = False
    average_rating: float = 0.0
    rating_count: int = 0
    approval_type: Optional[str] = None
    approved_at: Optional[str] = None

    @property
    def approval_state(self) -> ApprovalState:
        return ApprovalState.APPROVED if self.is_approved else ApprovalState.PENDING

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "Recipe":
        return cls(
            recipe_id=str(item["recipe_id"]),
            title=str(item.get("title") or ""),
            # older records carry the author as user_id
            owner_id=item.get("owner_id") or item.get("user_id"),
            is_approved=_as_bool(item.get("is_approved")),
            is_public=_as_bool(item.get("is_public")),
            average_rating=_as_float(item.get("average_rating")),
            rating_count=_as_int(item.get("rating_count")),
            approval_type=item.get("approval_type"),
            approved_at=item.get("approved_at"),
        )


@dataclass
class Rating:
    """A single user's rating of a recipe. Immutable once stored."""
    rating_id: str
    recipe_id: str
    user_id: str
    rating: int
    created_at: str
    updated_at: str
    comment: Optional[str] = None
    history_id: Optional[str] = None
    is_verified_cook: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "Rating":
        return cls(
            rating_id=str(item["rating_id"]),
            recipe_id=str(item["recipe_id"]),
            user_id=str(item["user_id"]),
            rating=_as_int(item.get("rating")),
            created_at=str(item["created_at"]),
            updated_at=str(item.get("updated_at") or item["created_at"]),
            comment=item.get("comment"),
            history_id=item.get("history_id"),
            is_verified_cook=_as_bool(item.get("is_verified_cook")),
        )


@dataclass
class Notification:
    """Append-only notification for the delivery system to pick up."""
    notification_id: str
    owner_id: str
    target_id: str
    content: str
    created_at: str
    expires_at: str
    ttl: int
    type: str = NOTIFICATION_TYPE_RECIPE_APPROVED
    target_type: str = "recipe"
    is_read: bool = False

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass
class CookingSession:
    """A user's cooking history entry; only used to verify raters."""
    history_id: str
    user_id: str
    recipe_id: Optional[str]
    status: Optional[str]

    @property
    def is_completed(self) -> bool:
        return self.status == COOKING_STATUS_COMPLETED

    @classmethod
    def from_item(cls, item: dict[str, Any]) -> "CookingSession":
        return cls(
            history_id=str(item.get("history_id") or ""),
            user_id=str(item.get("user_id") or ""),
            recipe_id=item.get("recipe_id"),
            status=item.get("status"),
        )


@dataclass
class EnrichmentResult:
    """Outcome reported by the ingredient-enrichment collaborator."""
    total_ingredients: int = 0
    new_ingredients: int = 0
    existing_ingredients: int = 0
    added_ingredient_ids: list[str] = field(default_factory=list)


@dataclass
class RatingSubmission:
    """Result of submitting a rating."""
    rating: Rating
    average_rating: float
    rating_count: int
    auto_approved: bool
    message: str


@dataclass
class RecipeRatingsPage:
    recipe_id: str
    average_rating: float
    rating_count: int
    ratings: list[Rating]
    next_page_token: Optional[str] = None


@dataclass
class UserRatingsPage:
    user_id: str
    ratings: list[Rating]
    next_page_token: Optional[str] = None
