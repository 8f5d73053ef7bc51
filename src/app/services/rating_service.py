# src/app/services/rating_service.py
"""
Rating submission service.
Stores ratings, keeps the recipe aggregate in sync and auto-approves recipes.
"""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from src.app.config import settings
from src.app.domain.errors import AlreadyRatedError, ConflictError, RecipeNotFoundError, ValidationError
from src.app.domain.models import (
    CookingSession,
    Rating,
    RatingStats,
    RatingSubmission,
    Recipe,
    compute_rating_stats,
)
from src.app.infra import metrics
from src.app.infra.db.base import Precondition, RecordKey, RecordStore
from src.app.infra.db.keys import (
    ENTITY_RATING,
    ENTITY_RATING_MARKER,
    GSI1,
    METADATA,
    RATING_PREFIX,
    cooking_sk,
    rater_sk,
    rating_sk,
    recipe_pk,
    user_pk,
)
from src.app.services.approval import ApprovalTrigger

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5

MESSAGE_SUBMITTED = "Rating submitted successfully"


def _now_utc() -> str:
    return datetime.now(timezone.utc).isoformat()


def validate_rating_value(rating: object) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise ValidationError("rating", "Rating must be an integer between 1 and 5")
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError("rating", "Rating must be between 1 and 5")
    return rating


def load_recipe(store: RecordStore, recipe_id: str) -> Recipe:
    item = store.get(RecordKey(recipe_pk(recipe_id), METADATA))
    if not item:
        raise RecipeNotFoundError(recipe_id)
    item.setdefault("recipe_id", recipe_id)
    return Recipe.from_item(item)


class RatingService:
    """
    Service for submitting ratings.

    Responsibilities:
    - Enforce one rating per (recipe, user)
    - Flag raters who completed a cooking session of the recipe
    - Recompute the recipe aggregate from the stored ratings
    - Hand recipes crossing the threshold to the ApprovalTrigger
    """

    def __init__(
        self,
        store: RecordStore,
        approval_trigger: ApprovalTrigger,
        min_average: float = settings.RATING_AUTO_APPROVAL_MIN_AVERAGE,
        min_count: int = settings.RATING_AUTO_APPROVAL_MIN_COUNT,
        marker_grace_seconds: float = settings.RATING_MARKER_GRACE_SECONDS,
    ):
        self._store = store
        self._approval = approval_trigger
        self.min_average = min_average
        self.min_count = min_count
        self.marker_grace_seconds = marker_grace_seconds

    def submit_rating(
        self,
        recipe_id: str,
        user_id: str,
        rating: int,
        comment: Optional[str] = None,
        history_id: Optional[str] = None,
    ) -> RatingSubmission:
        """
        Submit a user's rating for a recipe.

        Args:
            recipe_id: The rated recipe
            user_id: The authenticated rater
            rating: Integer score from 1 to 5
            comment: Optional free text
            history_id: Optional cooking session backing the rating

        Returns:
            RatingSubmission with the stored rating and the new aggregate

        Raises:
            ValidationError: If an argument is malformed
            RecipeNotFoundError: If the recipe does not exist
            AlreadyRatedError: If the user already rated this recipe
        """
        score = validate_rating_value(rating)
        if not recipe_id:
            raise ValidationError("recipe_id", "Recipe ID is required")
        if not user_id:
            raise ValidationError("user_id", "User ID is required")

        recipe = load_recipe(self._store, recipe_id)

        if self.find_user_rating(user_id, recipe_id):
            raise AlreadyRatedError(recipe_id, user_id)

        is_verified_cook = bool(history_id) and self.verify_cooked_recipe(user_id, recipe_id, history_id)

        new_rating = self._store_rating(recipe_id, user_id, score, comment, history_id, is_verified_cook)

        stats = self.recalculate_aggregate(recipe_id)
        self._write_aggregate(recipe_id, stats)

        auto_approved = False
        message = MESSAGE_SUBMITTED
        if self.should_auto_approve(recipe, stats) and self._approval.approve(recipe, stats.average_rating):
            auto_approved = True
            message = (
                f"{MESSAGE_SUBMITTED}. Recipe auto-approved with average rating of "
                f"{stats.average_rating:.2f}!"
            )

        logger.info(
            "Rating submitted: rating_id=%s, recipe_id=%s, user_id=%s, rating=%d, average=%.2f, count=%d, auto_approved=%s",
            new_rating.rating_id, recipe_id, user_id, score, stats.average_rating, stats.rating_count, auto_approved,
        )
        metrics.track_rating_submitted(score, is_verified_cook, auto_approved)

        return RatingSubmission(
            rating=new_rating,
            average_rating=stats.average_rating,
            rating_count=stats.rating_count,
            auto_approved=auto_approved,
            message=message,
        )

    def should_auto_approve(self, recipe: Recipe, stats: RatingStats) -> bool:
        return (
            not recipe.is_approved
            and stats.rating_count >= self.min_count
            and stats.average_rating >= self.min_average
        )

    def recalculate_aggregate(self, recipe_id: str) -> RatingStats:
        """Rebuild the aggregate from every rating currently stored for the recipe."""
        values = [
            int(item.get("rating") or 0)
            for item in self._store.iter_query(recipe_pk(recipe_id), RATING_PREFIX)
        ]
        return compute_rating_stats(values)

    def refresh_aggregate(self, recipe_id: str) -> RatingStats:
        stats = self.recalculate_aggregate(recipe_id)
        self._write_aggregate(recipe_id, stats)
        return stats

    def find_user_rating(self, user_id: str, recipe_id: str) -> Optional[Rating]:
        for item in self._store.iter_query(user_pk(user_id), RATING_PREFIX, index_name=GSI1):
            if item.get("recipe_id") == recipe_id:
                return Rating.from_item(item)
        return None

    def verify_cooked_recipe(self, user_id: str, recipe_id: str, history_id: str) -> bool:
        item = self._store.get(RecordKey(user_pk(user_id), cooking_sk(history_id)))
        if not item:
            return False
        session = CookingSession.from_item(item)
        return session.recipe_id == recipe_id and session.is_completed

    def _store_rating(
        self,
        recipe_id: str,
        user_id: str,
        score: int,
        comment: Optional[str],
        history_id: Optional[str],
        is_verified_cook: bool,
    ) -> Rating:
        now = _now_utc()
        new_rating = Rating(
            rating_id=str(uuid4()),
            recipe_id=recipe_id,
            user_id=user_id,
            rating=score,
            comment=comment,
            history_id=history_id,
            is_verified_cook=is_verified_cook,
            created_at=now,
            updated_at=now,
        )

        marker_key = RecordKey(recipe_pk(recipe_id), rater_sk(user_id))
        marker = {
            **marker_key.as_dict(),
            "entity_type": ENTITY_RATING_MARKER,
            "recipe_id": recipe_id,
            "user_id": user_id,
            "rating_id": new_rating.rating_id,
            "created_at": now,
        }
        try:
            self._store.put(marker, Precondition(must_not_exist=True))
        except ConflictError as error:
            self._reclaim_orphaned_marker(marker_key, marker, error)

        sort_key = rating_sk(now, new_rating.rating_id)
        try:
            self._store.put({
                "PK": recipe_pk(recipe_id),
                "SK": sort_key,
                "GSI1PK": user_pk(user_id),
                "GSI1SK": sort_key,
                "entity_type": ENTITY_RATING,
                **new_rating.to_dict(),
            })
        except Exception:
            self._release_marker(marker_key)
            raise

        return new_rating

    def _reclaim_orphaned_marker(self, marker_key: RecordKey, marker: dict, conflict: ConflictError) -> None:
        """
        Take over a marker whose rating was never written.

        A marker left behind by a failed submission would otherwise block the
        user forever. Markers younger than the grace period may belong to a
        submission still writing its rating and are honoured.
        """
        recipe_id, user_id = marker["recipe_id"], marker["user_id"]
        existing = self._store.get(marker_key)
        if existing is None:
            precondition = Precondition(must_not_exist=True)
        elif self._marker_is_orphaned(marker_key, existing):
            precondition = Precondition(must_exist=True)
            if existing.get("rating_id"):
                precondition.equals["rating_id"] = existing["rating_id"]
        else:
            raise AlreadyRatedError(recipe_id, user_id) from conflict

        try:
            self._store.put(marker, precondition)
        except ConflictError as error:
            raise AlreadyRatedError(recipe_id, user_id) from error

        logger.warning(
            "Reclaimed orphaned rating marker: recipe_id=%s, user_id=%s, stale_rating_id=%s",
            recipe_id, user_id, (existing or {}).get("rating_id"),
        )

    def _marker_is_orphaned(self, marker_key: RecordKey, marker: dict) -> bool:
        rating_id = marker.get("rating_id")
        created_at = marker.get("created_at")
        if rating_id and created_at:
            if self._store.get(RecordKey(marker_key.pk, rating_sk(str(created_at), str(rating_id)))):
                return False
            try:
                claimed = datetime.fromisoformat(str(created_at))
            except ValueError:
                return True
            if claimed.tzinfo is None:
                claimed = claimed.replace(tzinfo=timezone.utc)
            age = (datetime.now(timezone.utc) - claimed).total_seconds()
            return age >= self.marker_grace_seconds
        return True

    def _release_marker(self, marker_key: RecordKey) -> None:
        try:
            self._store.delete(marker_key)
        except Exception:
            # leftover markers are reclaimed by the next submission
            logger.exception("Failed to release rating marker: pk=%s, sk=%s", marker_key.pk, marker_key.sk)

    def _write_aggregate(self, recipe_id: str, stats: RatingStats) -> None:
        self._store.conditional_update(
            RecordKey(recipe_pk(recipe_id), METADATA),
            {
                "average_rating": stats.average_rating,
                "rating_count": stats.rating_count,
                "updated_at": _now_utc(),
            },
        )
