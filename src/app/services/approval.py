# src/app/services/approval.py
"""
Side effects of a recipe crossing the auto-approval threshold.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import uuid4

from src.app.config import settings
from src.app.domain.errors import ConflictError
from src.app.domain.models import APPROVAL_TYPE_AUTO_RATING, Notification, Recipe
from src.app.infra.db.base import Precondition, RecordKey, RecordStore
from src.app.infra.db.keys import (
    ENTITY_NOTIFICATION,
    METADATA,
    notification_sk,
    recipe_pk,
    unread_notifications_pk,
    user_pk,
)
from src.app.services.ingredient_enrichment import IngredientEnricher

logger = logging.getLogger(__name__)


class ApprovalTrigger:
    """
    Moves a recipe from pending to approved and fires the follow-ups.

    The approval write is guarded so only one caller ever wins it; the
    enrichment call and the owner notification run only for that caller and
    their failures never undo the approval.
    """

    def __init__(
        self,
        store: RecordStore,
        enricher: IngredientEnricher,
        notification_ttl_days: int = settings.NOTIFICATION_TTL_DAYS,
    ):
        self._store = store
        self._enricher = enricher
        self.notification_ttl_days = notification_ttl_days

    def approve(self, recipe: Recipe, average_rating: float) -> bool:
        if not self._mark_approved(recipe.recipe_id):
            return False

        self._enrich_catalog(recipe.recipe_id)

        if recipe.owner_id:
            self._notify_owner(recipe.owner_id, recipe.recipe_id, average_rating)
        else:
            logger.warning("Approved recipe has no owner, skipping notification: recipe_id=%s", recipe.recipe_id)

        return True

    def _mark_approved(self, recipe_id: str) -> bool:
        now = datetime.now(timezone.utc).isoformat()
        try:
            self._store.conditional_update(
                RecordKey(recipe_pk(recipe_id), METADATA),
                {
                    "is_approved": True,
                    "is_public": True,
                    "approval_type": APPROVAL_TYPE_AUTO_RATING,
                    "approved_at": now,
                    "updated_at": now,
                },
                Precondition(must_exist=True, not_equals={"is_approved": True}),
            )
        except ConflictError:
            logger.info("Recipe already approved by a concurrent submission: recipe_id=%s", recipe_id)
            return False

        logger.info("Recipe auto-approved: recipe_id=%s, approved_at=%s", recipe_id, now)
        return True

    def _enrich_catalog(self, recipe_id: str) -> None:
        try:
            result = self._enricher.enrich_from_approved_recipe(recipe_id)
        except Exception:
            logger.exception("Failed to enrich ingredient catalog: recipe_id=%s", recipe_id)
            return

        if result.new_ingredients > 0:
            logger.info(
                "Ingredient catalog enriched from approved recipe: recipe_id=%s, total=%d, new=%d, existing=%d, added=%s",
                recipe_id,
                result.total_ingredients,
                result.new_ingredients,
                result.existing_ingredients,
                result.added_ingredient_ids,
            )
        else:
            logger.info(
                "No new ingredients for catalog: recipe_id=%s, total=%d",
                recipe_id, result.total_ingredients,
            )

    def _notify_owner(self, owner_id: str, recipe_id: str, average_rating: float) -> Optional[Notification]:
        notification = self.build_notification(owner_id, recipe_id, average_rating)
        try:
            self._store.put({
                "PK": user_pk(owner_id),
                "SK": notification_sk(notification.created_at, notification.notification_id),
                "GSI1PK": unread_notifications_pk(owner_id),
                "GSI1SK": notification.created_at,
                "entity_type": ENTITY_NOTIFICATION,
                "user_id": owner_id,
                **notification.to_dict(),
            })
        except Exception:
            logger.exception(
                "Failed to write approval notification: owner_id=%s, recipe_id=%s",
                owner_id, recipe_id,
            )
            return None

        logger.info(
            "Auto-approval notification sent: owner_id=%s, recipe_id=%s, notification_id=%s",
            owner_id, recipe_id, notification.notification_id,
        )
        return notification

    def build_notification(self, owner_id: str, recipe_id: str, average_rating: float) -> Notification:
        now = datetime.now(timezone.utc)
        expires = now + timedelta(days=self.notification_ttl_days)
        return Notification(
            notification_id=str(uuid4()),
            owner_id=owner_id,
            target_id=recipe_id,
            content=f"Your recipe has been auto-approved with an average rating of {average_rating:.1f} stars!",
            created_at=now.isoformat(),
            expires_at=expires.isoformat(),
            ttl=int(expires.timestamp()),
        )
