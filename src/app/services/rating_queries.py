from __future__ import annotations

import logging
from typing import Optional

from src.app.config import settings
from src.app.domain.errors import ValidationError
from src.app.domain.models import Rating, RecipeRatingsPage, UserRatingsPage
from src.app.infra.db.base import RecordStore
from src.app.infra.db.keys import GSI1, RATING_PREFIX, recipe_pk, user_pk
from src.app.services.rating_service import load_recipe

logger = logging.getLogger(__name__)


class RatingQueries:
    """Paginated, newest-first read paths over stored ratings."""

    def __init__(
        self,
        store: RecordStore,
        default_limit: int = settings.RATINGS_DEFAULT_PAGE_SIZE,
        max_limit: int = settings.RATINGS_MAX_PAGE_SIZE,
    ):
        self._store = store
        self.default_limit = default_limit
        self.max_limit = max_limit

    def get_recipe_ratings(
        self,
        recipe_id: str,
        limit: Optional[int] = None,
        page_token: Optional[str] = None,
    ) -> RecipeRatingsPage:
        page_size = self._page_size(limit)
        recipe = load_recipe(self._store, recipe_id)

        page = self._store.query_by_prefix(
            recipe_pk(recipe_id),
            RATING_PREFIX,
            limit=page_size,
            reverse=True,
            page_token=page_token,
        )
        logger.debug("Fetched recipe ratings: recipe_id=%s, count=%d", recipe_id, len(page.items))

        return RecipeRatingsPage(
            recipe_id=recipe_id,
            average_rating=recipe.average_rating,
            rating_count=recipe.rating_count,
            ratings=[Rating.from_item(item) for item in page.items],
            next_page_token=page.next_token,
        )

    def get_user_ratings(
        self,
        user_id: str,
        limit: Optional[int] = None,
        page_token: Optional[str] = None,
    ) -> UserRatingsPage:
        page_size = self._page_size(limit)
        page = self._store.query_by_prefix(
            user_pk(user_id),
            RATING_PREFIX,
            limit=page_size,
            reverse=True,
            page_token=page_token,
            index_name=GSI1,
        )
        logger.debug("Fetched user ratings: user_id=%s, count=%d", user_id, len(page.items))

        return UserRatingsPage(
            user_id=user_id,
            ratings=[Rating.from_item(item) for item in page.items],
            next_page_token=page.next_token,
        )

    def _page_size(self, limit: Optional[int]) -> int:
        if limit is None:
            return self.default_limit
        if isinstance(limit, bool) or not isinstance(limit, int) or not 1 <= limit <= self.max_limit:
            raise ValidationError("limit", f"Limit must be between 1 and {self.max_limit}")
        return limit
