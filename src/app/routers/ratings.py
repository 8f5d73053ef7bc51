# src/app/routers/ratings.py
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from starlette.concurrency import run_in_threadpool

from src.app.deps import CurrentUser, get_current_user, get_rating_queries, get_rating_service
from src.app.domain.errors import DatabaseError, RatingServiceError
from src.app.schemas.ratings import (
    RatingResponse,
    RatingSubmitRequest,
    RatingSubmitResponse,
    RecipeRatingsResponse,
    UserRatingsResponse,
)
from src.app.services.rating_queries import RatingQueries
from src.app.services.rating_service import RatingService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ratings", tags=["ratings"])


def _http_error(exc: RatingServiceError) -> HTTPException:
    headers = None
    if isinstance(exc, DatabaseError) and exc.retry_after:
        headers = {"Retry-After": str(exc.retry_after)}
    if exc.status_code >= 500:
        logger.error("Rating request failed: code=%s, message=%s", exc.code, exc.message)
    return HTTPException(status_code=exc.status_code, detail=exc.to_dict(), headers=headers)


@router.post("", response_model=RatingSubmitResponse, status_code=status.HTTP_201_CREATED)
async def submit_rating(
    payload: RatingSubmitRequest,
    user: CurrentUser = Depends(get_current_user),
    service: RatingService = Depends(get_rating_service),
) -> RatingSubmitResponse:
    try:
        result = await run_in_threadpool(
            service.submit_rating,
            payload.recipe_id,
            user.id,
            payload.rating,
            payload.comment,
            payload.history_id,
        )
    except RatingServiceError as exc:
        raise _http_error(exc)

    return RatingSubmitResponse(
        rating=RatingResponse.from_domain(result.rating),
        average_rating=result.average_rating,
        rating_count=result.rating_count,
        auto_approved=result.auto_approved,
        message=result.message,
    )


@router.get("/user/{user_id}", response_model=UserRatingsResponse)
async def get_user_ratings(
    user_id: str,
    limit: int | None = Query(default=None),
    page_token: str | None = Query(default=None),
    user: CurrentUser = Depends(get_current_user),
    queries: RatingQueries = Depends(get_rating_queries),
) -> UserRatingsResponse:
    try:
        page = await run_in_threadpool(queries.get_user_ratings, user_id, limit, page_token)
    except RatingServiceError as exc:
        raise _http_error(exc)

    return UserRatingsResponse(
        user_id=page.user_id,
        ratings=[RatingResponse.from_domain(rating) for rating in page.ratings],
        next_page_token=page.next_page_token,
    )


@router.get("/{recipe_id}", response_model=RecipeRatingsResponse)
async def get_recipe_ratings(
    recipe_id: str,
    limit: int | None = Query(default=None),
    page_token: str | None = Query(default=None),
    user: CurrentUser = Depends(get_current_user),
    queries: RatingQueries = Depends(get_rating_queries),
) -> RecipeRatingsResponse:
    try:
        page = await run_in_threadpool(queries.get_recipe_ratings, recipe_id, limit, page_token)
    except RatingServiceError as exc:
        raise _http_error(exc)

    return RecipeRatingsResponse(
        recipe_id=page.recipe_id,
        average_rating=page.average_rating,
        rating_count=page.rating_count,
        ratings=[RatingResponse.from_domain(rating) for rating in page.ratings],
        next_page_token=page.next_page_token,
    )
