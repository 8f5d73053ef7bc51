# src/app/deps.py (singletons exposed as FastAPI dependencies)

from __future__ import annotations

from fastapi import Depends, Header, HTTPException, status
from pydantic import BaseModel

from src.app.infra.db.base import RecordStore
from src.app.infra.db.dynamo_store import DynamoRecordStore
from src.app.services.approval import ApprovalTrigger
from src.app.services.ingredient_enrichment import CatalogIngredientEnricher
from src.app.services.rating_queries import RatingQueries
from src.app.services.rating_service import RatingService

_store: RecordStore | None = None


def get_record_store() -> RecordStore:
    global _store
    if _store is None:
        _store = DynamoRecordStore()
    return _store


def get_rating_service(store: RecordStore = Depends(get_record_store)) -> RatingService:
    trigger = ApprovalTrigger(store, CatalogIngredientEnricher(store))
    return RatingService(store, trigger)


def get_rating_queries(store: RecordStore = Depends(get_record_store)) -> RatingQueries:
    return RatingQueries(store)


class CurrentUser(BaseModel):
    id: str


async def get_current_user(
    x_user_id: str | None = Header(default=None),
) -> CurrentUser:
    """
    The upstream authorizer validates the session and forwards the caller id
    in X-User-Id; requests without it never reached an authorizer.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User is not authenticated")
    return CurrentUser(id=x_user_id.strip())
