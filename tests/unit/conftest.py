from __future__ import annotations

import copy
from typing import Any, Callable, Iterable, Optional

import pytest

from src.app.domain.errors import ConflictError
from src.app.domain.models import EnrichmentResult
from src.app.infra.db.base import Item, Page, Precondition, RecordKey, RecordStore
from src.app.infra.db.keys import (
    ENTITY_RATING,
    ENTITY_RECIPE,
    METADATA,
    cooking_sk,
    rating_sk,
    recipe_pk,
    user_pk,
)
from src.app.infra.db.paging import decode_page_token, encode_page_token
from src.app.services.approval import ApprovalTrigger
from src.app.services.ingredient_enrichment import IngredientEnricher
from src.app.services.rating_queries import RatingQueries
from src.app.services.rating_service import RatingService


class InMemoryRecordStore(RecordStore):
    INDEXES = {None: ("PK", "SK"), "GSI1": ("GSI1PK", "GSI1SK")}

    def __init__(self) -> None:
        self.items: dict[tuple[str, str], Item] = {}
        self.operations: list[str] = []

    def get(self, key: RecordKey) -> Optional[Item]:
        self.operations.append("get")
        return copy.deepcopy(self.items.get((key.pk, key.sk)))

    def put(self, item: Item, precondition: Optional[Precondition] = None) -> None:
        self.operations.append("put")
        key = (item["PK"], item["SK"])
        self._check(self.items.get(key), precondition)
        self.items[key] = copy.deepcopy(item)

    def conditional_update(
        self,
        key: RecordKey,
        changes: dict[str, Any],
        precondition: Optional[Precondition] = None,
    ) -> Item:
        self.operations.append("update")
        existing = self.items.get((key.pk, key.sk))
        self._check(existing, precondition)
        updated = dict(existing or key.as_dict())
        updated.update(copy.deepcopy(changes))
        self.items[(key.pk, key.sk)] = updated
        return copy.deepcopy(updated)

    def delete(self, key: RecordKey) -> None:
        self.operations.append("delete")
        self.items.pop((key.pk, key.sk), None)

    def query_by_prefix(
        self,
        partition: str,
        sort_prefix: str,
        limit: Optional[int] = None,
        reverse: bool = False,
        page_token: Optional[str] = None,
        index_name: Optional[str] = None,
    ) -> Page:
        self.operations.append("query")
        pk_attribute, sk_attribute = self.INDEXES[index_name]
        matches = [
            item for item in self.items.values()
            if item.get(pk_attribute) == partition and str(item.get(sk_attribute, "")).startswith(sort_prefix)
        ]
        matches.sort(key=lambda item: (item[sk_attribute], item["PK"], item["SK"]), reverse=reverse)
        key_attributes = {"PK", "SK", pk_attribute, sk_attribute}
        return self._paginate(matches, limit, page_token, key_attributes)

    def scan(
        self,
        filters: Optional[dict[str, Any]] = None,
        limit: Optional[int] = None,
        page_token: Optional[str] = None,
    ) -> Page:
        self.operations.append("scan")
        matches = [
            item for item in self.items.values()
            if all(item.get(attribute) == expected for attribute, expected in (filters or {}).items())
        ]
        matches.sort(key=lambda item: (item["PK"], item["SK"]))
        return self._paginate(matches, limit, page_token, {"PK", "SK"})

    def batch_read(self, keys: Iterable[RecordKey]) -> list[Item]:
        self.operations.append("batch_read")
        return [copy.deepcopy(self.items[(key.pk, key.sk)]) for key in keys if (key.pk, key.sk) in self.items]

    def batch_write(self, puts: Iterable[Item] = (), deletes: Iterable[RecordKey] = ()) -> None:
        self.operations.append("batch_write")
        for item in puts:
            self.items[(item["PK"], item["SK"])] = copy.deepcopy(item)
        for key in deletes:
            self.items.pop((key.pk, key.sk), None)

    def items_with_prefix(self, pk: str, sk_prefix: str) -> list[Item]:
        return [item for (item_pk, item_sk), item in self.items.items() if item_pk == pk and item_sk.startswith(sk_prefix)]

    def _paginate(self, matches: list[Item], limit: Optional[int], page_token: Optional[str], key_attributes: set[str]) -> Page:
        start = 0
        resume = decode_page_token(page_token)
        if resume:
            for position, item in enumerate(matches):
                if item["PK"] == resume["PK"] and item["SK"] == resume["SK"]:
                    start = position + 1
                    break
        end = len(matches) if not limit else start + limit
        page_items = matches[start:end]
        next_token = None
        if end < len(matches) and page_items:
            last = page_items[-1]
            next_token = encode_page_token({attribute: last[attribute] for attribute in key_attributes if attribute in last})
        return Page(items=copy.deepcopy(page_items), next_token=next_token)

    @staticmethod
    def _check(existing: Optional[Item], precondition: Optional[Precondition]) -> None:
        if precondition is None:
            return
        satisfied = True
        if precondition.must_exist and existing is None:
            satisfied = False
        if precondition.must_not_exist and existing is not None:
            satisfied = False
        for attribute, expected in precondition.equals.items():
            if existing is None or existing.get(attribute) != expected:
                satisfied = False
        for attribute, rejected in precondition.not_equals.items():
            if existing is not None and existing.get(attribute) == rejected:
                satisfied = False
        if not satisfied:
            raise ConflictError("Operation failed due to data conflict", {"operation": "test"})


class RecordingEnricher(IngredientEnricher):
    def __init__(self) -> None:
        self.calls: list[str] = []
        self.error: Optional[Exception] = None

    def enrich_from_approved_recipe(self, recipe_id: str) -> EnrichmentResult:
        self.calls.append(recipe_id)
        if self.error:
            raise self.error
        return EnrichmentResult(total_ingredients=2, new_ingredients=1, existing_ingredients=1, added_ingredient_ids=["ing-1"])


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def enricher() -> RecordingEnricher:
    return RecordingEnricher()


@pytest.fixture
def approval_trigger(store: InMemoryRecordStore, enricher: RecordingEnricher) -> ApprovalTrigger:
    return ApprovalTrigger(store, enricher, notification_ttl_days=30)


@pytest.fixture
def rating_service(store: InMemoryRecordStore, approval_trigger: ApprovalTrigger) -> RatingService:
    return RatingService(store, approval_trigger, min_average=4.0, min_count=3)


@pytest.fixture
def rating_queries(store: InMemoryRecordStore) -> RatingQueries:
    return RatingQueries(store, default_limit=20, max_limit=100)


@pytest.fixture
def add_recipe(store: InMemoryRecordStore) -> Callable[..., Item]:
    def _add(recipe_id: str = "recipe-1", owner_id: Optional[str] = "owner-1", **fields: Any) -> Item:
        item: Item = {
            "PK": recipe_pk(recipe_id),
            "SK": METADATA,
            "entity_type": ENTITY_RECIPE,
            "recipe_id": recipe_id,
            "title": "Pho bo",
            "is_approved": False,
            "is_public": False,
            "average_rating": 0.0,
            "rating_count": 0,
        }
        if owner_id:
            item["owner_id"] = owner_id
        item.update(fields)
        store.items[(item["PK"], item["SK"])] = item
        return item

    return _add


@pytest.fixture
def add_rating(store: InMemoryRecordStore) -> Callable[..., Item]:
    def _add(recipe_id: str, user_id: str, rating: int, created_at: str, rating_id: Optional[str] = None) -> Item:
        rating_id = rating_id or f"rating-{user_id}-{recipe_id}"
        sort_key = rating_sk(created_at, rating_id)
        item: Item = {
            "PK": recipe_pk(recipe_id),
            "SK": sort_key,
            "GSI1PK": user_pk(user_id),
            "GSI1SK": sort_key,
            "entity_type": ENTITY_RATING,
            "rating_id": rating_id,
            "recipe_id": recipe_id,
            "user_id": user_id,
            "rating": rating,
            "is_verified_cook": False,
            "created_at": created_at,
            "updated_at": created_at,
        }
        store.items[(item["PK"], item["SK"])] = item
        return item

    return _add


@pytest.fixture
def add_cooking_session(store: InMemoryRecordStore) -> Callable[..., Item]:
    def _add(user_id: str, history_id: str, recipe_id: str, status: str = "completed") -> Item:
        item: Item = {
            "PK": user_pk(user_id),
            "SK": cooking_sk(history_id),
            "entity_type": "COOKING_HISTORY",
            "history_id": history_id,
            "user_id": user_id,
            "recipe_id": recipe_id,
            "status": status,
        }
        store.items[(item["PK"], item["SK"])] = item
        return item

    return _add
