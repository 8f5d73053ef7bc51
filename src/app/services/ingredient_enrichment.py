# src/app/services/ingredient_enrichment.py
"""
Ingredient catalog enrichment.
Adds ingredient names seen in an approved recipe to the shared master catalog.
"""
from __future__ import annotations

import logging
import re
import unicodedata
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from uuid import uuid4

from src.app.domain.models import EnrichmentResult
from src.app.infra.db.base import RecordKey, RecordStore
from src.app.infra.db.keys import (
    ENTITY_MASTER_INGREDIENT,
    INGREDIENT_PREFIX,
    METADATA,
    category_pk,
    master_ingredient_pk,
    recipe_pk,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "other"
SOURCE_AUTO_ENRICHED = "auto_enriched"

_WHITESPACE_RE = re.compile(r"\s+")


def normalize_ingredient_name(name: str) -> str:
    """Lower-case, strip diacritics (đ -> d) and collapse whitespace."""
    text = name.strip().lower().replace("đ", "d")
    text = unicodedata.normalize("NFD", text)
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return _WHITESPACE_RE.sub(" ", text).strip()


class IngredientEnricher(ABC):
    """Collaborator invoked once a recipe is approved. Must be idempotent."""

    @abstractmethod
    def enrich_from_approved_recipe(self, recipe_id: str) -> EnrichmentResult:
        pass


class CatalogIngredientEnricher(IngredientEnricher):
    def __init__(self, store: RecordStore):
        self._store = store

    def enrich_from_approved_recipe(self, recipe_id: str) -> EnrichmentResult:
        candidates = self._collect_candidates(recipe_id)
        if not candidates:
            logger.warning("No ingredients found in recipe: recipe_id=%s", recipe_id)
            return EnrichmentResult()

        keys = [RecordKey(master_ingredient_pk(name), METADATA) for name in candidates]
        existing = {str(item["PK"])[len(INGREDIENT_PREFIX):] for item in self._store.batch_read(keys)}

        now = datetime.now(timezone.utc).isoformat()
        new_entries = [
            self._catalog_entry(name, original, category, now)
            for name, (original, category) in candidates.items()
            if name not in existing
        ]
        if new_entries:
            self._store.batch_write(puts=new_entries)

        result = EnrichmentResult(
            total_ingredients=len(candidates),
            new_ingredients=len(new_entries),
            existing_ingredients=len(candidates) - len(new_entries),
            added_ingredient_ids=[entry["ingredient_id"] for entry in new_entries],
        )
        logger.info(
            "Ingredient catalog enriched: recipe_id=%s, total=%d, new=%d, existing=%d",
            recipe_id, result.total_ingredients, result.new_ingredients, result.existing_ingredients,
        )
        return result

    def _collect_candidates(self, recipe_id: str) -> dict[str, tuple[str, str]]:
        candidates: dict[str, tuple[str, str]] = {}
        for item in self._store.iter_query(recipe_pk(recipe_id), INGREDIENT_PREFIX):
            original = str(item.get("name") or item.get("ingredient_name") or "")
            normalized = normalize_ingredient_name(original)
            if normalized and normalized not in candidates:
                candidates[normalized] = (original.strip(), str(item.get("category") or DEFAULT_CATEGORY))
        return candidates

    def _catalog_entry(self, normalized: str, name: str, category: str, now: str) -> dict[str, object]:
        return {
            "PK": master_ingredient_pk(normalized),
            "SK": METADATA,
            "GSI1PK": category_pk(category),
            "GSI1SK": f"NAME#{normalized}",
            "entity_type": ENTITY_MASTER_INGREDIENT,
            "ingredient_id": str(uuid4()),
            "name": name,
            "normalized_name": normalized,
            "category": category,
            "is_active": True,
            "source": SOURCE_AUTO_ENRICHED,
            "created_at": now,
            "updated_at": now,
        }
