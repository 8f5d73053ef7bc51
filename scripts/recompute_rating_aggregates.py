"""
Rebuild average_rating/rating_count on every recipe from its stored ratings.

Run after manual data fixes; request handling never needs it.
"""
import argparse
import logging
import pathlib
import sys

ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from src.app.infra.db.base import RecordStore
from src.app.infra.db.keys import ENTITY_RECIPE, METADATA, RECIPE_PREFIX
from src.app.services.approval import ApprovalTrigger
from src.app.services.ingredient_enrichment import CatalogIngredientEnricher
from src.app.services.rating_service import RatingService

logger = logging.getLogger("recompute-ratings")


def recompute_aggregates(store: RecordStore, page_size: int = 100, dry_run: bool = False) -> int:
    service = RatingService(store, ApprovalTrigger(store, CatalogIngredientEnricher(store)))
    token = None
    processed = 0

    while True:
        page = store.scan({"entity_type": ENTITY_RECIPE, "SK": METADATA}, limit=page_size, page_token=token)
        for item in page.items:
            recipe_id = str(item.get("recipe_id") or str(item["PK"])[len(RECIPE_PREFIX):])
            if dry_run:
                stats = service.recalculate_aggregate(recipe_id)
            else:
                stats = service.refresh_aggregate(recipe_id)
            logger.info(
                "Recipe aggregate: recipe_id=%s, average=%.2f, count=%d, dry_run=%s",
                recipe_id, stats.average_rating, stats.rating_count, dry_run,
            )
            processed += 1
        if not page.next_token:
            return processed
        token = page.next_token


def main() -> None:
    parser = argparse.ArgumentParser(description="Recompute recipe rating aggregates")
    parser.add_argument("--page-size", type=int, default=100)
    parser.add_argument("--dry-run", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    from src.app.infra.db.dynamo_store import DynamoRecordStore

    total = recompute_aggregates(DynamoRecordStore(), page_size=args.page_size, dry_run=args.dry_run)
    logger.info("Recomputed %d recipes", total)


if __name__ == "__main__":
    main()
