# src/app/infra/db/keys.py
"""
Single-table key layout.

Every record lives under a partition (PK = "<SCOPE>#<id>") and a sort key
(SK = "<KIND>#<ordering token>"). GSI1 projects records under a second owner,
e.g. ratings under the rater.
"""
from __future__ import annotations

GSI1 = "GSI1"

METADATA = "METADATA"
RECIPE_PREFIX = "RECIPE#"
RATING_PREFIX = "RATING#"
RATER_PREFIX = "RATER#"
NOTIFICATION_PREFIX = "NOTIFICATION#"
COOKING_PREFIX = "COOKING#"
INGREDIENT_PREFIX = "INGREDIENT#"

ENTITY_RECIPE = "RECIPE"
ENTITY_RATING = "RATING"
ENTITY_RATING_MARKER = "RATING_MARKER"
ENTITY_NOTIFICATION = "NOTIFICATION"
ENTITY_MASTER_INGREDIENT = "MASTER_INGREDIENT"


def recipe_pk(recipe_id: str) -> str:
    return f"{RECIPE_PREFIX}{recipe_id}"


def user_pk(user_id: str) -> str:
    return f"USER#{user_id}"


def unread_notifications_pk(user_id: str) -> str:
    return f"USER#{user_id}#UNREAD"


def rating_sk(created_at: str, rating_id: str) -> str:
    return f"{RATING_PREFIX}{created_at}#{rating_id}"


def rater_sk(user_id: str) -> str:
    return f"{RATER_PREFIX}{user_id}"


def cooking_sk(history_id: str) -> str:
    return f"{COOKING_PREFIX}{history_id}"


def notification_sk(created_at: str, notification_id: str) -> str:
    return f"{NOTIFICATION_PREFIX}{created_at}#{notification_id}"


def master_ingredient_pk(normalized_name: str) -> str:
    return f"{INGREDIENT_PREFIX}{normalized_name}"


def category_pk(category: str) -> str:
    return f"CATEGORY#{category}"
