from __future__ import annotations

import pytest

from src.app.domain.errors import RecipeNotFoundError, ValidationError


def _seed(add_recipe, add_rating, count: int) -> list[str]:
    add_recipe(average_rating=3.86, rating_count=count)
    ids = []
    for index in range(count):
        item = add_rating("recipe-1", f"user-{index}", 1 + index % 5, f"2024-03-{index + 1:02d}T12:00:00+00:00")
        ids.append(item["rating_id"])
    return ids


class TestGetRecipeRatings:
    def test_pagination_round_trip(self, rating_queries, add_recipe, add_rating) -> None:
        expected_ids = _seed(add_recipe, add_rating, 7)

        seen: list[str] = []
        page_sizes: list[int] = []
        token = None
        while True:
            page = rating_queries.get_recipe_ratings("recipe-1", limit=3, page_token=token)
            page_sizes.append(len(page.ratings))
            seen.extend(rating.rating_id for rating in page.ratings)
            token = page.next_page_token
            if not token:
                break

        assert page_sizes == [3, 3, 1]
        assert len(seen) == len(set(seen))
        assert seen == list(reversed(expected_ids))

    def test_newest_first_and_aggregate_from_recipe(self, rating_queries, add_recipe, add_rating) -> None:
        _seed(add_recipe, add_rating, 3)

        page = rating_queries.get_recipe_ratings("recipe-1")

        created = [rating.created_at for rating in page.ratings]
        assert created == sorted(created, reverse=True)
        assert page.average_rating == 3.86
        assert page.rating_count == 3
        assert page.next_page_token is None

    def test_missing_recipe(self, rating_queries) -> None:
        with pytest.raises(RecipeNotFoundError):
            rating_queries.get_recipe_ratings("ghost")

    @pytest.mark.parametrize("limit", [0, -5, 101])
    def test_limit_out_of_range(self, rating_queries, add_recipe, limit) -> None:
        add_recipe()

        with pytest.raises(ValidationError) as exc_info:
            rating_queries.get_recipe_ratings("recipe-1", limit=limit)

        assert exc_info.value.field == "limit"

    def test_garbage_page_token(self, rating_queries, add_recipe) -> None:
        add_recipe()

        with pytest.raises(ValidationError) as exc_info:
            rating_queries.get_recipe_ratings("recipe-1", page_token="not-a-token!!")

        assert exc_info.value.field == "page_token"


class TestGetUserRatings:
    def test_ratings_across_recipes(self, rating_queries, add_recipe, add_rating) -> None:
        add_recipe("recipe-1")
        add_recipe("recipe-2")
        add_rating("recipe-1", "user-1", 5, "2024-01-01T00:00:00+00:00")
        add_rating("recipe-2", "user-1", 3, "2024-02-01T00:00:00+00:00")
        add_rating("recipe-2", "user-2", 4, "2024-02-02T00:00:00+00:00")

        page = rating_queries.get_user_ratings("user-1")

        assert [rating.recipe_id for rating in page.ratings] == ["recipe-2", "recipe-1"]
        assert all(rating.user_id == "user-1" for rating in page.ratings)
        assert page.next_page_token is None

    def test_pagination(self, rating_queries, add_recipe, add_rating) -> None:
        for index in range(5):
            add_recipe(f"recipe-{index}")
            add_rating(f"recipe-{index}", "user-1", 4, f"2024-01-0{index + 1}T00:00:00+00:00")

        first = rating_queries.get_user_ratings("user-1", limit=2)
        second = rating_queries.get_user_ratings("user-1", limit=2, page_token=first.next_page_token)
        third = rating_queries.get_user_ratings("user-1", limit=2, page_token=second.next_page_token)

        recipes = [rating.recipe_id for page in (first, second, third) for rating in page.ratings]
        assert recipes == ["recipe-4", "recipe-3", "recipe-2", "recipe-1", "recipe-0"]
        assert third.next_page_token is None

    def test_user_without_ratings(self, rating_queries) -> None:
        page = rating_queries.get_user_ratings("nobody")

        assert page.ratings == []
        assert page.next_page_token is None
