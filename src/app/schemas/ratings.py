from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from src.app.domain.models import Rating


class RatingSubmitRequest(BaseModel):
    recipe_id: str = Field(..., min_length=1)
    # passed through unparsed; the service rejects bools, strings and out-of-range values
    rating: Any = None
    comment: Optional[str] = Field(default=None, max_length=2000)
    history_id: Optional[str] = Field(default=None, min_length=1)


class RatingResponse(BaseModel):
    rating_id: str
    recipe_id: str
    user_id: str
    rating: int
    comment: Optional[str] = None
    history_id: Optional[str] = None
    is_verified_cook: bool = False
    created_at: str
    updated_at: str

    @classmethod
    def from_domain(cls, rating: Rating) -> "RatingResponse":
        return cls(**rating.to_dict())


class RatingSubmitResponse(BaseModel):
    rating: RatingResponse
    average_rating: float
    rating_count: int
    auto_approved: bool
    message: str


class RecipeRatingsResponse(BaseModel):
    recipe_id: str
    average_rating: float
    rating_count: int
    ratings: list[RatingResponse] = Field(default_factory=list)
    next_page_token: Optional[str] = None


class UserRatingsResponse(BaseModel):
    user_id: str
    ratings: list[RatingResponse] = Field(default_factory=list)
    next_page_token: Optional[str] = None
