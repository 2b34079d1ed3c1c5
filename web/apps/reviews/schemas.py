"""Pydantic schemas for the reviews API."""

from datetime import datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

from apps.orders.domain import UserSnapshot
from apps.orders.schemas import UserReadDTO

from .domain import Comment, CommentView, Review, ReviewView


class ReviewCreateDTO(BaseModel):
    product_id: str = Field(min_length=1, max_length=64)
    rating: int = Field(ge=1, le=5, strict=True)
    text: str = Field(default="", max_length=5000)


class ReviewUpdateDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    rating: Optional[int] = Field(default=None, ge=1, le=5, strict=True)
    text: Optional[str] = Field(default=None, max_length=5000)


class CommentCreateDTO(BaseModel):
    # required-ness is checked by CommentService so the error carries its code
    review_id: str = ""
    text: str = Field(default="", max_length=5000)


class CommentUpdateDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str = Field(max_length=5000)


def _user(user: Union[UserSnapshot, str]) -> Union[UserReadDTO, str]:
    if isinstance(user, UserSnapshot):
        return UserReadDTO(id=user.id, first_name=user.first_name, last_name=user.last_name, email=user.email)
    return user


class ReviewReadDTO(BaseModel):
    id: str
    product_id: str
    rating: int
    text: str
    user: Union[UserReadDTO, str]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_review(cls, review: Review, user: Union[UserSnapshot, str, None] = None) -> "ReviewReadDTO":
        return cls(
            id=review.id,
            product_id=review.product_id,
            rating=review.rating,
            text=review.text,
            user=_user(user if user is not None else review.user_id),
            created_at=review.created_at,
            updated_at=review.updated_at,
        )

    @classmethod
    def from_view(cls, view: ReviewView) -> "ReviewReadDTO":
        return cls.from_review(view.review, view.user)


class CommentReadDTO(BaseModel):
    id: str
    review_id: str
    text: str
    user: Union[UserReadDTO, str]
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_comment(cls, comment: Comment, user: Union[UserSnapshot, str, None] = None) -> "CommentReadDTO":
        return cls(
            id=comment.id,
            review_id=comment.review_id,
            text=comment.text,
            user=_user(user if user is not None else comment.user_id),
            created_at=comment.created_at,
            updated_at=comment.updated_at,
        )

    @classmethod
    def from_view(cls, view: CommentView) -> "CommentReadDTO":
        return cls.from_comment(view.comment, view.user)
