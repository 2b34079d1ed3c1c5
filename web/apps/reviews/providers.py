"""Factories wiring the review and comment services."""

from apps.orders.providers import get_identity

from .domain import CommentService, ReviewService
from .repository import DjangoCommentRepository, DjangoReviewRepository


def get_review_service() -> ReviewService:
    return ReviewService(reviews=DjangoReviewRepository(), identity=get_identity())


def get_comment_service() -> CommentService:
    return CommentService(
        comments=DjangoCommentRepository(),
        reviews=DjangoReviewRepository(),
        identity=get_identity(),
    )
