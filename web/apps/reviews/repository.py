"""Django ORM repositories for reviews and comments."""

from typing import Optional

from apps.orders.repository import _as_uuid

from .domain import Comment, Review
from .models import CommentModel, ReviewModel


def _to_review(m: ReviewModel) -> Review:
    return Review(
        id=str(m.id),
        user_id=m.user_id,
        product_id=m.product_id,
        rating=m.rating,
        text=m.text,
        created_at=m.created_at,
        updated_at=m.updated_at,
    )


def _to_comment(m: CommentModel) -> Comment:
    return Comment(
        id=str(m.id),
        user_id=m.user_id,
        review_id=str(m.review_id),
        text=m.text,
        created_at=m.created_at,
        updated_at=m.updated_at,
    )


class DjangoReviewRepository:
    def get(self, review_id: str) -> Optional[Review]:
        pk = _as_uuid(review_id)
        m = ReviewModel.objects.filter(pk=pk).first() if pk else None
        return _to_review(m) if m else None

    def save(self, review: Review) -> Review:
        pk = _as_uuid(review.id) if review.id else None
        m = ReviewModel.objects.filter(pk=pk).first() if pk else None
        if m is None:
            m = ReviewModel(user_id=review.user_id, product_id=review.product_id)
        m.rating = review.rating
        m.text = review.text
        m.save()
        return _to_review(m)

    def delete(self, review_id: str) -> None:
        pk = _as_uuid(review_id)
        if pk:
            ReviewModel.objects.filter(pk=pk).delete()


class DjangoCommentRepository:
    def get(self, comment_id: str) -> Optional[Comment]:
        pk = _as_uuid(comment_id)
        m = CommentModel.objects.filter(pk=pk).first() if pk else None
        return _to_comment(m) if m else None

    def save(self, comment: Comment) -> Comment:
        pk = _as_uuid(comment.id) if comment.id else None
        m = CommentModel.objects.filter(pk=pk).first() if pk else None
        if m is None:
            m = CommentModel(user_id=comment.user_id, review_id=_as_uuid(comment.review_id))
        m.text = comment.text
        m.save()
        return _to_comment(m)

    def delete(self, comment_id: str) -> None:
        pk = _as_uuid(comment_id)
        if pk:
            CommentModel.objects.filter(pk=pk).delete()
