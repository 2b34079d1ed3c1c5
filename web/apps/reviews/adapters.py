"""In-memory review and comment repositories for unit tests and local runs."""

import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from .domain import Comment, CommentRepository, Review, ReviewRepository


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryReviewRepository(ReviewRepository):
    def __init__(self):
        self.rows: dict[str, Review] = {}

    def get(self, review_id: str) -> Optional[Review]:
        found = self.rows.get(str(review_id))
        return replace(found) if found else None

    def save(self, review: Review) -> Review:
        now = _utcnow()
        if review.id is None:
            review = replace(review, id=str(uuid.uuid4()), created_at=now)
        review = replace(review, updated_at=now)
        self.rows[review.id] = replace(review)
        return review

    def delete(self, review_id: str) -> None:
        self.rows.pop(str(review_id), None)


class InMemoryCommentRepository(CommentRepository):
    def __init__(self):
        self.rows: dict[str, Comment] = {}

    def get(self, comment_id: str) -> Optional[Comment]:
        found = self.rows.get(str(comment_id))
        return replace(found) if found else None

    def save(self, comment: Comment) -> Comment:
        now = _utcnow()
        if comment.id is None:
            comment = replace(comment, id=str(uuid.uuid4()), created_at=now)
        comment = replace(comment, updated_at=now)
        self.rows[comment.id] = replace(comment)
        return comment

    def delete(self, comment_id: str) -> None:
        self.rows.pop(str(comment_id), None)
