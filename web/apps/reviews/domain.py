"""Reviews and comments: ownership-guarded mutation.

Reviews rate a product; comments answer a review. Both are owned by the user
who wrote them, and every change goes through the same ownership check as
baskets and checkouts. Reads join the author's identity and fall back to the
raw author id when the identity service fails.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional, Protocol, Union

from apps.core.access import Principal, ensure_can_act
from apps.core.errors import DomainError, NotFound, ValidationFailed
from apps.orders.domain import IdentityPort, UserSnapshot

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5


@dataclass
class Review:
    id: Optional[str]
    user_id: str
    product_id: str
    rating: int
    text: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class Comment:
    id: Optional[str]
    user_id: str
    review_id: str
    text: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class ReviewPatch:
    rating: Optional[int] = None
    text: Optional[str] = None


@dataclass(frozen=True)
class ReviewView:
    review: Review
    user: Union[UserSnapshot, str]


@dataclass(frozen=True)
class CommentView:
    comment: Comment
    user: Union[UserSnapshot, str]


class ReviewRepository(Protocol):
    def get(self, review_id: str) -> Optional[Review]: ...

    def save(self, review: Review) -> Review: ...

    def delete(self, review_id: str) -> None: ...


class CommentRepository(Protocol):
    def get(self, comment_id: str) -> Optional[Comment]: ...

    def save(self, comment: Comment) -> Comment: ...

    def delete(self, comment_id: str) -> None: ...


def _author(identity: Optional[IdentityPort], user_id: str, auth_token: Optional[str]) -> Union[UserSnapshot, str]:
    if identity is None:
        return user_id
    try:
        return identity.get_user(str(user_id), auth_token)
    except DomainError as exc:
        logger.warning("author lookup failed", extra={"user_id": user_id, "code": exc.code})
        return user_id


def _validate_rating(rating) -> int:
    if isinstance(rating, bool) or not isinstance(rating, int) or not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationFailed(f"rating must be an integer between {MIN_RATING} and {MAX_RATING}")
    return rating


class ReviewService:
    def __init__(self, reviews: ReviewRepository, identity: Optional[IdentityPort] = None):
        self.reviews = reviews
        self.identity = identity

    def _get(self, review_id: str) -> Review:
        review = self.reviews.get(review_id)
        if review is None:
            raise NotFound(f"Review {review_id} not found")
        return review

    def create_review(self, principal: Principal, product_id: str, rating: int, text: str = "") -> Review:
        """Create a review authored by ``principal``.

        Raises:
            ValidationFailed: Missing author or product, or a rating outside 1..5.
        """
        if principal is None or not product_id:
            raise ValidationFailed("author and product_id are required", code="VALIDATION_REVIEWS")
        review = self.reviews.save(
            Review(id=None, user_id=principal.id, product_id=product_id, rating=_validate_rating(rating), text=text or "")
        )
        logger.info("review created", extra={"review_id": review.id, "product_id": product_id})
        return review

    def get_review(self, review_id: str, auth_token: Optional[str] = None) -> ReviewView:
        review = self._get(review_id)
        return ReviewView(review=review, user=_author(self.identity, review.user_id, auth_token))

    def update_review(self, review_id: str, patch: ReviewPatch, principal: Principal) -> Review:
        review = self._get(review_id)
        ensure_can_act(review.user_id, principal, "review")
        changes = {}
        if patch.rating is not None:
            changes["rating"] = _validate_rating(patch.rating)
        if patch.text is not None:
            changes["text"] = patch.text
        return self.reviews.save(replace(review, **changes))

    def remove_review(self, review_id: str, principal: Principal) -> Review:
        review = self._get(review_id)
        ensure_can_act(review.user_id, principal, "review")
        self.reviews.delete(review.id)
        logger.info("review removed", extra={"review_id": review.id, "by": principal.id})
        return review


class CommentService:
    """Comments on reviews.

    A comment needs an author, an existing review and a non-empty text.
    """

    def __init__(self, comments: CommentRepository, reviews: ReviewRepository, identity: Optional[IdentityPort] = None):
        self.comments = comments
        self.reviews = reviews
        self.identity = identity

    def _get(self, comment_id: str) -> Comment:
        comment = self.comments.get(comment_id)
        if comment is None:
            raise NotFound(f"Comment {comment_id} not found")
        return comment

    def create_comment(self, principal: Optional[Principal], review_id: str, text: str) -> Comment:
        """Create a comment on ``review_id``.

        Raises:
            ValidationFailed: Missing author, review id or text (code ``VALIDATION_COMMENTS``).
            NotFound: Unknown review.
        """
        if principal is None or not review_id or not (text or "").strip():
            raise ValidationFailed("author, review_id and text are required", code="VALIDATION_COMMENTS")
        if self.reviews.get(review_id) is None:
            raise NotFound(f"Review {review_id} not found")
        comment = self.comments.save(Comment(id=None, user_id=principal.id, review_id=str(review_id), text=text))
        logger.info("comment created", extra={"comment_id": comment.id, "review_id": comment.review_id})
        return comment

    def get_comment(self, comment_id: str, auth_token: Optional[str] = None) -> CommentView:
        comment = self._get(comment_id)
        return CommentView(comment=comment, user=_author(self.identity, comment.user_id, auth_token))

    def update_comment(self, comment_id: str, text: str, principal: Principal) -> Comment:
        """Replace the text of a comment; author and review never change."""
        comment = self._get(comment_id)
        ensure_can_act(comment.user_id, principal, "comment")
        if not (text or "").strip():
            raise ValidationFailed("text is required", code="VALIDATION_COMMENTS")
        return self.comments.save(replace(comment, text=text))

    def remove_comment(self, comment_id: str, principal: Principal) -> Comment:
        comment = self._get(comment_id)
        ensure_can_act(comment.user_id, principal, "comment")
        self.comments.delete(comment.id)
        logger.info("comment removed", extra={"comment_id": comment.id, "by": principal.id})
        return comment
