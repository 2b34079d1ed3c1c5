import pytest

from apps.core.errors import Forbidden, NotFound, ValidationFailed
from apps.orders.adapters import IdentityStub
from apps.reviews.adapters import InMemoryCommentRepository, InMemoryReviewRepository
from apps.reviews.domain import CommentService, ReviewPatch, ReviewService


@pytest.fixture
def reviews():
    return InMemoryReviewRepository()


@pytest.fixture
def identity():
    return IdentityStub()


@pytest.fixture
def review_service(reviews, identity):
    return ReviewService(reviews, identity)


@pytest.fixture
def comment_service(reviews, identity):
    return CommentService(InMemoryCommentRepository(), reviews, identity)


@pytest.fixture
def review(review_service, alice):
    return review_service.create_review(alice, "p1", 4, "solid")


def test_create_review_requires_author_and_product(review_service, alice):
    with pytest.raises(ValidationFailed) as exc:
        review_service.create_review(None, "p1", 4)
    assert exc.value.code == "VALIDATION_REVIEWS"

    with pytest.raises(ValidationFailed):
        review_service.create_review(alice, "", 4)


@pytest.mark.parametrize("rating", [0, 6, True, "5"])
def test_rating_must_be_one_to_five(review_service, alice, rating):
    with pytest.raises(ValidationFailed):
        review_service.create_review(alice, "p1", rating)


def test_review_read_joins_author(review_service, review):
    view = review_service.get_review(review.id, "token")
    assert view.user.email == "alice@example.com"


def test_review_read_degrades_to_author_id(reviews, review):
    view = ReviewService(reviews, IdentityStub(down=True)).get_review(review.id)
    assert view.user == "alice"


def test_only_author_or_admin_updates_review(review_service, review, bob, admin):
    with pytest.raises(Forbidden):
        review_service.update_review(review.id, ReviewPatch(rating=1), bob)

    updated = review_service.update_review(review.id, ReviewPatch(rating=2), admin)

    assert updated.rating == 2
    assert updated.text == "solid"
    assert updated.user_id == "alice"


def test_remove_review(review_service, reviews, review, alice):
    review_service.remove_review(review.id, alice)
    assert reviews.rows == {}
    with pytest.raises(NotFound):
        review_service.get_review(review.id)


def test_comment_needs_text_and_existing_review(comment_service, review, bob):
    with pytest.raises(ValidationFailed) as exc:
        comment_service.create_comment(bob, review.id, "   ")
    assert exc.value.code == "VALIDATION_COMMENTS"

    with pytest.raises(NotFound):
        comment_service.create_comment(bob, "missing", "hello")


def test_comment_lifecycle(comment_service, review, alice, bob):
    comment = comment_service.create_comment(bob, review.id, "agreed")

    with pytest.raises(Forbidden):
        comment_service.update_comment(comment.id, "edited", alice)

    updated = comment_service.update_comment(comment.id, "edited", bob)
    assert updated.text == "edited"
    assert updated.review_id == review.id
    assert comment_service.get_comment(comment.id).user.id == "bob"

    comment_service.remove_comment(comment.id, bob)
    with pytest.raises(NotFound):
        comment_service.get_comment(comment.id)
