"""HTTP views for reviews and comments.

Every mutating route requires an authenticated principal; the services
apply the ownership check.
"""

from rest_framework import status
from rest_framework.response import Response

from apps.core.views import DomainAPIView
from gateway.authentication import IsAuthenticatedPrincipal

from . import providers
from .domain import ReviewPatch
from .schemas import (
    CommentCreateDTO,
    CommentReadDTO,
    CommentUpdateDTO,
    ReviewCreateDTO,
    ReviewReadDTO,
    ReviewUpdateDTO,
)


class ReviewsCollectionView(DomainAPIView):
    throttle_family = "reviews"
    permission_classes = [IsAuthenticatedPrincipal]

    def post(self, request):
        dto = ReviewCreateDTO.model_validate(request.data)
        review = providers.get_review_service().create_review(
            self.principal(request), dto.product_id, dto.rating, dto.text
        )
        return Response(ReviewReadDTO.from_review(review).model_dump(mode="json"), status=status.HTTP_201_CREATED)


class ReviewDetailView(DomainAPIView):
    throttle_family = "reviews"
    permission_classes = [IsAuthenticatedPrincipal]

    def get(self, request, review_id):
        view = providers.get_review_service().get_review(str(review_id), self.auth_token(request))
        return Response(ReviewReadDTO.from_view(view).model_dump(mode="json"))

    def put(self, request, review_id):
        dto = ReviewUpdateDTO.model_validate(request.data)
        review = providers.get_review_service().update_review(
            str(review_id), ReviewPatch(rating=dto.rating, text=dto.text), self.principal(request)
        )
        return Response(ReviewReadDTO.from_review(review).model_dump(mode="json"))

    def delete(self, request, review_id):
        providers.get_review_service().remove_review(str(review_id), self.principal(request))
        return Response(status=status.HTTP_204_NO_CONTENT)


class CommentsCollectionView(DomainAPIView):
    throttle_family = "comments"
    permission_classes = [IsAuthenticatedPrincipal]

    def post(self, request):
        dto = CommentCreateDTO.model_validate(request.data)
        comment = providers.get_comment_service().create_comment(self.principal(request), dto.review_id, dto.text)
        return Response(CommentReadDTO.from_comment(comment).model_dump(mode="json"), status=status.HTTP_201_CREATED)


class CommentDetailView(DomainAPIView):
    throttle_family = "comments"
    permission_classes = [IsAuthenticatedPrincipal]

    def get(self, request, comment_id):
        view = providers.get_comment_service().get_comment(str(comment_id), self.auth_token(request))
        return Response(CommentReadDTO.from_view(view).model_dump(mode="json"))

    def put(self, request, comment_id):
        dto = CommentUpdateDTO.model_validate(request.data)
        comment = providers.get_comment_service().update_comment(str(comment_id), dto.text, self.principal(request))
        return Response(CommentReadDTO.from_comment(comment).model_dump(mode="json"))

    def delete(self, request, comment_id):
        providers.get_comment_service().remove_comment(str(comment_id), self.principal(request))
        return Response(status=status.HTTP_204_NO_CONTENT)
