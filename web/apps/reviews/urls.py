from django.urls import path

from .views import CommentDetailView, CommentsCollectionView, ReviewDetailView, ReviewsCollectionView

app_name = "reviews"

urlpatterns = [
    path("", ReviewsCollectionView.as_view(), name="reviews-collection"),
    path("<uuid:review_id>/", ReviewDetailView.as_view(), name="reviews-detail"),
    path("comments/", CommentsCollectionView.as_view(), name="comments-collection"),
    path("comments/<uuid:comment_id>/", CommentDetailView.as_view(), name="comments-detail"),
]
