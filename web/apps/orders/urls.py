from django.urls import path

from .views import (
    BasketDetailView,
    BasketsCollectionView,
    CheckoutByPaymentView,
    CheckoutDetailView,
    CheckoutsCollectionView,
    OrderLineDetailView,
    OrderLinesCollectionView,
    OrdersPingView,
)

app_name = "orders"

urlpatterns = [
    path("ping/", OrdersPingView.as_view(), name="ping"),
    path("baskets/", BasketsCollectionView.as_view(), name="baskets-collection"),  # GET list / POST create
    path("baskets/<uuid:basket_id>/", BasketDetailView.as_view(), name="baskets-detail"),
    path("checkouts/", CheckoutsCollectionView.as_view(), name="checkouts-collection"),
    path("checkouts/by-payment/<str:payment_id>/", CheckoutByPaymentView.as_view(), name="checkouts-by-payment"),
    path("checkouts/<uuid:checkout_id>/", CheckoutDetailView.as_view(), name="checkouts-detail"),
    path("order-lines/", OrderLinesCollectionView.as_view(), name="order-lines-collection"),
    path("order-lines/<uuid:line_id>/", OrderLineDetailView.as_view(), name="order-lines-detail"),
]
