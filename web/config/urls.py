from django.urls import include, path

urlpatterns = [
    path("", include("apps.monitoring.urls")),
    path("api/orders/", include("apps.orders.urls")),
    path("api/reviews/", include("apps.reviews.urls")),
]
