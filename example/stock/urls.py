from django.urls import path

from . import views

urlpatterns = [
    path("buy-mutex/<str:sku>/", views.buy_mutex, name="buy_mutex"),
    path("buy-pessimistic/<str:sku>/", views.buy_pessimistic, name="buy_pessimistic"),
    path("buy-optimistic/<str:sku>/", views.buy_optimistic, name="buy_optimistic"),
]
