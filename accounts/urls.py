from django.urls import path
from . import views

app_name = "accounts"

urlpatterns = [
    path("user/me/", views.me, name="me"),
    path("user/balance/", views.balance, name="balance"),
    path("user/transactions/", views.transactions, name="transactions"),
    path("user/sessions/", views.sessions, name="sessions"),
    path("readers/", views.reader_list, name="reader_list"),
    path("readers/<int:reader_id>/", views.reader_detail, name="reader_detail"),
]
