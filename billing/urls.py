from django.urls import path
from . import views

app_name = "billing"

urlpatterns = [
    path("payouts/request/", views.payout_request, name="payout_request"),
    path("payouts/earnings/", views.payout_earnings, name="payout_earnings"),
    path("payouts/history/", views.payout_history, name="payout_history"),
    path("payouts/analytics/", views.payout_analytics, name="payout_analytics"),
    path("payouts/all/", views.payout_all, name="payout_all"),
    path("billing/topup/", views.topup, name="topup"),
    path("billing/stripe-status/", views.stripe_status, name="stripe_status"),
    path("billing/stripe-webhook/", views.stripe_webhook, name="stripe_webhook"),
]
