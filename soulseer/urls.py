from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path("admin/", admin.site.urls),
    path("api/", include("accounts.urls", namespace="accounts")),
    path("api/sessions/", include("readings.urls", namespace="readings")),
    path("api/", include("billing.urls", namespace="billing")),
    path("api/admin/", include("dashboard_admin.urls", namespace="dashboard_admin")),
]
