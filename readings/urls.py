from django.urls import path
from . import views

app_name = "readings"

urlpatterns = [
    path("start/", views.start, name="start"),
    path("active/", views.active, name="active"),
    path("reader/status/", views.reader_status, name="reader_status"),
    path("<int:session_id>/", views.detail, name="detail"),
    path("<int:session_id>/end/", views.end, name="end"),
    path("<int:session_id>/cancel/", views.cancel, name="cancel"),
]
