from django.urls import path
from . import views

app_name = "dashboard_admin"

urlpatterns = [
    path('stats/', views.stats, name='stats'),
    path('users/', views.users, name='users'),
    path('readers/', views.readers, name='readers'),
]
