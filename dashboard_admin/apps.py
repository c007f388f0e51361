from django.apps import AppConfig


class DashboardAdminConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'dashboard_admin'
