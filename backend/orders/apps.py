"""Orders app configuration."""

from django.apps import AppConfig


class OrdersConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'orders'

    def ready(self):
        # Order lifecycle hooks + reactions to dispatch outcomes
        import orders.receivers  # noqa: F401
