from django.apps import AppConfig


class StockSafeConfig(AppConfig):
    name = "stock_safe"
    verbose_name = "Stock safe"
    default_auto_field = "django.db.models.BigAutoField"
