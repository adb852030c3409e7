from django.apps import AppConfig


class BrewConfig(AppConfig):
    name = "brew"
    default_auto_field = "django.db.models.AutoField"
