from django.apps import AppConfig


class Evaluation360Config(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "evaluation360"
