# monitoring/apps.py
import os

from django.apps import AppConfig
from django.conf import settings


class MonitoringConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'monitoring'

    def ready(self):
        os.makedirs(settings.LOG_DIR, exist_ok=True)
