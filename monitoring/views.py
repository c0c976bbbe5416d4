# monitoring/views.py
import logging
import os

import psutil
from django.conf import settings
from django.core.cache import cache
from django.db import connection
from rest_framework.response import Response
from rest_framework.views import APIView

logger = logging.getLogger(__name__)

USAGE_THRESHOLD = 90


def format_bytes(value):
    for unit in ["B", "KB", "MB", "GB", "TB"]:
        if value < 1024:
            return f"{value:.2f}{unit}"
        value /= 1024
    return f"{value:.2f}PB"


class HealthCheckView(APIView):
    permission_classes = []
    authentication_classes = []

    checks = ('database', 'cache', 'system', 'storage')

    def get(self, request):
        components = {}
        for name in self.checks:
            check = getattr(self, f'_check_{name}')
            try:
                components[name] = check()
            except Exception as e:
                logger.warning(f"Health check '{name}' failed: {e}")
                components[name] = {"status": "unhealthy", "error": str(e)}

        overall = "healthy"
        if any(c["status"] == "unhealthy" for c in components.values()):
            overall = "unhealthy"
        elif any(c["status"] == "warning" for c in components.values()):
            overall = "degraded"

        http_status = 503 if components["database"]["status"] == "unhealthy" else 200
        return Response({"status": overall, "components": components}, status=http_status)

    def _check_database(self):
        with connection.cursor() as cursor:
            cursor.execute("SELECT 1")
        return {"status": "healthy", "vendor": connection.vendor}

    def _check_cache(self):
        cache.set("health_check", "ok", 5)
        if cache.get("health_check") != "ok":
            raise ValueError("Cache round trip failed")
        return {"status": "healthy", "backend": settings.CACHES["default"]["BACKEND"].rsplit(".", 1)[-1]}

    def _check_system(self):
        memory = psutil.virtual_memory()
        cpu_usage = psutil.cpu_percent(interval=None)
        warn = memory.percent >= USAGE_THRESHOLD or cpu_usage >= USAGE_THRESHOLD
        return {
            "status": "warning" if warn else "healthy",
            "memory": {
                "total": format_bytes(memory.total),
                "available": format_bytes(memory.available),
                "percent_used": memory.percent,
            },
            "cpu": {"percent_used": cpu_usage},
        }

    def _check_storage(self):
        details = {}
        for label in ("MEDIA_ROOT", "LOG_DIR"):
            path = str(getattr(settings, label, "") or "")
            if not path or not os.path.exists(path):
                continue
            usage = psutil.disk_usage(path)
            details[label.lower()] = {
                "path": path,
                "free": format_bytes(usage.free),
                "percent_used": usage.percent,
                "status": "healthy" if usage.percent < USAGE_THRESHOLD else "warning",
            }
        healthy = all(d["status"] == "healthy" for d in details.values())
        return {"status": "healthy" if healthy else "warning", "details": details}
