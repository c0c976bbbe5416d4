# qualityhub/urls.py
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import include, path
from drf_yasg import openapi
from drf_yasg.views import get_schema_view
from rest_framework import permissions

from monitoring.views import HealthCheckView

schema_view = get_schema_view(
    openapi.Info(
        title="QualityHub API",
        default_version='v1',
        description="Outcome-based quality assurance: curricula, CLO attainment, rubrics, 360 evaluations and surveys",
    ),
    public=True,
    permission_classes=(permissions.AllowAny,),
)

urlpatterns = [
    path('admin/', admin.site.urls),
    path('user/', include('user_management.urls')),
    path('api/admin/', include('user_management.admin_urls')),
    path('api/', include('curriculum.urls')),
    path('api/', include('assessment.urls')),
    path('api/', include('evaluation360.urls')),
    path('api/', include('surveys.urls')),
    path('health/', HealthCheckView.as_view(), name='health_check'),
    path('swagger/', schema_view.with_ui('swagger', cache_timeout=0), name='schema-swagger-ui'),
    path('redoc/', schema_view.with_ui('redoc', cache_timeout=0), name='schema-redoc'),
] + static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
