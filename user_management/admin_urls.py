# user_management/admin_urls.py
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import AdminUserViewSet, DepartmentViewSet, OrgViewSet, ResetPasswordView, SecurityViewSet

router = DefaultRouter(trailing_slash=True)
router.include_root_view = False
router.register(r'security', SecurityViewSet, basename='admin-security')
router.register(r'org/departments', DepartmentViewSet, basename='admin-departments')
router.register(r'org', OrgViewSet, basename='admin-org')
router.register(r'users', AdminUserViewSet, basename='admin-users')

urlpatterns = [
    path('', include(router.urls)),
    path('reset-password/', ResetPasswordView.as_view(), name='admin_reset_password'),
]
