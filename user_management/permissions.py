# user_management/permissions.py
from rest_framework.permissions import BasePermission

from .constants import METHOD_TO_ACTION, RoleCode


def _user_has_any_role(user, codes):
    if not user or not user.is_authenticated:
        return False
    if user.is_superuser or user.has_role(RoleCode.ADMIN):
        return True
    return user.has_any_role(codes)


class IsAdmin(BasePermission):
    def has_permission(self, request, view):
        return request.user.is_authenticated and (
            request.user.is_superuser or request.user.has_role(RoleCode.ADMIN)
        )


class HasAnyRole(BasePermission):
    """Grants access to admins and to users holding one of ``roles``."""
    roles = ()

    def has_permission(self, request, view):
        return _user_has_any_role(request.user, self.roles)


def has_any_role(*codes):
    """Build a permission class that accepts any of the given role codes."""
    return type(
        f"HasAnyRole_{'_'.join(str(c) for c in codes)}",
        (HasAnyRole,),
        {'roles': tuple(codes)},
    )


IsQA = has_any_role(RoleCode.QA)
IsStaff = has_any_role(
    RoleCode.QA,
    RoleCode.EDU_MANAGER,
    RoleCode.DEPT_LEAD,
    RoleCode.DEPT_SECRETARY,
    RoleCode.LECTURER,
)


class HasPermission(BasePermission):
    def has_permission(self, request, view):
        if not request.user.is_authenticated:
            return False
        if request.user.is_superuser:
            return True

        action = METHOD_TO_ACTION.get(request.method.upper())
        if not action:
            return False

        resource = getattr(view, 'resource', None)
        if not resource:
            queryset = getattr(view, 'queryset', None)
            if queryset is not None:
                resource = queryset.model._meta.model_name
            else:
                resource = view.__class__.__name__.lower()

        return request.user.has_permission(resource, action)
