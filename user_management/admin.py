# user_management/admin.py
from django.contrib import admin
from django.contrib.auth.admin import UserAdmin
from django.utils.html import format_html, format_html_join

from .models import AuditLog, CustomUser, Department, Module, Permission, Role, StaffDepartment, UserRole


class UserRoleInline(admin.TabularInline):
    model = UserRole
    fk_name = 'user'
    extra = 0
    autocomplete_fields = ['role', 'department']


class StaffDepartmentInline(admin.TabularInline):
    model = StaffDepartment
    extra = 0
    autocomplete_fields = ['department']


@admin.register(CustomUser)
class CustomUserAdmin(UserAdmin):
    model = CustomUser
    list_display = ['email', 'full_name', 'get_roles_display', 'is_staff', 'is_active', 'last_login']
    list_filter = ['is_staff', 'is_active', 'date_joined']
    readonly_fields = ['date_joined', 'last_login']
    search_fields = ['email', 'full_name']
    ordering = ['-date_joined']
    inlines = [UserRoleInline, StaffDepartmentInline]

    fieldsets = (
        (None, {'fields': ('email', 'full_name', 'password')}),
        ('Permissions', {
            'fields': ('individual_permissions',),
            'classes': ('collapse',)
        }),
        ('Status', {
            'fields': ('is_active', 'is_staff', 'is_superuser'),
            'classes': ('collapse',)
        }),
        ('Important dates', {
            'fields': ('last_login', 'date_joined'),
            'classes': ('collapse',)
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('email', 'full_name', 'password1', 'password2', 'is_active')}
        ),
    )

    def get_roles_display(self, obj):
        return format_html_join(
            ', ',
            '<span style="background-color: #f0f0f0; padding: 2px 6px; border-radius: 3px;">{}</span>',
            ((code,) for code in obj.role_codes),
        )
    get_roles_display.short_description = 'Roles'


@admin.register(Department)
class DepartmentAdmin(admin.ModelAdmin):
    list_display = ['code', 'name', 'is_active', 'get_staff_count']
    search_fields = ['name', 'code']
    list_filter = ['is_active']

    def get_staff_count(self, obj):
        return obj.staff_links.count()
    get_staff_count.short_description = 'Staff'


@admin.register(Role)
class RoleAdmin(admin.ModelAdmin):
    list_display = ['code', 'label', 'is_active']
    search_fields = ['code', 'label']
    filter_horizontal = ['permissions']


@admin.register(Module)
class ModuleAdmin(admin.ModelAdmin):
    list_display = ['name', 'is_active']
    search_fields = ['name']


@admin.register(Permission)
class PermissionAdmin(admin.ModelAdmin):
    list_display = ['codename', 'module', 'resource', 'action', 'is_active']
    list_filter = ['module', 'action', 'is_active']
    search_fields = ['codename', 'resource']


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['created_at', 'user', 'action', 'module', 'status_badge', 'ip_address']
    list_filter = ['action', 'module', 'status']
    search_fields = ['user__email', 'module']
    readonly_fields = [f.name for f in AuditLog._meta.fields]

    def status_badge(self, obj):
        color = '#2e7d32' if obj.status == 'success' else '#c62828'
        return format_html('<span style="color: {};">{}</span>', color, obj.status)
    status_badge.short_description = 'Status'

    def has_add_permission(self, request):
        return False
