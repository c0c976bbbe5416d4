# user_management/models.py
import uuid

from django.conf import settings
from django.contrib.auth.models import AbstractBaseUser, BaseUserManager, PermissionsMixin
from django.core.cache import cache
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone

from .constants import AuditAction, RoleCode


class TimeStampedModel(models.Model):
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        abstract = True


class AuditModelMixin(models.Model):
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(class)s_created'
    )
    updated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='%(class)s_updated'
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    is_deleted = models.BooleanField(default=False)
    deleted_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        abstract = True

    def soft_delete(self, user=None):
        self.is_deleted = True
        self.deleted_at = timezone.now()
        if user:
            self.updated_by = user
        self.save()

    def save(self, *args, **kwargs):
        user = kwargs.pop('user', None)
        if user is not None:
            if not self.created_by_id:
                self.created_by = user
            self.updated_by = user
        super().save(*args, **kwargs)


class Department(AuditModelMixin):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=20, unique=True)
    name = models.CharField(max_length=200)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['name']
        indexes = [
            models.Index(fields=['code']),
            models.Index(fields=['name']),
        ]

    def __str__(self):
        return f"{self.code} - {self.name}"


class Module(AuditModelMixin):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True, null=True)
    is_active = models.BooleanField(default=True)

    def __str__(self):
        return self.name


class Permission(AuditModelMixin):
    ACTION_CHOICES = [
        ('view', 'View'),
        ('create', 'Create'),
        ('update', 'Update'),
        ('delete', 'Delete'),
    ]

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    module = models.ForeignKey(Module, on_delete=models.CASCADE, related_name='permissions')
    resource = models.CharField(max_length=50)
    action = models.CharField(max_length=20, choices=ACTION_CHOICES, default='view')
    codename = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        unique_together = ['module', 'resource', 'action']
        ordering = ['module__name', 'resource', 'action']
        indexes = [
            models.Index(fields=['resource', 'action']),
            models.Index(fields=['codename']),
        ]

    def clean(self):
        if not self.codename:
            self.codename = f"{self.module.name}:{self.resource}:{self.action}"
        if not self.resource.replace('_', '').isalnum():
            raise ValidationError({
                'resource': 'Resource name must contain only alphanumeric characters and underscores'
            })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def __str__(self):
        return self.codename


class Role(AuditModelMixin):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=50, unique=True)
    label = models.CharField(max_length=100)
    description = models.TextField(blank=True)
    permissions = models.ManyToManyField(Permission, related_name='roles', blank=True)
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ['code']

    def __str__(self):
        return self.code

    def has_permission(self, resource, action):
        return self.permissions.filter(resource=resource, action=action, is_active=True).exists()


class CustomUserManager(BaseUserManager):
    def create_user(self, email, password=None, **extra_fields):
        if not email:
            raise ValueError('The Email field must be set')
        email = self.normalize_email(email).lower()
        user = self.model(email=email, **extra_fields)
        user.set_password(password)
        user.save(using=self._db)
        return user

    def create_superuser(self, email, password=None, **extra_fields):
        extra_fields.setdefault('is_staff', True)
        extra_fields.setdefault('is_superuser', True)

        if extra_fields.get('is_staff') is not True:
            raise ValueError('Superuser must have is_staff=True.')
        if extra_fields.get('is_superuser') is not True:
            raise ValueError('Superuser must have is_superuser=True.')

        return self.create_user(email, password, **extra_fields)


class CustomUser(AbstractBaseUser, PermissionsMixin):
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    email = models.EmailField(unique=True)
    full_name = models.CharField(max_length=200, blank=True)
    is_active = models.BooleanField(default=True)
    is_staff = models.BooleanField(default=False)
    date_joined = models.DateTimeField(default=timezone.now)
    roles = models.ManyToManyField(
        Role,
        through='UserRole',
        through_fields=('user', 'role'),
        related_name='users',
        blank=True,
    )
    departments = models.ManyToManyField(
        Department,
        through='StaffDepartment',
        related_name='staff',
        blank=True,
    )
    individual_permissions = models.ManyToManyField(Permission, related_name='users', blank=True)

    objects = CustomUserManager()

    USERNAME_FIELD = 'email'
    REQUIRED_FIELDS = []

    class Meta:
        ordering = ['email']

    def __str__(self):
        return self.email

    @property
    def name(self):
        return self.full_name or self.email

    def get_full_name(self):
        return self.name

    def get_short_name(self):
        return self.full_name.split(' ')[-1] if self.full_name else self.email

    def _role_cache_key(self):
        return f'user_roles_{self.pk}'

    @property
    def role_codes(self):
        """Codes of every role assigned to the user, at any scope."""
        key = self._role_cache_key()
        codes = cache.get(key)
        if codes is None:
            codes = sorted(set(
                UserRole.objects.filter(user=self, role__is_active=True)
                .values_list('role__code', flat=True)
            ))
            cache.set(key, codes, settings.ROLE_CACHE_TIMEOUT)
        return codes

    def has_role(self, code):
        return code in self.role_codes

    def has_any_role(self, codes):
        owned = set(self.role_codes)
        return any(code in owned for code in codes)

    @property
    def is_admin(self):
        return self.is_superuser or self.has_role(RoleCode.ADMIN)

    def has_permission(self, resource, action):
        cache_key = f'user_perm_{self.pk}_{resource}_{action}'
        cached_result = cache.get(cache_key)
        if cached_result is not None:
            return cached_result

        has_perm = self.individual_permissions.filter(resource=resource, action=action).exists()
        if not has_perm:
            has_perm = Role.objects.filter(
                userrole__user=self,
                permissions__resource=resource,
                permissions__action=action,
            ).exists()

        cache.set(cache_key, has_perm, settings.ROLE_CACHE_TIMEOUT)
        return has_perm

    def clear_permission_cache(self):
        """Drop cached role codes and permission checks for this user."""
        keys = [self._role_cache_key()]
        keys.extend(
            f'user_perm_{self.pk}_{resource}_{action}'
            for resource, action in Permission.objects.values_list('resource', 'action')
        )
        cache.delete_many(keys)

    def primary_department(self):
        link = self.staff_departments.select_related('department').order_by('-is_head', 'created_at').first()
        return link.department if link else None


class UserRole(models.Model):
    """A role granted to a user, system-wide when department is empty."""
    user = models.ForeignKey(CustomUser, on_delete=models.CASCADE, related_name='role_assignments')
    role = models.ForeignKey(Role, on_delete=models.CASCADE)
    department = models.ForeignKey(
        Department,
        on_delete=models.CASCADE,
        null=True,
        blank=True,
        related_name='role_assignments'
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ['user', 'role', 'department']

    def __str__(self):
        scope = self.department.code if self.department_id else 'system'
        return f"{self.user.email}: {self.role.code} ({scope})"


class StaffDepartment(models.Model):
    user = models.ForeignKey(CustomUser, on_delete=models.CASCADE, related_name='staff_departments')
    department = models.ForeignKey(Department, on_delete=models.CASCADE, related_name='staff_links')
    is_head = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        unique_together = ['user', 'department']

    def __str__(self):
        return f"{self.user.email} @ {self.department.code}"


class AuditLog(models.Model):
    STATUS_CHOICES = [
        ('success', 'Success'),
        ('failure', 'Failure'),
    ]

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='audit_logs'
    )
    action = models.CharField(max_length=20, choices=AuditAction.choices)
    module = models.CharField(max_length=100)
    details = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.TextField(blank=True, null=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='success')
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['created_at']),
            models.Index(fields=['module', 'action']),
        ]

    def __str__(self):
        return f"{self.action} {self.module} ({self.status})"
