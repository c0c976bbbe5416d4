# user_management/services.py
import logging

from deepdiff import DeepDiff
from django.db import transaction

from monitoring.exceptions import ServiceError

from .models import AuditLog, CustomUser, Department, Role, StaffDepartment, UserRole
from .utils import generate_password

logger = logging.getLogger(__name__)


def get_role(code):
    try:
        return Role.objects.get(code=code)
    except Role.DoesNotExist:
        raise ServiceError(f"Role '{code}' not found", 404)


def assign_system_role(user, role_code):
    """Grant a system-wide role. Returns ``(assignment, created)``."""
    role = get_role(role_code)
    assignment, created = UserRole.objects.get_or_create(user=user, role=role, department=None)
    user.clear_permission_cache()
    if created:
        logger.info(f"Role {role_code} assigned to user {user.email}")
    return assignment, created


def unassign_system_role(user, role_code):
    role = get_role(role_code)
    deleted, _ = UserRole.objects.filter(user=user, role=role, department__isnull=True).delete()
    user.clear_permission_cache()
    logger.info(f"Role {role_code} revoked from user {user.email}")
    return deleted


def assign_staff(department, users):
    added = 0
    for user in users:
        _, created = StaffDepartment.objects.get_or_create(user=user, department=department)
        added += int(created)
    return added


def set_department_head(department, user):
    with transaction.atomic():
        StaffDepartment.objects.filter(department=department, is_head=True).exclude(user=user).update(is_head=False)
        link, _ = StaffDepartment.objects.get_or_create(user=user, department=department)
        if not link.is_head:
            link.is_head = True
            link.save(update_fields=['is_head'])
    return link


def snapshot_user(user):
    return {
        'email': user.email,
        'full_name': user.full_name,
        'is_active': user.is_active,
        'department_codes': sorted(
            user.staff_departments.values_list('department__code', flat=True)
        ),
        'role_codes': sorted(set(
            user.role_assignments.values_list('role__code', flat=True)
        )),
    }


def describe_changes(previous_state, new_state):
    """Flatten a DeepDiff between two snapshots into a list of change records."""
    diff = DeepDiff(previous_state, new_state, ignore_order=True)
    changes = []

    for path, change in diff.get('values_changed', {}).items():
        changes.append({
            'type': 'changed',
            'path': path,
            'old_value': change['old_value'],
            'new_value': change['new_value'],
        })
    for path, change in diff.get('type_changes', {}).items():
        changes.append({
            'type': 'changed',
            'path': path,
            'old_value': change.get('old_value'),
            'new_value': change.get('new_value'),
        })
    for path, value in diff.get('iterable_item_added', {}).items():
        changes.append({'type': 'added', 'path': path, 'new_value': value})
    for path, value in diff.get('iterable_item_removed', {}).items():
        changes.append({'type': 'removed', 'path': path, 'old_value': value})

    return changes


def update_user(user, data, actor=None):
    """Apply profile fields, then replace memberships and roles when given."""
    previous_state = snapshot_user(user)

    with transaction.atomic():
        email = data.get('email')
        if email and email != user.email:
            if CustomUser.objects.filter(email=email).exclude(pk=user.pk).exists():
                raise ServiceError('Email is already in use')
            user.email = email
        if 'full_name' in data:
            user.full_name = data['full_name']
        if 'is_active' in data:
            user.is_active = data['is_active']
        user.save()

        if 'department_codes' in data:
            departments = list(Department.objects.filter(code__in=data['department_codes']))
            StaffDepartment.objects.filter(user=user).exclude(department__in=departments).delete()
            for department in departments:
                StaffDepartment.objects.get_or_create(user=user, department=department)

        if 'role_codes' in data:
            roles = list(Role.objects.filter(code__in=data['role_codes']))
            UserRole.objects.filter(user=user).delete()
            UserRole.objects.bulk_create([UserRole(user=user, role=role) for role in roles])

    user.clear_permission_cache()
    new_state = snapshot_user(user)
    changes = describe_changes(previous_state, new_state)
    if changes:
        AuditLog.objects.create(
            user=actor,
            action='update',
            module='users',
            details={'user_id': str(user.pk), 'changes': changes},
            status='success',
        )
    return changes


def import_user_row(row):
    """Create or reuse one account from a bulk-import row."""
    email = row['email']
    with transaction.atomic():
        user = CustomUser.objects.filter(email=email).first()
        if user is None:
            user = CustomUser.objects.create_user(
                email=email,
                password=row.get('password') or generate_password(12, 12),
                full_name=row.get('full_name', ''),
            )
        elif row.get('full_name'):
            user.full_name = row['full_name']
            user.save(update_fields=['full_name'])

        department_code = (row.get('department_code') or '').strip().upper()
        if department_code:
            department = Department.objects.filter(code=department_code).first()
            if department is None:
                raise ServiceError(f"Department '{department_code}' not found")
            StaffDepartment.objects.get_or_create(user=user, department=department)

        for code in row.get('roles', []):
            role = Role.objects.filter(code=code).first()
            if role is None:
                raise ServiceError(f"Role '{code}' not found")
            UserRole.objects.get_or_create(user=user, role=role, department=None)

    user.clear_permission_cache()
    return user


def reset_password(user, new_password=None):
    password = new_password or generate_password()
    user.set_password(password)
    user.save(update_fields=['password'])
    logger.info(f"Password reset for {user.email}")
    return password
