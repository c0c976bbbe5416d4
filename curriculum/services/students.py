# curriculum/services/students.py
import logging

from django.conf import settings
from django.db import IntegrityError, transaction

from monitoring.exceptions import ServiceError
from user_management.constants import RoleCode
from user_management.models import CustomUser, Role, UserRole
from user_management.utils import generate_password

from ..models import Student

logger = logging.getLogger(__name__)


def create_student(framework, mssv, full_name, email, password=None):
    """Create a student row together with a login account holding the student role."""
    mssv = (mssv or '').strip()
    full_name = (full_name or '').strip()
    email = (email or '').strip().lower()
    if not (mssv and full_name and email):
        raise ServiceError('mssv, full_name and email are required')
    if Student.objects.filter(mssv=mssv).exists():
        raise ServiceError(f"Student {mssv} already exists")

    with transaction.atomic():
        user = CustomUser.objects.filter(email=email).first()
        if user is None:
            user = CustomUser.objects.create_user(
                email=email,
                password=password or settings.DEFAULT_STUDENT_PASSWORD,
                full_name=full_name,
            )
        elif hasattr(user, 'student_profile'):
            raise ServiceError(f"Email {email} is already linked to another student")

        role, _ = Role.objects.get_or_create(code=RoleCode.STUDENT, defaults={'label': RoleCode.STUDENT.label})
        UserRole.objects.get_or_create(user=user, role=role, department=None)
        try:
            student = Student.objects.create(
                user=user,
                framework=framework,
                mssv=mssv,
                student_code=mssv,
                full_name=full_name,
                email=email,
            )
        except IntegrityError:
            raise ServiceError(f"Student {mssv} already exists")

    user.clear_permission_cache()
    logger.info(f"Student {mssv} created in framework {framework.pk}")
    return student


def import_students(framework, rows):
    results = []
    for row in rows:
        mssv = row.get('mssv', '')
        try:
            student = create_student(
                framework,
                mssv,
                row.get('full_name'),
                row.get('email'),
                row.get('password') or None,
            )
        except ServiceError as e:
            results.append({'mssv': mssv, 'ok': False, 'error': str(e.detail)})
            continue
        results.append({'mssv': student.mssv, 'ok': True, 'student_id': student.pk})
    return results


def reset_student_password(student, new_password=None):
    if student.user is None:
        raise ServiceError('Student has no login account')
    password = new_password or generate_password()
    student.user.set_password(password)
    student.user.save(update_fields=['password'])
    return password


def delete_student(student):
    with transaction.atomic():
        if student.user_id:
            student.user.delete()
        student.delete()
    logger.info(f"Student {student.mssv} deleted")
