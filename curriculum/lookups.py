from django.core.exceptions import ValidationError as DjangoValidationError

from monitoring.exceptions import ServiceError
from user_management.constants import STAFF_ROLES

from .models import Framework, Student


def get_framework(framework_id, required=True):
    if not framework_id:
        if required:
            raise ServiceError('framework_id is required')
        return None
    try:
        return Framework.objects.get(pk=framework_id)
    except (Framework.DoesNotExist, ValueError, DjangoValidationError):
        raise ServiceError('Framework not found', 404)


def get_student(student_id=None, user=None):
    """Resolve a student by id, falling back to the caller's own profile."""
    queryset = Student.objects.select_related('framework', 'user')
    if student_id:
        try:
            return queryset.get(pk=student_id)
        except (Student.DoesNotExist, ValueError, DjangoValidationError):
            raise ServiceError('Student not found', 404)
    if user is not None and user.is_authenticated:
        return queryset.filter(user=user).first()
    return None


def student_for_request(request):
    """The caller's own student row; staff may pass ``student_id``."""
    student_id = request.query_params.get('student_id')
    if not student_id and isinstance(request.data, dict):
        student_id = request.data.get('student_id')

    own = get_student(user=request.user)
    if student_id and (own is None or str(own.pk) != str(student_id)):
        if not (request.user.is_admin or request.user.has_any_role(STAFF_ROLES)):
            raise ServiceError('Forbidden', 403)
        return get_student(student_id)
    return own
