# assessment/services/feedback.py
import logging

from django.db import transaction

from curriculum.models import Course
from monitoring.exceptions import ServiceError
from user_management.constants import RoleCode
from user_management.models import CustomUser

from ..models import Feedback, TeacherInboxItem
from . import moderation

logger = logging.getLogger(__name__)


def course_lecturers(course_code):
    """Active lecturers attached to the department(s) teaching ``course_code``."""
    department_ids = (
        Course.objects.filter(course_code=course_code, department__isnull=False)
        .values_list('department_id', flat=True)
    )
    return (
        CustomUser.objects.filter(
            is_active=True,
            role_assignments__role__code=RoleCode.LECTURER,
            staff_departments__department_id__in=department_ids,
        )
        .distinct()
    )


def faculty_recipients(target):
    return CustomUser.objects.filter(
        is_active=True,
        role_assignments__role__code=RoleCode.LECTURER,
        full_name__iexact=target,
    ).distinct()


@transaction.atomic
def submit_student_feedback(sender, kind, target, text):
    """Store a student's feedback and copy it into the inbox of the teachers it concerns."""
    kind = str(kind or '').strip().lower()
    target = str(target or '').strip()
    text = str(text or '').strip()
    if not kind or not target or not text:
        raise ServiceError('kind, target and text are required')
    if kind not in moderation.FEEDBACK_KINDS:
        raise ServiceError("kind must be 'course' or 'faculty'")

    feedback = Feedback.objects.create(
        sender=sender,
        sender_role='student',
        kind=kind,
        target=target,
        text=text,
        course_code=target if kind == 'course' else '',
        visibility='staff',
    )

    recipients = course_lecturers(target) if kind == 'course' else faculty_recipients(target)
    TeacherInboxItem.objects.bulk_create([
        TeacherInboxItem(
            teacher=teacher,
            feedback=feedback,
            course_code=feedback.course_code,
            message=text,
        )
        for teacher in recipients
    ])
    logger.info(f"Feedback {feedback.pk} ({kind}:{target}) delivered to {len(recipients)} inbox(es)")
    return feedback


def submit_teacher_feedback(sender, student_user, message, course_code=None, clo_ids=None):
    ok, reason = moderation.moderate_teacher_message(message)
    if not ok:
        raise ServiceError(f'Moderation failed: {reason}')

    if clo_ids is not None and not isinstance(clo_ids, list):
        raise ServiceError('clo_ids must be an array')

    feedback = Feedback.objects.create(
        sender=sender,
        sender_role='teacher',
        kind='student',
        target=str(student_user.pk),
        to_user=student_user,
        text=message.strip(),
        course_code=course_code or '',
        clo_ids=[str(c) for c in clo_ids or []],
        visibility='student',
        moderation_status='pass',
    )
    logger.info(f"Teacher {sender.email} sent feedback {feedback.pk} to {student_user.email}")
    return feedback
