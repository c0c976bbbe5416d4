# assessment/services/observations.py
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from curriculum.lookups import get_framework
from curriculum.models import Student
from monitoring.exceptions import ServiceError

from ..models import Observation, Rubric
from .rollup import (
    build_item_scores,
    compute_observation_clo_results,
    discard_observation_results,
    save_item_scores,
)

logger = logging.getLogger(__name__)


def get_rubric(rubric_id):
    if not rubric_id:
        raise ServiceError('rubric_id is required')
    try:
        return Rubric.objects.select_related('framework').get(pk=rubric_id)
    except (Rubric.DoesNotExist, ValueError, TypeError):
        raise ServiceError('Rubric not found', 404)


def student_by_user_id(user_id):
    try:
        student = Student.objects.select_related('framework', 'user').filter(user_id=user_id).first()
    except (ValueError, DjangoValidationError):
        student = None
    if student is None:
        raise ServiceError('Student not found', 404)
    return student


def save_observation(teacher, data):
    """Create or update one of ``teacher``'s observations.

    Item scores are replaced wholesale. A submitted observation is rolled
    up into per-CLO results; saving it back as a draft withdraws them.
    """
    rubric_id = data.get('rubric_id')
    student_user_id = data.get('student_user_id')
    items = data.get('items')
    if not rubric_id or not student_user_id or not isinstance(items, list):
        raise ServiceError('rubric_id, student_user_id, items are required')

    status = data.get('status') or Observation.STATUS_DRAFT
    if status not in (Observation.STATUS_DRAFT, Observation.STATUS_SUBMITTED):
        raise ServiceError("status must be 'draft' or 'submitted'")

    rubric = get_rubric(rubric_id)
    student = student_by_user_id(student_user_id)
    scores = build_item_scores(rubric, items)

    observation_id = data.get('id')
    if observation_id:
        observation = Observation.objects.filter(pk=observation_id).first() if str(observation_id).isdigit() else None
        if observation is None:
            raise ServiceError('Observation not found', 404)
        if observation.teacher_id != teacher.pk:
            raise ServiceError('You cannot update this observation', 403)
    else:
        observation = Observation(teacher=teacher, kind=Observation.KIND_DIRECT)

    observation.rubric = rubric
    observation.student = student
    observation.framework = get_framework(data.get('framework_id'), required=False) or rubric.framework
    observation.course_code = data.get('course_code') or rubric.course_code
    observation.status = status
    observation.overall_comment = str(data.get('overall_comment') or '')
    observation.rater_name = teacher.name
    observation.submitted_at = timezone.now() if status == Observation.STATUS_SUBMITTED else None

    with transaction.atomic():
        observation.save()
        save_item_scores(observation, scores)
        if observation.is_submitted:
            compute_observation_clo_results(observation)
        else:
            discard_observation_results(observation)

    logger.info(f"Observation {observation.pk} saved as {status} by {teacher.email}")
    return observation
