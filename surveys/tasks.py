from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone

from .models import Survey, SurveyAssignment
from .services import survey_link

import logging

logger = logging.getLogger(__name__)

INVITE_SUBJECT = 'Mời tham gia khảo sát đảm bảo chất lượng'


@shared_task
def send_survey_invites(survey_id, assignment_ids, message):
    """Email each assignment its personal survey link and mark it invited"""
    survey = Survey.objects.get(pk=survey_id)
    assignments = SurveyAssignment.objects.filter(survey=survey, pk__in=assignment_ids)

    sent = 0
    for assignment in assignments:
        if not assignment.user_email:
            logger.warning(f"Assignment {assignment.pk} has no email; skipped")
            continue
        link = survey_link(survey, assignment, settings.APP_BASE_URL)
        body = f"Chào {assignment.user_name},\n\n{message}\n\n{link}\n"
        send_mail(INVITE_SUBJECT, body, settings.DEFAULT_FROM_EMAIL, [assignment.user_email])

        assignment.status = 'invited'
        assignment.invited_at = timezone.now()
        assignment.save(update_fields=['status', 'invited_at', 'updated_at'])
        sent += 1

    logger.info(f"Survey {survey_id}: sent {sent} invite(s)")
    return sent
