# evaluation360/services.py
"""360 evaluation workflow: opening requests, collecting submissions."""
import hashlib
import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from assessment.models import Observation
from assessment.services.rollup import build_item_scores, compute_observation_clo_results, save_item_scores
from curriculum.models import Student
from monitoring.exceptions import ServiceError
from user_management.models import CustomUser

from .models import Eval360Form, EvaluationCampaign, EvaluationRequest, GroupCode, PublicSubmission

logger = logging.getLogger(__name__)


def _get(model, pk, label, status_code=404):
    if not pk:
        raise ServiceError(f'{label} is required')
    try:
        return model.objects.get(pk=pk)
    except (model.DoesNotExist, ValueError, TypeError, DjangoValidationError):
        raise ServiceError(f'{label} not found', status_code)


def get_form(form_id):
    return _get(Eval360Form, form_id, 'Form')


def get_user(user_id, label='User'):
    return _get(CustomUser, user_id, label)


def open_campaign_for(form, now=None):
    """The open campaign serving ``form`` with the latest start, or None."""
    campaigns = EvaluationCampaign.objects.open(now).filter(rubric_id=form.rubric_id).order_by('-start_at')
    return next((c for c in campaigns if c.matches(form)), None)


def forms_with_open_campaigns(group_code=None, status=Eval360Form.STATUS_ACTIVE, now=None):
    campaigns = list(EvaluationCampaign.objects.open(now))
    forms = Eval360Form.objects.filter(rubric_id__in={c.rubric_id for c in campaigns})
    if group_code:
        forms = forms.filter(group_code=group_code)
    if status:
        forms = forms.filter(status=status)
    return [form for form in forms.order_by('-created_at') if any(c.matches(form) for c in campaigns)]


def start_request(form_id, evaluatee_user_id, evaluator_user_id=None):
    if not form_id or not evaluatee_user_id:
        raise ServiceError('form_id and evaluatee_user_id are required')

    form = get_form(form_id)
    if not form.is_active:
        raise ServiceError('Form is inactive')

    campaign = open_campaign_for(form)
    if campaign is None:
        raise ServiceError('No open campaign is configured for this form')

    evaluatee = get_user(evaluatee_user_id, 'Evaluatee')
    evaluator = get_user(evaluator_user_id, 'Evaluator') if evaluator_user_id else None

    request = EvaluationRequest.objects.create(
        campaign=campaign,
        form=form,
        evaluator=evaluator,
        evaluatee=evaluatee,
        group_code=form.group_code,
    )
    logger.info(f"360 request {request.pk} opened in campaign {campaign.pk} for {evaluatee.email}")
    return request


@transaction.atomic
def bulk_create_requests(rows):
    if not isinstance(rows, list) or not rows:
        raise ServiceError('No rows to insert')

    created = []
    for index, row in enumerate(rows, start=1):
        if not isinstance(row, dict):
            raise ServiceError(f'Row {index}: expected an object')
        campaign = _get(EvaluationCampaign, row.get('campaign_id'), f'Row {index}: campaign')
        form = _get(Eval360Form, row.get('form_id'), f'Row {index}: form')
        if not campaign.matches(form):
            raise ServiceError(f'Row {index}: campaign does not serve this form')

        group_code = row.get('group_code') or form.group_code
        if group_code not in GroupCode.values:
            raise ServiceError(f'Row {index}: invalid group_code')

        evaluator_id = row.get('evaluator_user_id')
        created.append(EvaluationRequest.objects.create(
            campaign=campaign,
            form=form,
            evaluatee=get_user(row.get('evaluatee_user_id'), f'Row {index}: evaluatee'),
            evaluator=get_user(evaluator_id, f'Row {index}: evaluator') if evaluator_id else None,
            group_code=group_code,
        ))
    logger.info(f"Created {len(created)} 360 request(s) in bulk")
    return created


def submit_request(user, request_id, rubric_id, items, overall_comment=''):
    """Record one evaluator's answers for a pending request.

    Runs in a single transaction with the request row locked, so a second
    submit of the same request is rejected and a failure leaves nothing behind.
    """
    if not request_id or not rubric_id or not isinstance(items, list) or not items:
        raise ServiceError('request_id, rubric_id and items are required')

    with transaction.atomic():
        request = (
            EvaluationRequest.objects.select_for_update()
            .filter(pk=request_id)
            .first() if str(request_id).isdigit() else None
        )
        if request is None:
            raise ServiceError('Evaluation request not found')
        if request.status != EvaluationRequest.STATUS_PENDING:
            raise ServiceError('Evaluation request has already been submitted')
        if request.evaluator_id and request.evaluator_id != user.pk and not user.is_admin:
            raise ServiceError('This evaluation is assigned to another evaluator', 403)

        form = request.form
        rubric = form.rubric
        if str(rubric.pk) != str(rubric_id):
            raise ServiceError('Rubric does not match the form')

        student = Student.objects.filter(user_id=request.evaluatee_id).first()
        if student is None:
            raise ServiceError('Evaluatee has no student profile')

        now = timezone.now()
        observation = Observation.objects.create(
            rubric=rubric,
            student=student,
            teacher=user,
            rater_name=user.name,
            framework=form.framework or rubric.framework,
            course_code=form.course_code or rubric.course_code,
            kind=Observation.KIND_EVAL360,
            group_code=request.group_code,
            status=Observation.STATUS_SUBMITTED,
            overall_comment=str(overall_comment or ''),
            observed_at=now,
            submitted_at=now,
        )
        save_item_scores(observation, build_item_scores(rubric, items))

        request.status = EvaluationRequest.STATUS_SUBMITTED
        request.observation = observation
        request.submitted_at = now
        if request.evaluator_id is None:
            request.evaluator = user
        request.save()

        compute_observation_clo_results(observation)

    logger.info(f"360 request {request.pk} submitted by {user.email} as observation {observation.pk}")
    return observation


def results_for_mssv(mssv):
    student = Student.objects.filter(mssv=mssv).first()
    if student is None:
        return None, []

    observations = (
        Observation.objects.filter(student=student, kind=Observation.KIND_EVAL360)
        .select_related('rubric', 'teacher')
        .order_by('-observed_at')
    )
    items = []
    for observation in observations:
        request = getattr(observation, 'evaluation_request', None)
        items.append({
            'observation_id': observation.pk,
            'observed_at': observation.observed_at,
            'rubric_title': observation.rubric.title,
            'group_code': (request.group_code if request else observation.group_code) or 'unknown',
            'rater_name': observation.rater_name or (observation.teacher.name if observation.teacher else None),
            'note': observation.note or None,
        })
    return student, items


def hash_ip(ip):
    return hashlib.sha256(ip.encode('utf-8')).hexdigest() if ip else ''


def get_public_form(slug):
    form = (
        Eval360Form.objects.select_related('rubric')
        .filter(public_slug=slug, status=Eval360Form.STATUS_ACTIVE, public_enabled=True)
        .first()
    )
    if form is None:
        raise ServiceError('Form does not exist or is not public', 404)
    return form


@transaction.atomic
def submit_public(data, ip='', user_agent=''):
    """Store an anonymous rater's answers as an eval360 observation."""
    slug = data.get('slug')
    target_mssv = str(data.get('target_mssv') or '').strip()
    answers = data.get('answers')
    if not slug or not target_mssv or not isinstance(answers, dict):
        raise ServiceError('slug, target_mssv and answers are required')
    if not data.get('consent'):
        raise ServiceError('Consent is required')

    form = get_public_form(slug)
    rubric = form.rubric
    student = Student.objects.filter(mssv=target_mssv).first()
    if student is None:
        raise ServiceError('Student ID not found')

    rater_name = str(data.get('rater_name') or '').strip()
    rater_relation = str(data.get('rater_relation') or '').strip()
    note = ' | '.join(filter(None, [
        str(data.get('note') or '').strip(),
        f'Rater: {rater_name}' if rater_name else '',
        f'Relation: {rater_relation}' if rater_relation else '',
    ]))

    scores = build_item_scores(
        rubric,
        [{'item_key': row_id, 'selected_level': level} for row_id, level in answers.items()],
    )
    now = timezone.now()
    observation = Observation.objects.create(
        rubric=rubric,
        student=student,
        rater_name=rater_name,
        framework=form.framework or rubric.framework,
        course_code=form.course_code or rubric.course_code,
        kind=Observation.KIND_EVAL360,
        group_code=form.group_code,
        status=Observation.STATUS_SUBMITTED,
        note=note,
        observed_at=now,
        submitted_at=now,
    )
    save_item_scores(observation, scores)
    observation.total_score = float(sum(score.level_rank or 0 for score in scores))
    observation.save(update_fields=['total_score', 'updated_at'])

    PublicSubmission.objects.create(
        form=form,
        rubric=rubric,
        observation=observation,
        target_mssv=target_mssv,
        answers=answers,
        note=note,
        rater_name=rater_name,
        rater_relation=rater_relation,
        consent=True,
        ip_hash=hash_ip(ip),
        user_agent=user_agent[:500],
    )
    logger.info(f"Public 360 submission for {target_mssv} via form {form.pk}")
    return observation
