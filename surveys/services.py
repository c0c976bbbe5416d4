# surveys/services.py
import logging
from collections import Counter, OrderedDict

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.utils import timezone

from curriculum.models import Student
from curriculum.utils.excel_export import ExcelExporter
from monitoring.exceptions import ServiceError
from user_management.constants import STAFF_ROLES, RoleCode
from user_management.models import UserRole

from .models import Survey, SurveyAnswer, SurveyAssignment, SurveyQuestion, SurveyResponse

logger = logging.getLogger(__name__)

PARTICIPANT_LIMIT = 2000


def get_survey(survey_id):
    try:
        return Survey.objects.get(pk=survey_id)
    except (Survey.DoesNotExist, ValueError, TypeError):
        raise ServiceError('Survey not found', 404)


def participants(role=None, department_id=None, framework_id=None, user_ids=None):
    """People who can be asked to answer a survey.

    Lecturers and other staff come from role assignments (other staff are
    ``support``); students come from student profiles linked to a user.
    """
    people = OrderedDict()

    if role in (None, '', 'lecturer', 'support') and not framework_id:
        staff_roles = (
            UserRole.objects.filter(role__code__in=STAFF_ROLES, user__is_active=True)
            .select_related('user', 'role')
            .order_by('user__full_name', 'user__email')
        )
        if user_ids is not None:
            staff_roles = staff_roles.filter(user_id__in=user_ids)

        codes_by_user = {}
        users = {}
        for assignment in staff_roles:
            codes_by_user.setdefault(assignment.user_id, set()).add(assignment.role.code)
            users[assignment.user_id] = assignment.user

        for user_id, codes in codes_by_user.items():
            user = users[user_id]
            participant_role = 'lecturer' if RoleCode.LECTURER in codes else 'support'
            if role and role != participant_role:
                continue
            link = user.staff_departments.select_related('department').order_by('-is_head').first()
            department = link.department if link else None
            if department_id and (department is None or str(department.pk) != str(department_id)):
                continue
            people[user_id] = {
                'user_id': str(user_id),
                'email': user.email,
                'name': user.name,
                'role': participant_role,
                'department_id': str(department.pk) if department else None,
                'department_name': department.name if department else None,
                'framework_id': None,
            }

    if role in (None, '', 'student') and not department_id:
        students = Student.objects.filter(user__isnull=False, user__is_active=True).select_related('user')
        if framework_id:
            students = students.filter(framework_id=framework_id) if str(framework_id).isdigit() else students.none()
        if user_ids is not None:
            students = students.filter(user_id__in=user_ids)
        for student in students.order_by('mssv'):
            if student.user_id in people:
                continue
            people[student.user_id] = {
                'user_id': str(student.user_id),
                'email': student.user.email,
                'name': student.full_name or student.user.name,
                'role': 'student',
                'department_id': None,
                'department_name': None,
                'framework_id': student.framework_id,
            }

    return list(people.values())[:PARTICIPANT_LIMIT]


@transaction.atomic
def assign_users(survey, user_ids):
    if not isinstance(user_ids, list) or not user_ids:
        raise ServiceError('user_ids must be a non-empty array')

    try:
        found = participants(user_ids=user_ids)
    except (ValueError, DjangoValidationError):
        raise ServiceError('user_ids contains an invalid id')

    for person in found:
        SurveyAssignment.objects.update_or_create(
            survey=survey,
            user_id=person['user_id'],
            defaults={
                'user_email': person['email'],
                'user_name': person['name'],
                'role': person['role'],
                'department_id': person['department_id'],
                'framework_id': person['framework_id'],
            },
        )
    logger.info(f"Survey {survey.pk}: {len(found)} assignment(s) upserted")
    return len(found)


def survey_link(survey, assignment, base_url):
    return f"{base_url}/survey/{survey.pk}?t={assignment.token}"


def progress(survey):
    responses = {r.respondent_id: r for r in SurveyResponse.objects.filter(survey=survey)}
    assignments = survey.assignments.select_related('department', 'framework').order_by('created_at')

    rows = []
    for a in assignments:
        response = responses.get(a.user_id)
        department_name = a.department.name if a.department else None
        cohort_label = a.framework.short_label if a.framework else None
        if a.role == 'lecturer':
            org_label = department_name or '-'
        elif a.role == 'student':
            org_label = cohort_label or '-'
        else:
            org_label = department_name or cohort_label or '-'
        rows.append({
            'id': a.pk,
            'user_id': str(a.user_id),
            'email': a.user_email,
            'name': a.user_name,
            'role': a.role,
            'role_label': a.get_role_display(),
            'status': a.status,
            'invited_at': a.invited_at,
            'last_reminded_at': a.last_reminded_at,
            'is_submitted': bool(response and response.is_submitted),
            'submitted_at': response.submitted_at if response else None,
            'department_name': department_name,
            'cohort_label': cohort_label,
            'org_label': org_label,
        })

    submitted = sum(1 for row in rows if row['is_submitted'])
    return {'total': len(rows), 'submitted': submitted, 'pending': len(rows) - submitted, 'assignments': rows}


def results(survey):
    """Per-question aggregation over submitted responses only."""
    questions = list(survey.questions.all())
    answers = SurveyAnswer.objects.filter(response__survey=survey, response__is_submitted=True)

    totals = Counter()
    choices = {q.pk: Counter() for q in questions}
    texts = {q.pk: [] for q in questions}
    for answer in answers:
        totals[answer.question_id] += 1
        if answer.option:
            choices[answer.question_id][answer.option] += 1
        if answer.free_text.strip():
            texts[answer.question_id].append(answer.free_text)

    out = []
    for question in questions:
        total = totals[question.pk]
        out.append({
            'question_id': question.pk,
            'label': question.label,
            'qtype': question.qtype,
            'order_no': question.order_no,
            'total': total,
            'choices': [
                {'value': value, 'count': count, 'percent': round(100.0 * count / max(total, 1), 1)}
                for value, count in choices[question.pk].items()
            ],
            'texts': texts[question.pk],
        })
    return out


def export_workbook(survey):
    questions = list(survey.questions.all())
    responses = survey.responses.select_related('respondent').prefetch_related('answers').order_by('created_at')

    headers = ['response_id', 'respondent', 'is_submitted', 'submitted_at'] + [q.label for q in questions]
    rows = []
    for response in responses:
        by_question = {}
        for answer in response.answers.all():
            by_question.setdefault(answer.question_id, []).append(answer)
        row = [
            response.pk,
            response.respondent.email,
            response.is_submitted,
            response.submitted_at.strftime('%Y-%m-%d %H:%M:%S') if response.submitted_at else '',
        ]
        for question in questions:
            given = by_question.get(question.pk, [])
            if question.qtype == 'text':
                row.append(next((a.free_text for a in given if a.free_text), ''))
            else:
                row.append('; '.join(a.option for a in given if a.option))
        rows.append(row)

    exporter = ExcelExporter()
    exporter.add_sheet('Responses', headers, rows)
    exporter.add_sheet(
        'Questions',
        ['order_no', 'label', 'qtype', 'options', 'required'],
        [[q.order_no, q.label, q.qtype, '; '.join(q.option_values), q.required] for q in questions],
    )
    return exporter.to_bytes()


def my_surveys(user, active=None, submitted=None):
    """Assignments of ``user`` with answer state; active first, then unsubmitted, then newest."""
    assignments = SurveyAssignment.objects.filter(user=user).select_related('survey')
    responses = {r.survey_id: r for r in SurveyResponse.objects.filter(respondent=user)}

    items = []
    for assignment in assignments:
        survey = assignment.survey
        response = responses.get(survey.pk)
        is_active = survey.is_active
        is_submitted = bool(response and response.is_submitted)
        if active is not None and is_active != active:
            continue
        if submitted is not None and is_submitted != submitted:
            continue
        items.append({
            'survey': {
                'id': survey.pk,
                'title': survey.title,
                'intro': survey.intro,
                'status': survey.status,
                'created_at': survey.created_at,
                'updated_at': survey.updated_at,
            },
            'assignment': {
                'id': assignment.pk,
                'role': assignment.role,
                'status': assignment.status,
                'invited_at': assignment.invited_at,
            },
            'response': {
                'id': response.pk,
                'is_submitted': response.is_submitted,
                'submitted_at': response.submitted_at,
            } if response else None,
            'is_active': is_active,
            'is_submitted': is_submitted,
            'can_answer': is_active and not is_submitted,
        })

    items.sort(key=lambda it: it['survey']['created_at'], reverse=True)
    items.sort(key=lambda it: (not it['is_active'], it['is_submitted']))
    return items


def _answer_rows(question, answer):
    if question.qtype == 'text':
        text = str(answer.get('free_text') or '').strip()
        return [SurveyAnswer(question=question, free_text=text)] if text else []

    if question.qtype == 'single':
        raw = answer.get('option')
        values = [raw] if raw not in (None, '') else []
    else:
        values = answer.get('options')
        if values is None:
            values = [answer['option']] if answer.get('option') not in (None, '') else []
        if not isinstance(values, list):
            raise ServiceError(f"Question {question.pk}: options must be an array")

    allowed = question.option_values
    rows = []
    for value in values:
        value = str(value)
        if allowed and value not in allowed:
            raise ServiceError(f"Question {question.pk}: '{value}' is not an option")
        rows.append(SurveyAnswer(question=question, option=value))
    return rows


@transaction.atomic
def respond(survey, user, answers, submit=False, token=None):
    assignment = SurveyAssignment.objects.filter(survey=survey, user=user).first()
    if assignment is None:
        raise ServiceError('You are not assigned to this survey', 403)
    if token and token != assignment.token:
        raise ServiceError('Invalid survey token', 403)
    if not survey.is_active:
        raise ServiceError('Survey is not active')
    if not isinstance(answers, list):
        raise ServiceError('answers must be an array')

    response, _ = SurveyResponse.objects.select_for_update().get_or_create(survey=survey, respondent=user)
    if response.is_submitted:
        raise ServiceError('Survey has already been submitted')

    questions = {q.pk: q for q in survey.questions.all()}
    rows = []
    answered = set()
    for answer in answers:
        if not isinstance(answer, dict):
            raise ServiceError('Each answer must be an object')
        raw_id = answer.get('question_id')
        question = questions.get(int(raw_id)) if str(raw_id).isdigit() else None
        if question is None:
            raise ServiceError(f"Unknown question {raw_id}")
        question_rows = _answer_rows(question, answer)
        if question_rows:
            answered.add(question.pk)
        rows.extend(question_rows)

    if submit:
        missing = [q for q in questions.values() if q.required and q.pk not in answered]
        if missing:
            raise ServiceError(f"Question '{missing[0].label}' is required")

    response.answers.all().delete()
    for row in rows:
        row.response = response
    SurveyAnswer.objects.bulk_create(rows)

    if submit:
        response.is_submitted = True
        response.submitted_at = timezone.now()
    response.save()
    logger.info(f"Survey {survey.pk}: response from {user.email} saved (submitted={response.is_submitted})")
    return response


def validate_question(data, index, require_id=False):
    if not isinstance(data, dict):
        raise ServiceError(f'Question {index}: expected an object')
    if require_id and not str(data.get('id', '')).isdigit():
        raise ServiceError(f'Question {index}: id is required')
    order_no = data.get('order_no')
    if not isinstance(order_no, int) or isinstance(order_no, bool) or order_no < 0:
        raise ServiceError(f'Question {index}: order_no must be a non-negative integer')
    label = str(data.get('label') or '').strip()
    if not label:
        raise ServiceError(f'Question {index}: label is required')
    qtype = data.get('qtype') or data.get('type')
    if qtype not in dict(SurveyQuestion.QTYPE_CHOICES):
        raise ServiceError(f'Question {index}: qtype must be single, multi or text')
    options = data.get('options') or []
    if not isinstance(options, list):
        raise ServiceError(f'Question {index}: options must be an array')
    return {
        'order_no': order_no,
        'label': label,
        'qtype': qtype,
        'options': options,
        'required': bool(data.get('required', False)),
    }


@transaction.atomic
def apply_question_changes(survey, create=None, update=None, remove=None):
    create, update, remove = create or [], update or [], remove or []
    if not all(isinstance(v, list) for v in (create, update, remove)):
        raise ServiceError('create, update and remove must be arrays')

    new_rows = [validate_question(q, i) for i, q in enumerate(create, start=1)]
    changes = []
    for i, q in enumerate(update, start=1):
        fields = validate_question(q, i, require_id=True)
        changes.append((int(q['id']), fields))

    SurveyQuestion.objects.bulk_create([SurveyQuestion(survey=survey, **row) for row in new_rows])
    for question_id, fields in changes:
        if not SurveyQuestion.objects.filter(survey=survey, pk=question_id).update(**fields):
            raise ServiceError(f'Question {question_id} not found', 404)
    removed_ids = [int(pk) for pk in remove if str(pk).isdigit()]
    _, deleted = SurveyQuestion.objects.filter(survey=survey, pk__in=removed_ids).delete()
    removed = deleted.get(SurveyQuestion._meta.label, 0)
    return {'created': len(new_rows), 'updated': len(changes), 'removed': removed}

