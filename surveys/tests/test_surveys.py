# surveys/tests/test_surveys.py
import io
from datetime import timedelta

import pytest
from django.core import mail
from django.utils import timezone
from openpyxl import load_workbook
from rest_framework import status

from curriculum.utils.excel_export import XLSX_CONTENT_TYPE
from monitoring.exceptions import ServiceError
from surveys import services
from surveys.models import Survey, SurveyAssignment, SurveyQuestion, SurveyResponse
from surveys.tasks import INVITE_SUBJECT


@pytest.fixture
def survey(qa_user):
    survey = Survey.objects.create(title='Khảo sát hài lòng HK1', status='active', created_by=qa_user)
    SurveyQuestion.objects.create(
        survey=survey, order_no=1, label='Mức độ hài lòng', qtype='single',
        options=['Rất hài lòng', 'Hài lòng', 'Không hài lòng'], required=True,
    )
    SurveyQuestion.objects.create(
        survey=survey, order_no=2, label='Hoạt động đã tham gia', qtype='multi',
        options=[{'value': 'lab', 'label': 'Thực hành'}, {'value': 'seminar', 'label': 'Seminar'}],
    )
    SurveyQuestion.objects.create(survey=survey, order_no=3, label='Góp ý', qtype='text')
    return survey


@pytest.fixture
def assigned(survey, lecturer, student):
    services.assign_users(survey, [str(lecturer.pk), str(student.user_id)])
    return {a.role: a for a in survey.assignments.all()}


def questions(survey):
    return list(survey.questions.all())


def full_answers(survey, choice='Hài lòng'):
    single, multi, text = questions(survey)
    return [
        {'question_id': single.pk, 'option': choice},
        {'question_id': multi.pk, 'options': ['lab', 'seminar']},
        {'question_id': text.pk, 'free_text': 'Cần thêm phòng máy'},
    ]


@pytest.mark.django_db
class TestSurveyModel:
    def test_window(self):
        now = timezone.now()
        survey = Survey.objects.create(title='Window', status='active', close_at=now - timedelta(hours=1))
        assert not survey.is_active
        survey.close_at = now + timedelta(hours=1)
        survey.open_at = now + timedelta(minutes=5)
        assert not survey.is_active
        survey.open_at = now - timedelta(minutes=5)
        assert survey.is_active

    def test_default_status_is_inactive(self):
        assert not Survey.objects.create(title='Draft').is_active

    def test_assignment_tokens_are_unique(self, assigned):
        tokens = {a.token for a in assigned.values()}
        assert len(tokens) == 2
        assert all(len(token) == 48 for token in tokens)


@pytest.mark.django_db
class TestManagement:
    def test_create_and_edit_questions(self, auth_client, qa_user):
        client = auth_client(qa_user)
        response = client.post('/api/qa/surveys/', {'title': '  Khảo sát cựu sinh viên  ', 'status': 'draft'}, format='json')
        assert response.status_code == status.HTTP_201_CREATED
        survey_id = response.json()['survey']['id']
        assert response.json()['survey']['title'] == 'Khảo sát cựu sinh viên'

        changed = client.patch(f'/api/qa/surveys/{survey_id}/questions/', {'create': [
            {'order_no': 1, 'label': 'Việc làm hiện tại', 'qtype': 'single', 'options': ['Có', 'Không'], 'required': True},
            {'order_no': 2, 'label': 'Góp ý', 'type': 'text'},
        ]}, format='json').json()
        assert changed == {'ok': True, 'created': 2, 'updated': 0, 'removed': 0}

        first = SurveyQuestion.objects.get(survey_id=survey_id, order_no=1)
        changed = client.patch(f'/api/qa/surveys/{survey_id}/questions/', {
            'update': [{'id': first.pk, 'order_no': 1, 'label': 'Tình trạng việc làm', 'qtype': 'single', 'options': ['Có', 'Không']}],
            'remove': [SurveyQuestion.objects.get(survey_id=survey_id, order_no=2).pk],
        }, format='json').json()
        assert changed == {'ok': True, 'created': 0, 'updated': 1, 'removed': 1}

        detail = client.get(f'/api/qa/surveys/{survey_id}/').json()
        assert [q['label'] for q in detail['questions']] == ['Tình trạng việc làm']

    def test_invalid_question(self, survey):
        with pytest.raises(ServiceError) as excinfo:
            services.apply_question_changes(survey, create=[{'order_no': -1, 'label': 'x', 'qtype': 'single'}])
        assert str(excinfo.value.detail) == 'Question 1: order_no must be a non-negative integer'

    def test_window_validation(self, auth_client, qa_user):
        now = timezone.now()
        response = auth_client(qa_user).post('/api/qa/surveys/', {
            'title': 'Backwards', 'open_at': now.isoformat(), 'close_at': (now - timedelta(days=1)).isoformat(),
        }, format='json')
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()['error'] == 'open_at must be before close_at'

    def test_participants(self, auth_client, qa_user, lecturer, student, department):
        client = auth_client(qa_user)
        lecturers = client.get('/api/qa/participants/?role=lecturer').json()['participants']
        assert [(p['email'], p['department_name']) for p in lecturers] == [(lecturer.email, department.name)]

        students = client.get(f'/api/qa/participants/?framework_id={student.framework_id}').json()['participants']
        assert [(p['email'], p['role']) for p in students] == [(student.user.email, 'student')]

        support = client.get('/api/qa/participants/?role=support').json()['participants']
        assert qa_user.email in [p['email'] for p in support]

    def test_assign_is_idempotent(self, survey, assigned, lecturer):
        assert services.assign_users(survey, [str(lecturer.pk)]) == 1
        assert SurveyAssignment.objects.filter(survey=survey).count() == 2
        assert assigned['lecturer'].department is not None
        assert assigned['student'].framework is not None

    def test_assign_requires_ids(self, survey):
        with pytest.raises(ServiceError):
            services.assign_users(survey, [])

    def test_send_invites(self, auth_client, qa_user, survey, assigned, settings):
        settings.APP_BASE_URL = 'https://qa.example.edu.vn'
        lecturer_assignment = assigned['lecturer']
        response = auth_client(qa_user).post(f'/api/qa/surveys/{survey.pk}/send-invites/', {
            'assignment_ids': [lecturer_assignment.pk, 99999],
            'message': 'Mời thầy/cô tham gia khảo sát.',
        }, format='json')
        assert response.json() == {'sent': 1}

        assert len(mail.outbox) == 1
        email = mail.outbox[0]
        assert email.subject == INVITE_SUBJECT
        assert email.to == [lecturer_assignment.user_email]
        assert f'https://qa.example.edu.vn/survey/{survey.pk}?t={lecturer_assignment.token}' in email.body

        lecturer_assignment.refresh_from_db()
        assert lecturer_assignment.status == 'invited'
        assert lecturer_assignment.invited_at is not None

    def test_send_invites_requires_message(self, auth_client, qa_user, survey, assigned):
        response = auth_client(qa_user).post(
            f'/api/qa/surveys/{survey.pk}/send-invites/', {'assignment_ids': [assigned['lecturer'].pk]}, format='json',
        )
        assert response.json() == {'error': 'message is required'}

    def test_unknown_survey(self, auth_client, qa_user):
        response = auth_client(qa_user).get('/api/qa/surveys/424242/progress/')
        assert response.status_code == status.HTTP_404_NOT_FOUND


@pytest.mark.django_db
class TestRespond:
    def test_save_then_submit(self, survey, assigned, student):
        user = student.user
        single, _, _ = questions(survey)
        draft = services.respond(survey, user, [{'question_id': single.pk, 'option': 'Hài lòng'}])
        assert not draft.is_submitted

        submitted = services.respond(survey, user, full_answers(survey), submit=True)
        assert submitted.pk == draft.pk
        assert submitted.is_submitted
        assert submitted.answers.count() == 4

    def test_required_question_on_submit(self, survey, assigned, student):
        _, multi, _ = questions(survey)
        with pytest.raises(ServiceError) as excinfo:
            services.respond(survey, student.user, [{'question_id': multi.pk, 'options': ['lab']}], submit=True)
        assert str(excinfo.value.detail) == "Question 'Mức độ hài lòng' is required"

    def test_option_must_exist(self, survey, assigned, student):
        single, _, _ = questions(survey)
        with pytest.raises(ServiceError):
            services.respond(survey, student.user, [{'question_id': single.pk, 'option': 'Tuyệt vời'}])

    def test_endpoint_rules(self, auth_client, survey, assigned, student, make_user):
        client = auth_client(student.user)
        url = f'/api/surveys/{survey.pk}/respond/'

        bad_token = client.post(url, {'answers': [], 'token': 'wrong'}, format='json')
        assert bad_token.status_code == status.HTTP_403_FORBIDDEN

        ok = client.post(url, {
            'answers': full_answers(survey), 'submit': True, 'token': assigned['student'].token,
        }, format='json')
        assert ok.status_code == status.HTTP_200_OK
        assert ok.json()['is_submitted'] is True

        again = client.post(url, {'answers': full_answers(survey), 'submit': True}, format='json')
        assert again.status_code == status.HTTP_400_BAD_REQUEST
        assert again.json() == {'error': 'Survey has already been submitted'}

        stranger = make_user('sv003@example.edu.vn', ['student'], 'Không được mời')
        denied = auth_client(stranger).post(url, {'answers': []}, format='json')
        assert denied.status_code == status.HTTP_403_FORBIDDEN

    def test_inactive_survey(self, survey, assigned, student):
        survey.status = 'inactive'
        survey.save()
        with pytest.raises(ServiceError) as excinfo:
            services.respond(survey, student.user, full_answers(survey))
        assert str(excinfo.value.detail) == 'Survey is not active'


@pytest.mark.django_db
class TestReporting:
    def test_results_count_submitted_only(self, survey, assigned, student, lecturer):
        services.respond(survey, student.user, full_answers(survey, 'Rất hài lòng'), submit=True)
        services.respond(survey, lecturer, full_answers(survey, 'Không hài lòng'))

        single, multi, text = services.results(survey)
        assert single['total'] == 1
        assert single['choices'] == [{'value': 'Rất hài lòng', 'count': 1, 'percent': 100.0}]
        assert {c['value'] for c in multi['choices']} == {'lab', 'seminar'}
        assert multi['choices'][0]['percent'] == 50.0
        assert text['texts'] == ['Cần thêm phòng máy']

    def test_progress(self, auth_client, qa_user, survey, assigned, student):
        services.respond(survey, student.user, full_answers(survey), submit=True)
        data = auth_client(qa_user).get(f'/api/qa/surveys/{survey.pk}/progress/').json()
        assert (data['total'], data['submitted'], data['pending']) == (2, 1, 1)

        rows = {row['role']: row for row in data['assignments']}
        assert rows['lecturer']['org_label'] == 'Công nghệ thông tin'
        assert rows['lecturer']['role_label'] == 'Giảng viên'
        assert rows['student']['org_label'] == 'K47 • Kỹ thuật phần mềm • 2023-2027'
        assert rows['student']['is_submitted'] is True

    def test_export(self, auth_client, qa_user, survey, assigned, student):
        services.respond(survey, student.user, full_answers(survey), submit=True)
        response = auth_client(qa_user).get(f'/api/qa/surveys/{survey.pk}/export/')
        assert response['Content-Type'] == XLSX_CONTENT_TYPE

        workbook = load_workbook(io.BytesIO(response.content))
        assert workbook.sheetnames == ['Responses', 'Questions']
        sheet = workbook['Responses']
        assert sheet['B2'].value == student.user.email
        assert sheet['E2'].value == 'Hài lòng'
        assert sheet['F2'].value == 'lab; seminar'

    def test_my_surveys(self, auth_client, survey, assigned, student, lecturer):
        older = Survey.objects.create(title='Đã đóng', status='archived')
        SurveyAssignment.objects.create(survey=older, user=student.user, role='student')
        services.respond(survey, lecturer, full_answers(survey), submit=True)

        items = auth_client(student.user).get('/api/student/surveys/').json()['items']
        assert [item['survey']['title'] for item in items] == ['Khảo sát hài lòng HK1', 'Đã đóng']
        assert items[0]['can_answer'] is True
        assert items[1]['can_answer'] is False

        active_only = auth_client(student.user).get('/api/student/surveys/?active=true').json()['items']
        assert len(active_only) == 1

        teacher_items = auth_client(lecturer).get('/api/teacher/surveys/?submitted=true').json()['items']
        assert [item['is_submitted'] for item in teacher_items] == [True]
        assert SurveyResponse.objects.filter(respondent=lecturer, is_submitted=True).count() == 1
