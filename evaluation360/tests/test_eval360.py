# evaluation360/tests/test_eval360.py
import hashlib
from datetime import timedelta

import pytest
from django.utils import timezone
from rest_framework import status

from assessment.models import Observation
from curriculum.models import StudentCloResult
from evaluation360 import services
from evaluation360.models import EvaluationCampaign, EvaluationRequest, PublicSubmission
from evaluation360.views import my_requests, serialize_task
from monitoring.exceptions import ServiceError

ITEMS = [
    {'item_key': 'r1', 'selected_level': 'L3'},
    {'item_key': 'r2', 'selected_level': 'L3'},
    {'item_key': 'r3', 'selected_level': 'L2'},
]


@pytest.fixture
def pending_request(eval_form, open_campaign, student, lecturer):
    return services.start_request(eval_form.pk, str(student.user_id), str(lecturer.pk))


@pytest.mark.django_db
class TestCampaigns:
    def test_open_window(self, open_campaign):
        now = timezone.now()
        assert open_campaign.is_open(now)
        assert not open_campaign.is_open(open_campaign.end_at)
        assert list(EvaluationCampaign.objects.open(now)) == [open_campaign]

    def test_campaign_scope_binds_only_when_set(self, open_campaign, eval_form):
        assert open_campaign.matches(eval_form)
        open_campaign.course_code = 'IT999'
        assert not open_campaign.matches(eval_form)

    def test_forms_with_open_campaigns(self, auth_client, lecturer, eval_form, open_campaign):
        items = auth_client(lecturer).get('/api/360/form/').json()['items']
        assert [item['id'] for item in items] == [eval_form.pk]

    def test_create_and_close(self, auth_client, qa_user, eval_form):
        client = auth_client(qa_user)
        now = timezone.now()
        response = client.post('/api/360/campaigns/', {
            'form_id': eval_form.pk,
            'name': 'HK2 2024',
            'start_at': now.isoformat(),
            'end_at': (now + timedelta(days=14)).isoformat(),
        }, format='json')
        assert response.status_code == status.HTTP_201_CREATED
        campaign = EvaluationCampaign.objects.get(pk=response.json()['item']['id'])
        assert campaign.rubric_id == eval_form.rubric_id
        assert campaign.course_code == 'IT101'

        closed = client.patch(f'/api/360/campaigns/?id={campaign.pk}', {'action': 'close_now'}, format='json')
        assert closed.json() == {'ok': True}
        campaign.refresh_from_db()
        assert not campaign.is_open()

    def test_window_must_be_ordered(self, auth_client, qa_user, eval_form):
        now = timezone.now()
        response = auth_client(qa_user).post('/api/360/campaigns/', {
            'form_id': eval_form.pk,
            'name': 'Backwards',
            'start_at': now.isoformat(),
            'end_at': (now - timedelta(days=1)).isoformat(),
        }, format='json')
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()['error'] == 'start_at must be before end_at'

    def test_only_qa_creates_campaigns(self, auth_client, lecturer, eval_form):
        response = auth_client(lecturer).post('/api/360/campaigns/', {'form_id': eval_form.pk}, format='json')
        assert response.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.django_db
class TestForms:
    def test_invalid_group_code(self, auth_client, qa_user, rubric):
        response = auth_client(qa_user).post('/api/360/form/manage/', {
            'title': 'Odd form', 'group_code': 'parent', 'rubric_id': rubric.pk,
        }, format='json')
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()['error'] == 'group_code: Invalid group_code'

    def test_public_form_needs_slug(self, auth_client, qa_user, rubric):
        response = auth_client(qa_user).post('/api/360/form/manage/', {
            'title': 'Patient view', 'group_code': 'patient', 'rubric_id': rubric.pk, 'public_enabled': True,
        }, format='json')
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()['error'] == 'public_slug: A public form needs a slug'

    def test_slug_is_unique(self, auth_client, qa_user, rubric, eval_form):
        response = auth_client(qa_user).post('/api/360/form/manage/', {
            'title': 'Copy', 'group_code': 'self', 'rubric_id': rubric.pk,
            'public_enabled': True, 'public_slug': 'peer-review',
        }, format='json')
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()['error'] == 'public_slug: This slug is already in use'


@pytest.mark.django_db
class TestStartRequest:
    def test_start(self, pending_request, open_campaign, lecturer):
        assert pending_request.campaign == open_campaign
        assert pending_request.evaluator == lecturer
        assert pending_request.group_code == 'peer'
        assert pending_request.status == 'pending'

    def test_without_open_campaign(self, eval_form, student):
        with pytest.raises(ServiceError) as excinfo:
            services.start_request(eval_form.pk, str(student.user_id))
        assert str(excinfo.value.detail) == 'No open campaign is configured for this form'

    def test_inactive_form(self, eval_form, open_campaign, student):
        eval_form.status = 'inactive'
        eval_form.save()
        with pytest.raises(ServiceError) as excinfo:
            services.start_request(eval_form.pk, str(student.user_id))
        assert str(excinfo.value.detail) == 'Form is inactive'

    def test_unknown_form(self, auth_client, lecturer):
        response = auth_client(lecturer).post(
            '/api/360/start/', {'form_id': 999, 'evaluatee_user_id': str(lecturer.pk)}, format='json',
        )
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_bulk(self, auth_client, qa_user, eval_form, open_campaign, student, lecturer):
        client = auth_client(qa_user)
        response = client.post('/api/360/requests/bulk/', {'rows': [{
            'campaign_id': open_campaign.pk,
            'form_id': eval_form.pk,
            'evaluatee_user_id': str(student.user_id),
            'evaluator_user_id': str(lecturer.pk),
        }]}, format='json')
        items = response.json()['items']
        assert items[0]['evaluatee']['mssv'] == 'SV001'
        assert items[0]['rubric_id'] == eval_form.rubric_id

        empty = client.post('/api/360/requests/bulk/', {'rows': []}, format='json')
        assert empty.json() == {'error': 'No rows to insert'}

    def test_bulk_body_must_be_an_object(self, auth_client, qa_user, eval_form, open_campaign, student):
        response = auth_client(qa_user).post('/api/360/requests/bulk/', [{
            'campaign_id': open_campaign.pk,
            'form_id': eval_form.pk,
            'evaluatee_user_id': str(student.user_id),
        }], format='json')
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {'error': 'Request body must be an object'}
        assert not EvaluationRequest.objects.exists()


@pytest.mark.django_db
class TestSubmit:
    def test_submit_rolls_up(self, auth_client, lecturer, pending_request, rubric):
        response = auth_client(lecturer).post('/api/360/submit/', {
            'request_id': pending_request.pk,
            'rubric_id': rubric.pk,
            'items': ITEMS,
            'overall_comment': 'Hợp tác tốt',
        }, format='json')
        assert response.status_code == status.HTTP_200_OK

        observation = Observation.objects.get(pk=response.json()['observation_id'])
        assert observation.kind == 'eval360'
        assert observation.group_code == 'peer'
        assert observation.total_score == 8.0

        pending_request.refresh_from_db()
        assert pending_request.status == 'submitted'
        assert pending_request.observation == observation
        assert StudentCloResult.objects.filter(observation=observation).count() == 2

    def test_second_submit_is_rejected(self, lecturer, pending_request, rubric):
        services.submit_request(lecturer, pending_request.pk, rubric.pk, ITEMS)
        with pytest.raises(ServiceError) as excinfo:
            services.submit_request(lecturer, pending_request.pk, rubric.pk, ITEMS)
        assert excinfo.value.status_code == 400
        assert str(excinfo.value.detail) == 'Evaluation request has already been submitted'
        assert Observation.objects.count() == 1

    def test_other_evaluator_is_forbidden(self, make_user, pending_request, rubric):
        other = make_user('gv.khac@example.edu.vn', ['lecturer'], 'Giảng viên khác')
        with pytest.raises(ServiceError) as excinfo:
            services.submit_request(other, pending_request.pk, rubric.pk, ITEMS)
        assert excinfo.value.status_code == 403

    def test_rubric_mismatch(self, lecturer, pending_request, rubric):
        with pytest.raises(ServiceError) as excinfo:
            services.submit_request(lecturer, pending_request.pk, rubric.pk + 1, ITEMS)
        assert str(excinfo.value.detail) == 'Rubric does not match the form'

    def test_bad_item_leaves_request_pending(self, lecturer, pending_request, rubric):
        with pytest.raises(ServiceError):
            services.submit_request(lecturer, pending_request.pk, rubric.pk, [{'item_key': 'r1', 'selected_level': 'L9'}])
        pending_request.refresh_from_db()
        assert pending_request.status == 'pending'
        assert not Observation.objects.exists()

    def test_my_tasks(self, auth_client, lecturer, pending_request, rubric):
        client = auth_client(lecturer)
        items = client.get('/api/my-tasks/').json()['items']
        assert [item['id'] for item in items] == [pending_request.pk]
        assert items[0]['evaluatee']['full_name'] == 'Trần Thị Bình'

        services.submit_request(lecturer, pending_request.pk, rubric.pk, ITEMS)
        assert client.get('/api/my-tasks/').json()['items'] == []
        assert len(client.get('/api/360/my-tasks/?status=submitted').json()['items']) == 1

    def test_task_list_loads_evaluatees_in_one_query(
        self, django_assert_num_queries, lecturer, qa_user, pending_request, eval_form, open_campaign,
    ):
        EvaluationRequest.objects.create(
            campaign=open_campaign, form=eval_form, evaluatee=qa_user, evaluator=lecturer, group_code='peer',
        )
        with django_assert_num_queries(1):
            items = [serialize_task(task) for task in my_requests(lecturer)]
        assert {item['evaluatee']['mssv'] for item in items} == {'SV001', None}
        assert {item['evaluatee']['full_name'] for item in items} == {'Trần Thị Bình', 'QA Officer'}


@pytest.mark.django_db
class TestResults:
    def test_student_sees_own_results(self, auth_client, student_user, lecturer, pending_request, rubric):
        services.submit_request(lecturer, pending_request.pk, rubric.pk, ITEMS)
        data = auth_client(student_user).get('/api/360/results/?mssv=SV001').json()
        assert data['student'] == {'mssv': 'SV001', 'full_name': 'Trần Thị Bình'}
        assert data['items'][0]['group_code'] == 'peer'
        assert data['items'][0]['rater_name'] == 'Nguyễn Văn An'

    def test_other_student_is_forbidden(self, auth_client, make_user, student):
        other = make_user('sv002@example.edu.vn', ['student'], 'Lê Văn C')
        response = auth_client(other).get('/api/360/results/?mssv=SV001')
        assert response.status_code == status.HTTP_403_FORBIDDEN


@pytest.mark.django_db
class TestPublic:
    def test_public_form(self, api_client, eval_form):
        data = api_client.get('/api/360/public/form/peer-review/').json()
        assert data['form']['slug'] == 'peer-review'
        assert [row['id'] for row in data['rubric']['definition']['rows']] == ['r1', 'r2', 'r3']

    def test_unknown_slug(self, api_client, eval_form):
        response = api_client.get('/api/360/public/form/nope/')
        assert response.status_code == status.HTTP_404_NOT_FOUND

    def test_submit(self, api_client, eval_form, student):
        response = api_client.post('/api/360/public/submit/', {
            'slug': 'peer-review',
            'target_mssv': 'SV001',
            'answers': {'r1': 'L3', 'r2': 'L3', 'r3': 'L1'},
            'consent': True,
            'rater_name': 'Bệnh nhân A',
            'rater_relation': 'patient',
            'note': 'Tận tình',
        }, format='json', HTTP_X_FORWARDED_FOR='203.0.113.5, 10.0.0.1', HTTP_USER_AGENT='pytest')
        assert response.status_code == status.HTTP_200_OK

        observation = Observation.objects.get(pk=response.json()['observation_id'])
        assert observation.total_score == 7.0
        assert observation.teacher is None
        assert observation.note == 'Tận tình | Rater: Bệnh nhân A | Relation: patient'
        assert not StudentCloResult.objects.exists()

        submission = PublicSubmission.objects.get()
        assert submission.ip_hash == hashlib.sha256(b'203.0.113.5').hexdigest()
        assert submission.user_agent == 'pytest'

    @pytest.mark.parametrize('payload, message', [
        ({'slug': 'peer-review', 'target_mssv': 'SV001', 'answers': {'r1': 'L1'}}, 'Consent is required'),
        ({'slug': 'peer-review', 'target_mssv': 'SV999', 'answers': {'r1': 'L1'}, 'consent': True},
         'Student ID not found'),
        ({'slug': 'peer-review', 'answers': {'r1': 'L1'}, 'consent': True},
         'slug, target_mssv and answers are required'),
    ])
    def test_rejections(self, api_client, eval_form, student, payload, message):
        response = api_client.post('/api/360/public/submit/', payload, format='json')
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json() == {'error': message}
        assert not PublicSubmission.objects.exists()

    def test_private_form_is_hidden(self, api_client, eval_form):
        eval_form.public_enabled = False
        eval_form.save()
        assert api_client.get('/api/360/public/forms/').json() == {'items': []}


def test_hash_ip():
    assert services.hash_ip('') == ''
    assert len(services.hash_ip('127.0.0.1')) == 64
