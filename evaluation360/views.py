# evaluation360/views.py
import logging

from django.db.models import Q
from django.utils import timezone
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from curriculum.models import Student
from monitoring.exceptions import ServiceError
from user_management.constants import STAFF_ROLES
from user_management.permissions import IsQA
from user_management.utils import get_client_ip

from . import services
from .models import Eval360Form, EvaluationCampaign, EvaluationRequest
from .serializers import (
    CampaignCreateSerializer,
    CampaignSerializer,
    Eval360FormSerializer,
    PublicFormDetailSerializer,
)

logger = logging.getLogger(__name__)


def serialize_task(task):
    campaign = task.campaign
    evaluatee = task.evaluatee
    student = getattr(evaluatee, 'student_profile', None)
    return {
        'id': task.pk,
        'status': task.status,
        'group_code': task.group_code,
        'created_at': task.created_at,
        'form_id': task.form_id,
        'rubric_id': campaign.rubric_id,
        'campaign': {
            'id': campaign.pk,
            'name': campaign.name,
            'course_code': campaign.course_code or None,
            'framework_id': campaign.framework_id,
            'start_at': campaign.start_at,
            'end_at': campaign.end_at,
        },
        'evaluatee': {
            'user_id': str(evaluatee.pk),
            'mssv': student.mssv if student else None,
            'full_name': student.full_name if student else evaluatee.name,
        },
    }


def my_requests(user):
    return (
        EvaluationRequest.objects.filter(evaluator=user)
        .select_related('campaign', 'evaluatee__student_profile')
        .order_by('-created_at')
    )


class Eval360ViewSet(viewsets.ViewSet):
    permission_classes = [permissions.IsAuthenticated]

    def require_qa(self, request):
        if not IsQA().has_permission(request, self):
            self.permission_denied(request, message='Only QA can manage 360 evaluations')

    @action(detail=False, methods=['get'], url_path='form')
    def open_forms(self, request):
        forms = services.forms_with_open_campaigns(
            group_code=request.query_params.get('group_code') or None,
            status=request.query_params.get('status') or Eval360Form.STATUS_ACTIVE,
        )
        return Response({'items': Eval360FormSerializer(forms, many=True).data})

    @action(detail=False, methods=['get', 'post', 'delete'], url_path='form/manage')
    def manage_forms(self, request):
        self.require_qa(request)

        if request.method == 'GET':
            queryset = Eval360Form.objects.all()
            if request.query_params.get('status'):
                queryset = queryset.filter(status=request.query_params['status'])
            if request.query_params.get('group_code'):
                queryset = queryset.filter(group_code=request.query_params['group_code'])
            return Response({'items': Eval360FormSerializer(queryset, many=True).data})

        if request.method == 'POST':
            form_id = request.data.get('id')
            instance = services.get_form(form_id) if form_id else None
            serializer = Eval360FormSerializer(instance, data=request.data)
            serializer.is_valid(raise_exception=True)
            form = serializer.save()
            logger.info(f"360 form {form.pk} saved by {request.user.email}")
            return Response({'ok': True, 'item': Eval360FormSerializer(form).data})

        form = services.get_form(request.query_params.get('id'))
        form.delete()
        logger.info(f"360 form {request.query_params.get('id')} deleted by {request.user.email}")
        return Response({'ok': True})

    @action(detail=False, methods=['get', 'post', 'patch'], url_path='campaigns')
    def campaigns(self, request):
        if request.method == 'GET':
            form_id = request.query_params.get('form_id')
            form = Eval360Form.objects.filter(pk=form_id).first() if str(form_id or '').isdigit() else None
            if form is None:
                return Response({'items': []})
            campaigns = EvaluationCampaign.objects.filter(rubric_id=form.rubric_id).order_by('-start_at')
            return Response({'items': CampaignSerializer(campaigns, many=True).data})

        self.require_qa(request)

        if request.method == 'POST':
            serializer = CampaignCreateSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            campaign = serializer.save(created_by=request.user)
            logger.info(f"Campaign {campaign.pk} created by {request.user.email}")
            return Response({'ok': True, 'item': CampaignSerializer(campaign).data}, status=status.HTTP_201_CREATED)

        campaign_id = request.query_params.get('id')
        if not campaign_id:
            raise ServiceError('id is required')
        if request.data.get('action') != 'close_now':
            raise ServiceError('Unsupported action')
        campaign = EvaluationCampaign.objects.filter(pk=campaign_id).first() if campaign_id.isdigit() else None
        if campaign is None:
            raise ServiceError('Campaign not found', 404)
        campaign.end_at = timezone.now()
        campaign.save(update_fields=['end_at', 'updated_at'])
        return Response({'ok': True})

    @action(detail=False, methods=['post'], url_path='start')
    def start(self, request):
        evaluation_request = services.start_request(
            request.data.get('form_id'),
            request.data.get('evaluatee_user_id'),
            request.data.get('evaluator_user_id'),
        )
        return Response({'request_id': evaluation_request.pk, 'campaign_id': evaluation_request.campaign_id})

    @action(detail=False, methods=['post'], url_path='requests/bulk')
    def bulk(self, request):
        self.require_qa(request)
        if not isinstance(request.data, dict):
            raise ServiceError('Request body must be an object')
        rows = next(
            (request.data.get(key) for key in ('rows', 'items', 'requests') if isinstance(request.data.get(key), list)),
            [],
        )
        created = services.bulk_create_requests(rows)
        tasks = (
            EvaluationRequest.objects.filter(pk__in=[r.pk for r in created])
            .select_related('campaign', 'evaluatee__student_profile')
            .order_by('id')
        )
        return Response({'items': [serialize_task(r) for r in tasks]})

    @action(detail=False, methods=['get'], url_path='my-tasks')
    def my_tasks(self, request):
        queryset = my_requests(request.user)
        status_filter = request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        items = [serialize_task(r) for r in queryset]

        q = request.query_params.get('q', '').strip().lower()
        if q:
            items = [
                item for item in items
                if q in (item['evaluatee']['mssv'] or '').lower()
                or q in (item['evaluatee']['full_name'] or '').lower()
                or q in (item['campaign']['name'] or '').lower()
                or q in (item['campaign']['course_code'] or '').lower()
            ]
        return Response({'items': items})

    @action(detail=False, methods=['post'], url_path='submit')
    def submit(self, request):
        observation = services.submit_request(
            request.user,
            request.data.get('request_id'),
            request.data.get('rubric_id'),
            request.data.get('items'),
            request.data.get('overall_comment'),
        )
        return Response({'ok': True, 'observation_id': observation.pk})

    @action(detail=False, methods=['get'], url_path='results')
    def results(self, request):
        mssv = request.query_params.get('mssv', '').strip()
        if not mssv:
            return Response({'items': []})

        student, items = services.results_for_mssv(mssv)
        if student is None:
            return Response({'items': []})
        own = student.user_id is not None and student.user_id == request.user.pk
        if not own and not (request.user.is_admin or request.user.has_any_role(STAFF_ROLES)):
            raise ServiceError('Forbidden', 403)
        return Response({'student': {'mssv': student.mssv, 'full_name': student.full_name}, 'items': items})

    @action(detail=False, methods=['get'], url_path='students')
    def students(self, request):
        queryset = Student.objects.all()
        q = request.query_params.get('q', '').strip()
        if q:
            queryset = queryset.filter(Q(mssv__icontains=q) | Q(full_name__icontains=q))
        else:
            queryset = queryset.order_by('full_name')
        items = [
            {
                'student_id': s.pk,
                'user_id': str(s.user_id) if s.user_id else None,
                'label': f"{s.mssv} • {s.full_name}".strip(),
                'mssv': s.mssv,
                'full_name': s.full_name,
            }
            for s in queryset[:50]
        ]
        return Response({'items': items})


class MyTasksView(APIView):
    """Pending requests of the caller in campaigns that are open now."""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        now = timezone.now()
        queryset = my_requests(request.user).filter(
            status=EvaluationRequest.STATUS_PENDING,
            campaign__start_at__lte=now,
            campaign__end_at__gt=now,
        )
        return Response({'items': [serialize_task(r) for r in queryset]})


class PublicEval360ViewSet(viewsets.ViewSet):
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    @action(detail=False, methods=['get'], url_path='forms')
    def forms(self, request):
        forms = Eval360Form.objects.filter(status=Eval360Form.STATUS_ACTIVE, public_enabled=True)
        items = [
            {'title': f.title, 'group_code': f.group_code, 'slug': f.public_slug, 'updated_at': f.updated_at}
            for f in forms
        ]
        return Response({'items': items})

    @action(detail=False, methods=['get'], url_path=r'form/(?P<slug>[-\w]+)')
    def form(self, request, slug=None):
        form = services.get_public_form(slug)
        return Response(PublicFormDetailSerializer(form).data)

    @action(detail=False, methods=['post'], url_path='submit')
    def submit(self, request):
        observation = services.submit_public(
            request.data,
            ip=get_client_ip(request) or '',
            user_agent=request.META.get('HTTP_USER_AGENT', ''),
        )
        return Response({'ok': True, 'observation_id': observation.pk, 'observed_at': observation.observed_at})
