# surveys/views.py
import logging

from django.http import HttpResponse
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from curriculum.utils.excel_export import XLSX_CONTENT_TYPE
from monitoring.exceptions import ServiceError
from user_management.constants import RoleCode
from user_management.permissions import has_any_role
from user_management.utils import parse_flag

from . import services
from .models import Survey, SurveyAssignment
from .serializers import SurveyQuestionSerializer, SurveySerializer
from .tasks import send_survey_invites

logger = logging.getLogger(__name__)

IsSurveyManager = has_any_role(RoleCode.QA, RoleCode.DEPT_LEAD)


def optional_flag(value):
    """``true``/``false`` filter; missing or ``all`` means no filter."""
    if value is None or str(value).strip().lower() in ('', 'all'):
        return None
    return parse_flag(value)


class QASurveyViewSet(viewsets.ViewSet):
    permission_classes = [IsSurveyManager]
    lookup_value_regex = r'\d+'

    def list(self, request):
        surveys = Survey.objects.all()
        return Response({'surveys': SurveySerializer(surveys, many=True).data})

    def create(self, request):
        serializer = SurveySerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        survey = serializer.save(created_by=request.user)
        logger.info(f"Survey {survey.pk} created by {request.user.email}")
        return Response({'survey': SurveySerializer(survey).data}, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        survey = services.get_survey(pk)
        return Response({
            'survey': SurveySerializer(survey).data,
            'questions': SurveyQuestionSerializer(survey.questions.all(), many=True).data,
        })

    def partial_update(self, request, pk=None):
        survey = services.get_survey(pk)
        serializer = SurveySerializer(survey, data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        serializer.save()
        return Response({'survey': serializer.data})

    def destroy(self, request, pk=None):
        survey = services.get_survey(pk)
        survey.delete()
        logger.info(f"Survey {pk} deleted by {request.user.email}")
        return Response({'ok': True})

    @action(detail=True, methods=['patch'], url_path='questions')
    def questions(self, request, pk=None):
        survey = services.get_survey(pk)
        counts = services.apply_question_changes(
            survey,
            create=request.data.get('create'),
            update=request.data.get('update'),
            remove=request.data.get('remove'),
        )
        return Response({'ok': True, **counts})

    @action(detail=True, methods=['post'], url_path='assignments')
    def assignments(self, request, pk=None):
        survey = services.get_survey(pk)
        inserted = services.assign_users(survey, request.data.get('user_ids'))
        return Response({'inserted': inserted})

    @action(detail=True, methods=['post'], url_path='send-invites')
    def send_invites(self, request, pk=None):
        survey = services.get_survey(pk)
        assignment_ids = request.data.get('assignment_ids')
        message = str(request.data.get('message') or '').strip()
        if not isinstance(assignment_ids, list) or not assignment_ids:
            raise ServiceError('assignment_ids must be a non-empty array')
        if not message:
            raise ServiceError('message is required')

        ids = list(
            SurveyAssignment.objects.filter(
                survey=survey, pk__in=[i for i in assignment_ids if str(i).isdigit()]
            ).values_list('pk', flat=True)
        )
        send_survey_invites.delay(survey.pk, ids, message)
        return Response({'sent': len(ids)})

    @action(detail=True, methods=['get'], url_path='progress')
    def progress(self, request, pk=None):
        return Response(services.progress(services.get_survey(pk)))

    @action(detail=True, methods=['get'], url_path='results')
    def results(self, request, pk=None):
        survey = services.get_survey(pk)
        return Response({'survey': SurveySerializer(survey).data, 'questions': services.results(survey)})

    @action(detail=True, methods=['get'], url_path='export')
    def export(self, request, pk=None):
        survey = services.get_survey(pk)
        response = HttpResponse(services.export_workbook(survey), content_type=XLSX_CONTENT_TYPE)
        response['Content-Disposition'] = f'attachment; filename="survey_{survey.pk}.xlsx"'
        response['Cache-Control'] = 'no-store'
        return response


class ParticipantListView(APIView):
    permission_classes = [IsSurveyManager]

    def get(self, request):
        items = services.participants(
            role=request.query_params.get('role') or None,
            department_id=request.query_params.get('department_id') or None,
            framework_id=request.query_params.get('framework_id') or None,
        )
        return Response({'participants': items})


class MySurveysView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        items = services.my_surveys(
            request.user,
            active=optional_flag(request.query_params.get('active')),
            submitted=optional_flag(request.query_params.get('submitted')),
        )
        return Response({'items': items})


class SurveyRespondView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, survey_id):
        survey = services.get_survey(survey_id)
        response = services.respond(
            survey,
            request.user,
            request.data.get('answers'),
            submit=bool(request.data.get('submit')),
            token=request.data.get('token'),
        )
        return Response({
            'ok': True,
            'response_id': response.pk,
            'is_submitted': response.is_submitted,
            'submitted_at': response.submitted_at,
        })
