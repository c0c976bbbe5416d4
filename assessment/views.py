# assessment/views.py
import logging

from django.db.models import ProtectedError, Q
from django.utils.dateparse import parse_date
from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from curriculum.lookups import get_framework
from curriculum.models import Course, Student
from curriculum.services import attainment
from monitoring.exceptions import ServiceError
from user_management.constants import STAFF_ROLES, RoleCode
from user_management.models import CustomUser
from user_management.permissions import has_any_role
from user_management.utils import clamp_int, split_csv_param

from .models import Feedback, Observation, Rubric, TeacherInboxItem
from .serializers import (
    FeedbackSerializer,
    InboxUpdateSerializer,
    NormalizedRubricSerializer,
    RubricSerializer,
    RubricWriteSerializer,
    TeacherInboxItemSerializer,
)
from .services import feedback as feedback_service, moderation
from .services.observations import get_rubric, save_observation, student_by_user_id
from .tasks import recompute_framework_rollup

logger = logging.getLogger(__name__)

IsDepartmentStaff = has_any_role(RoleCode.DEPT_SECRETARY, RoleCode.DEPT_LEAD)
IsLecturer = has_any_role(RoleCode.LECTURER)


def filter_created_between(queryset, params):
    """Apply ``from``/``to`` (YYYY-MM-DD, inclusive) to ``created_at``."""
    for param, lookup in (('from', 'created_at__date__gte'), ('to', 'created_at__date__lte')):
        raw = (params.get(param) or '').strip()
        if not raw:
            continue
        value = parse_date(raw[:10])
        if value is None:
            raise ServiceError(f"Invalid '{param}' date: {raw}")
        queryset = queryset.filter(**{lookup: value})
    return queryset


def filter_rubrics(params):
    queryset = Rubric.objects.all()
    framework_id = params.get('framework_id')
    if framework_id:
        queryset = queryset.filter(framework=get_framework(framework_id))
    course_code = params.get('course_code')
    if course_code:
        queryset = queryset.filter(course_code=course_code)
    return queryset


class DepartmentAssessmentViewSet(viewsets.ViewSet):
    permission_classes = [IsDepartmentStaff]

    @action(detail=False, methods=['get', 'post', 'put', 'delete'], url_path='rubrics')
    def rubrics(self, request):
        if request.method == 'GET':
            return Response({'data': RubricSerializer(filter_rubrics(request.query_params), many=True).data})

        if request.method == 'POST':
            serializer = RubricWriteSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            rubric = serializer.save(created_by=request.user)
            logger.info(f"Rubric {rubric.pk} created for {rubric.course_code} by {request.user.email}")
            return Response({'ok': True, 'id': rubric.pk}, status=status.HTTP_201_CREATED)

        rubric_id = request.data.get('id') if request.method == 'PUT' else request.query_params.get('id')
        if not rubric_id:
            raise ServiceError('id is required')
        rubric = get_rubric(rubric_id)

        if request.method == 'PUT':
            serializer = RubricWriteSerializer(rubric, data=request.data, partial=True)
            serializer.is_valid(raise_exception=True)
            serializer.save()
            if {'columns', 'rows', 'threshold'} & set(request.data):
                recompute_framework_rollup.delay(rubric.framework_id, rubric.pk)
            return Response({'ok': True})

        try:
            rubric.delete()
        except ProtectedError:
            raise ServiceError('Rubric is used by observations and cannot be deleted', 409)
        logger.info(f"Rubric {rubric_id} deleted by {request.user.email}")
        return Response({'ok': True})

    @action(detail=False, methods=['get'], url_path=r'rubrics/(?P<rubric_id>\d+)')
    def rubric_detail(self, request, rubric_id=None):
        return Response({'data': RubricSerializer(get_rubric(rubric_id)).data})

    @action(detail=False, methods=['get'], url_path='inbox')
    def inbox(self, request):
        codes = split_csv_param(request.query_params.get('course_code'))
        if not codes:
            raise ServiceError('course_code is required')

        queryset = Feedback.objects.filter(kind='course', target__in=codes).select_related('sender')
        queryset = filter_created_between(queryset, request.query_params)
        data = [
            {
                'id': fb.pk,
                'created_at': fb.created_at,
                'sender': fb.sender.name if fb.sender else None,
                'target': fb.target,
                'text': fb.text,
            }
            for fb in queryset
        ]
        return Response({'data': data})


class RubricLookupViewSet(viewsets.ViewSet):
    permission_classes = [permissions.IsAuthenticated]

    @action(detail=False, methods=['get'], url_path='list')
    def rubric_list(self, request):
        return Response({'items': RubricSerializer(filter_rubrics(request.query_params), many=True).data})

    @action(detail=False, methods=['get'], url_path='get')
    def rubric_get(self, request):
        return Response({'item': RubricSerializer(get_rubric(request.query_params.get('id'))).data})


class TeacherViewSet(viewsets.ViewSet):
    permission_classes = [IsLecturer]

    @action(detail=False, methods=['get'], url_path='rubrics')
    def rubrics(self, request):
        queryset = filter_rubrics(request.query_params)
        return Response({'items': NormalizedRubricSerializer(queryset, many=True).data})

    @action(detail=False, methods=['get'], url_path=r'rubrics/(?P<rubric_id>\d+)')
    def rubric_detail(self, request, rubric_id=None):
        return Response({'item': NormalizedRubricSerializer(get_rubric(rubric_id)).data})

    @action(detail=False, methods=['get', 'post'], url_path='observations')
    def observations(self, request):
        if request.method == 'POST':
            observation = save_observation(request.user, request.data)
            return Response({'observation': {
                'id': observation.pk,
                'status': observation.status,
                'total_score': observation.total_score,
                'submitted_at': observation.submitted_at,
            }})

        queryset = Observation.objects.filter(teacher=request.user).select_related('student', 'rubric')
        framework_id = request.query_params.get('framework_id')
        if framework_id:
            queryset = queryset.filter(framework_id=get_framework(framework_id).pk)
        course_code = request.query_params.get('course_code')
        if course_code:
            queryset = queryset.filter(course_code=course_code)
        mssv = request.query_params.get('mssv', '').strip()
        if mssv:
            queryset = queryset.filter(student__mssv__icontains=mssv)
        q = request.query_params.get('q', '').strip()
        if q:
            queryset = queryset.filter(Q(student__mssv__icontains=q) | Q(student__full_name__icontains=q))

        items = [
            {
                'id': o.pk,
                'created_at': o.created_at,
                'submitted_at': o.submitted_at,
                'status': o.status,
                'total_score': o.total_score,
                'course_code': o.course_code or None,
                'framework_id': o.framework_id,
                'student_user_id': str(o.student.user_id) if o.student.user_id else None,
                'student_mssv': o.student.mssv,
                'student_full_name': o.student.full_name,
                'rubric_id': o.rubric_id,
                'rubric_title': o.rubric.title,
            }
            for o in queryset.order_by('-created_at')
        ]
        return Response({'items': items})

    @action(detail=False, methods=['get'], url_path='pending-clos')
    def pending_clos(self, request):
        framework = get_framework(request.query_params.get('framework_id'))
        q = request.query_params.get('q', '').strip()
        course_code = request.query_params.get('course_code', '').strip() or None
        limit = clamp_int(request.query_params.get('limit'), 50, minimum=1, maximum=200)
        offset = clamp_int(request.query_params.get('offset'), 0, minimum=0)

        students = Student.objects.filter(framework=framework)
        if q:
            students = students.filter(Q(mssv__icontains=q) | Q(full_name__icontains=q))

        pending = attainment.pending_clos(framework, students, course_code)
        texts = attainment.clo_texts(framework)
        course_names = dict(Course.objects.filter(framework=framework).values_list('course_code', 'course_name'))

        items = [
            {
                'mssv': student.mssv,
                'full_name': student.full_name,
                'course_code': result.course_code,
                'course_name': course_names.get(result.course_code, ''),
                'clo_code': result.clo_code,
                'clo_text': texts.get((result.course_code, result.clo_code), ''),
                'updated_at': result.updated_at,
            }
            for student, result in pending[offset:offset + limit]
        ]
        return Response({
            'items': items,
            'total': len(pending),
            'matched_students': len({student.pk for student, _ in pending}),
            'limit': limit,
            'offset': offset,
        })

    @action(detail=False, methods=['get'], url_path='student-pending-clos')
    def student_pending_clos(self, request):
        student_user_id = request.query_params.get('student_user_id', '').strip()
        if not student_user_id:
            raise ServiceError('student_user_id is required')
        student = student_by_user_id(student_user_id)
        framework = get_framework(request.query_params.get('framework_id'), required=False) or student.framework
        course_code = request.query_params.get('course_code', '').strip() or None

        texts = attainment.clo_texts(framework)
        items = [
            {
                'course_code': result.course_code,
                'clo_code': result.clo_code,
                'clo_text': texts.get((result.course_code, result.clo_code), ''),
                'status': result.status,
                'updated_at': result.updated_at,
            }
            for _, result in attainment.pending_clos(framework, [student], course_code)
        ]
        return Response({'items': items})

    @action(detail=False, methods=['get'], url_path='students')
    def students(self, request):
        framework = get_framework(request.query_params.get('framework_id'))
        queryset = Student.objects.filter(framework=framework, user__isnull=False)
        q = request.query_params.get('q', '').strip()
        if q:
            queryset = queryset.filter(
                Q(mssv__icontains=q) | Q(student_code__icontains=q) | Q(full_name__icontains=q)
            )
        items = [
            {
                'id': s.pk,
                'student_code': s.student_code,
                'user_id': str(s.user_id),
                'mssv': s.mssv,
                'full_name': s.full_name,
                'label': f"{s.mssv or s.student_code} - {s.full_name}",
            }
            for s in queryset.order_by('mssv')[:30]
        ]
        return Response({'items': items})

    @action(detail=False, methods=['get'], url_path='student-lookup')
    def student_lookup(self, request):
        mssv = request.query_params.get('mssv', '').strip()
        if not mssv:
            raise ServiceError('mssv is required')
        student = Student.objects.filter(mssv__icontains=mssv).order_by('mssv').first()
        if student is None:
            raise ServiceError('Student not found', 404)
        return Response({'student': {
            'mssv': student.mssv,
            'user_id': str(student.user_id) if student.user_id else None,
            'full_name': student.full_name,
            'framework_id': student.framework_id,
        }})

    @action(detail=False, methods=['post'], url_path='feedback')
    def feedback(self, request):
        student_user_id = str(request.data.get('student_user_id') or '').strip()
        message = str(request.data.get('message') or '').strip()
        if not student_user_id or not message:
            raise ServiceError('student_user_id and message are required')

        student = student_by_user_id(student_user_id)
        item = feedback_service.submit_teacher_feedback(
            request.user,
            student.user,
            message,
            course_code=request.data.get('course_code'),
            clo_ids=request.data.get('clo_ids'),
        )
        return Response({'item': FeedbackSerializer(item).data}, status=status.HTTP_201_CREATED)

    @action(detail=False, methods=['post'], url_path='feedback/moderate')
    def feedback_moderate(self, request):
        ok, reason = moderation.moderate_teacher_message(request.data.get('message'))
        return Response({'ok': ok, 'reason': reason})

    @action(detail=False, methods=['get'], url_path='inbox')
    def inbox(self, request):
        queryset = TeacherInboxItem.objects.filter(teacher=request.user)
        status_filter = request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        q = request.query_params.get('q', '').strip()
        if q:
            queryset = queryset.filter(message__icontains=q)
        queryset = filter_created_between(queryset, request.query_params)
        limit = clamp_int(request.query_params.get('limit'), 50, minimum=1, maximum=200)
        return Response({'items': TeacherInboxItemSerializer(queryset[:limit], many=True).data})

    @action(detail=False, methods=['patch'], url_path=r'inbox/(?P<item_id>\d+)')
    def inbox_item(self, request, item_id=None):
        item = TeacherInboxItem.objects.filter(pk=item_id, teacher=request.user).first()
        if item is None:
            raise ServiceError('Inbox item not found', 404)

        serializer = InboxUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        for field, value in serializer.validated_data.items():
            setattr(item, field, value)
        item.save()
        return Response({'item': TeacherInboxItemSerializer(item).data})


class StudentFeedbackViewSet(viewsets.ViewSet):
    permission_classes = [permissions.IsAuthenticated]

    @action(detail=False, methods=['post'], url_path='feedback')
    def feedback(self, request):
        feedback_service.submit_student_feedback(
            request.user,
            request.data.get('kind'),
            request.data.get('target'),
            request.data.get('text'),
        )
        return Response({'ok': True})

    @action(detail=False, methods=['post'], url_path='feedback/moderate')
    def feedback_moderate(self, request):
        ok, reason = moderation.moderate_student_feedback(
            request.data.get('text'),
            request.data.get('kind'),
            request.data.get('target'),
        )
        return Response({'ok': ok, 'reason': reason})

    @action(detail=False, methods=['get'], url_path='teachers')
    def teachers(self, request):
        names = (
            CustomUser.objects.filter(is_active=True, role_assignments__role__code__in=STAFF_ROLES)
            .exclude(full_name='')
            .values_list('full_name', flat=True)
            .distinct()
        )
        return Response({'items': sorted({name.strip() for name in names if name.strip()})})
