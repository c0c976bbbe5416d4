# curriculum/views/academic.py
import logging

from django.db import transaction
from django.db.models import Q
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.response import Response
from rest_framework.views import APIView

from monitoring.exceptions import ServiceError
from user_management.constants import RoleCode
from user_management.models import Department
from user_management.permissions import has_any_role
from user_management.utils import clamp_int, parse_flag

from ..lookups import get_framework, get_student
from ..models import Course, Framework, Student
from ..serializers import (
    LIST_KINDS,
    CourseSerializer,
    FrameworkSerializer,
    StudentCreateSerializer,
    StudentSerializer,
)
from ..services import importers, students as student_service
from ..services.graph import build_graph

logger = logging.getLogger(__name__)

IsAcademicAffairs = has_any_role(RoleCode.EDU_MANAGER, RoleCode.DEPT_LEAD)

COURSE_PAGE_SIZE = 20


class AcademicAffairsViewSet(viewsets.ViewSet):
    permission_classes = [IsAcademicAffairs]
    parser_classes = [JSONParser, FormParser, MultiPartParser]

    @action(detail=False, methods=['get', 'post', 'delete'], url_path='framework')
    def framework(self, request):
        if request.method == 'GET':
            frameworks = Framework.objects.all()
            return Response({'items': FrameworkSerializer(frameworks, many=True).data})

        if request.method == 'POST':
            serializer = FrameworkSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            framework = serializer.save(created_by=request.user)
            logger.info(f"Framework {framework.pk} created by {request.user.email}")
            return Response({'ok': True, 'item': FrameworkSerializer(framework).data}, status=status.HTTP_201_CREATED)

        framework = get_framework(request.query_params.get('id') or request.data.get('id'))
        logger.info(f"Framework {framework.pk} deleted by {request.user.email}")
        framework.delete()
        return Response({'ok': True})

    @action(detail=False, methods=['get'], url_path='frameworks')
    def frameworks(self, request):
        items = [{'id': f.pk, 'label': f.label} for f in Framework.objects.all()]
        return Response({'items': items})

    @action(detail=False, methods=['post'], url_path='upload')
    def upload(self, request):
        framework_id = request.data.get('framework_id')
        kind = request.data.get('kind')
        upload = request.FILES.get('file')
        if not framework_id:
            raise ServiceError('framework_id is required')
        if not kind:
            raise ServiceError('kind is required')
        if upload is None:
            raise ServiceError('file is required')
        if kind not in importers.UPLOAD_KINDS:
            raise ServiceError(f"Invalid kind '{kind}'")

        framework = get_framework(framework_id)
        count = importers.import_framework_csv(framework, kind, upload)
        return Response({'ok': True, 'kind': kind, 'count': count})

    @action(detail=False, methods=['get'], url_path='list')
    def list_kind(self, request):
        framework = get_framework(request.query_params.get('framework_id'))
        kind = request.query_params.get('kind')
        if kind not in LIST_KINDS:
            raise ServiceError(f"Invalid kind '{kind}'")

        model, serializer_class = LIST_KINDS[kind]
        queryset = model.objects.filter(framework=framework)
        data = serializer_class(queryset, many=True).data
        return Response({'data': data, 'count': len(data)})

    @action(detail=False, methods=['get'], url_path='courses/list')
    def courses_list(self, request):
        queryset = Course.objects.select_related('department')
        framework_id = request.query_params.get('framework_id')
        if framework_id:
            queryset = queryset.filter(framework=get_framework(framework_id))
        q = request.query_params.get('q', '').strip()
        if q:
            queryset = queryset.filter(Q(course_code__icontains=q) | Q(course_name__icontains=q))

        page = clamp_int(request.query_params.get('page'), 1, minimum=1)
        total = queryset.count()
        offset = (page - 1) * COURSE_PAGE_SIZE
        items = CourseSerializer(queryset[offset:offset + COURSE_PAGE_SIZE], many=True).data
        return Response({'items': items, 'total': total, 'page': page, 'page_size': COURSE_PAGE_SIZE})

    @action(detail=False, methods=['post'], url_path='courses/assign')
    def courses_assign(self, request):
        items = request.data.get('items') or []
        if not isinstance(items, list) or not items:
            raise ServiceError('items must be a non-empty array')

        updated = 0
        with transaction.atomic():
            for item in items:
                department_id = item.get('department_id') or None
                if department_id and not Department.objects.filter(pk=department_id).exists():
                    raise ServiceError(f"Department {department_id} not found", 404)
                updated += Course.objects.filter(
                    framework_id=item.get('framework_id'),
                    course_code=item.get('course_code'),
                ).update(department_id=department_id)
        return Response({'ok': True, 'updated': updated})

    @action(detail=False, methods=['get'], url_path='departments/list')
    def departments_list(self, request):
        departments = Department.objects.filter(is_active=True).order_by('name')
        items = [{'id': str(d.pk), 'code': d.code, 'name': d.name} for d in departments]
        return Response({'items': items})

    @action(detail=False, methods=['get'], url_path='graph')
    def graph(self, request):
        framework = get_framework(request.query_params.get('framework_id'))
        label_mode = request.query_params.get('label_mode', 'full')
        if label_mode not in ('full', 'code'):
            label_mode = 'full'
        return Response(build_graph(
            framework,
            include_pi=parse_flag(request.query_params.get('include_pi')),
            include_plopi=parse_flag(request.query_params.get('include_plopi')),
            shortcuts=parse_flag(request.query_params.get('shortcuts')),
            label_mode=label_mode,
        ))


class StudentAdminView(APIView):
    """Student roster management for academic affairs."""
    permission_classes = [IsAcademicAffairs]
    parser_classes = [JSONParser, FormParser, MultiPartParser]

    def get(self, request):
        queryset = Student.objects.select_related('framework')
        framework_id = request.query_params.get('framework_id')
        if framework_id:
            queryset = queryset.filter(framework=get_framework(framework_id))
        q = request.query_params.get('q', '').strip()
        if q:
            queryset = queryset.filter(
                Q(mssv__icontains=q) | Q(full_name__icontains=q) | Q(email__icontains=q)
            )

        page = clamp_int(request.query_params.get('page'), 1, minimum=1)
        limit = clamp_int(request.query_params.get('limit'), 20, minimum=1, maximum=100)
        count = queryset.count()
        offset = (page - 1) * limit
        data = StudentSerializer(queryset[offset:offset + limit], many=True).data
        return Response({'data': data, 'count': count, 'page': page, 'limit': limit})

    def post(self, request):
        upload = request.FILES.get('file')
        if upload is not None:
            framework = get_framework(request.data.get('framework_id'))
            rows = importers.parse_students_csv(upload)
            results = student_service.import_students(framework, rows)
            logger.info(f"Imported {len([r for r in results if r['ok']])}/{len(results)} students")
            return Response({'results': results})

        serializer = StudentCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        framework = get_framework(data['framework_id'])
        student = student_service.create_student(
            framework, data['mssv'], data['full_name'], data['email'], data.get('password') or None,
        )
        return Response({'ok': True, 'student': StudentSerializer(student).data}, status=status.HTTP_201_CREATED)

    def patch(self, request):
        student = self._get_student(request)
        password = student_service.reset_student_password(student, request.data.get('new_password') or None)
        return Response({'ok': True, 'student_id': student.pk, 'password': password})

    def delete(self, request):
        student = self._get_student(request)
        student_service.delete_student(student)
        return Response({'ok': True})

    def _get_student(self, request):
        student_id = request.data.get('student_id') or request.query_params.get('student_id')
        if not student_id:
            raise ServiceError('student_id is required')
        return get_student(student_id)
