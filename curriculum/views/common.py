# curriculum/views/common.py
from django.db.models import Q
from rest_framework import permissions, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from monitoring.exceptions import ServiceError
from user_management.constants import RoleCode
from user_management.permissions import IsStaff, has_any_role
from user_management.utils import clamp_int

from ..lookups import get_framework
from ..models import Course, Framework, Student
from ..services import attainment


class CommonViewSet(viewsets.ViewSet):
    """Lookups shared by the staff portals."""
    permission_classes = [IsStaff]

    @action(detail=False, methods=['get'], url_path='courses')
    def courses(self, request):
        framework = get_framework(request.query_params.get('framework_id'))
        courses = Course.objects.filter(framework=framework)
        items = [{'code': c.course_code, 'name': c.course_name, 'credits': c.credits} for c in courses]
        return Response({'items': items})

    @action(detail=False, methods=['get'], url_path='frameworks')
    def frameworks(self, request):
        items = [
            {
                'id': f.pk,
                'cohort': f.cohort,
                'major': f.major,
                'academic_year': f.academic_year,
                'label': f.short_label,
            }
            for f in Framework.objects.all()
        ]
        return Response({'items': items})

    @action(detail=False, methods=['get'], url_path='students')
    def students(self, request):
        queryset = Student.objects.all()
        framework_id = request.query_params.get('framework_id')
        if framework_id:
            queryset = queryset.filter(framework=get_framework(framework_id))
        q = request.query_params.get('q', '').strip()
        if q:
            queryset = queryset.filter(Q(mssv__icontains=q) | Q(full_name__icontains=q))
        limit = clamp_int(request.query_params.get('limit'), 200, minimum=10, maximum=1000)

        items = [
            {
                'id': s.pk,
                'user_id': str(s.user_id) if s.user_id else None,
                'mssv': s.mssv,
                'full_name': s.full_name,
                'framework_id': s.framework_id,
            }
            for s in queryset[:limit]
        ]
        return Response({'items': items})


class CourseListView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        framework_id = request.query_params.get('framework_id')
        if not str(framework_id or '').isdigit() or not Framework.objects.filter(pk=framework_id).exists():
            return Response({'items': []})
        courses = Course.objects.filter(framework_id=framework_id)
        return Response({'items': [{'code': c.course_code, 'name': c.course_name} for c in courses]})


class ClassHeatmapView(APIView):
    permission_classes = [IsStaff]

    def get(self, request):
        course_code = request.query_params.get('course_code')
        if not course_code:
            raise ServiceError('course_code is required')
        framework = get_framework(request.query_params.get('framework_id'), required=False)
        items = attainment.class_heatmap(course_code, framework)
        return Response({'ok': True, 'course_code': course_code, 'items': items})


class AttainmentView(APIView):
    permission_classes = [has_any_role(RoleCode.QA, RoleCode.DEPT_LEAD, RoleCode.EDU_MANAGER)]

    def get(self, request):
        framework = get_framework(request.query_params.get('framework_id'))
        return Response({'framework_id': framework.pk, **attainment.framework_attainment(framework)})
