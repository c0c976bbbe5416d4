# curriculum/views/student.py
from rest_framework import permissions, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response

from monitoring.exceptions import ServiceError

from ..lookups import get_framework, student_for_request
from ..models import Course
from ..services import attainment


class StudentPortalViewSet(viewsets.ViewSet):
    permission_classes = [permissions.IsAuthenticated]

    @action(detail=False, methods=['get'], url_path='self')
    def me(self, request):
        student = student_for_request(request)
        if student is None:
            return Response({'data': None})
        return Response({'data': {
            'id': student.pk,
            'full_name': student.full_name,
            'mssv': student.mssv,
            'framework_id': student.framework_id,
        }})

    @action(detail=False, methods=['get'], url_path='courses')
    def courses(self, request):
        framework_id = request.query_params.get('framework_id')
        if framework_id:
            framework = get_framework(framework_id)
        else:
            student = student_for_request(request)
            if student is None:
                return Response({'items': []})
            framework = student.framework

        courses = Course.objects.filter(framework=framework).select_related('department')
        items = [
            {
                'code': c.course_code,
                'name': c.course_name,
                'department': c.department.name if c.department else None,
            }
            for c in courses
        ]
        return Response({'items': items})

    def _progress(self, request, kind):
        student = student_for_request(request)
        if student is None:
            raise ServiceError('Student profile not found', 404)
        return Response({'data': attainment.student_outcome_progress(student, kind)})

    @action(detail=False, methods=['get'], url_path='plo-progress')
    def plo_progress(self, request):
        return self._progress(request, 'plo')

    @action(detail=False, methods=['get'], url_path='pi-progress')
    def pi_progress(self, request):
        return self._progress(request, 'pi')
