# curriculum/views/department.py
import csv
import logging
import re

from django.http import HttpResponse
from django.utils import timezone
from rest_framework import viewsets
from rest_framework.decorators import action
from rest_framework.parsers import FormParser, JSONParser, MultiPartParser
from rest_framework.response import Response

from monitoring.exceptions import ServiceError
from user_management.constants import RoleCode
from user_management.permissions import has_any_role
from user_management.utils import split_csv_param

from ..lookups import get_framework
from ..models import CLO, Course, PiCloLink, PloCloLink, StudentCloResult
from ..serializers import StudentCloResultSerializer
from ..services import attainment, importers
from ..utils.excel_export import XLSX_CONTENT_TYPE, ExcelExporter

logger = logging.getLogger(__name__)

IsDepartmentStaff = has_any_role(RoleCode.DEPT_SECRETARY, RoleCode.DEPT_LEAD)

EXPORT_HEADERS = ['MSSV', 'Họ tên', 'Mã học phần', 'Tên học phần', 'Mã CLO', 'Kết quả', 'Cập nhật']


def framework_course_codes(framework):
    """Course codes of a framework, falling back to codes seen in CLO links."""
    codes = list(Course.objects.filter(framework=framework).values_list('course_code', flat=True))
    if codes:
        return sorted(set(codes))
    linked = set(PiCloLink.objects.filter(framework=framework).values_list('course_code', flat=True))
    linked |= set(PloCloLink.objects.filter(framework=framework).values_list('course_code', flat=True))
    return sorted(linked)


class DepartmentResultsViewSet(viewsets.ViewSet):
    permission_classes = [IsDepartmentStaff]
    parser_classes = [JSONParser, FormParser, MultiPartParser]

    @action(detail=False, methods=['post'], url_path='results/upload')
    def results_upload(self, request):
        framework_id = request.data.get('framework_id')
        upload = request.FILES.get('file')
        if not framework_id:
            raise ServiceError('framework_id is required')
        if upload is None:
            raise ServiceError('file is required')

        framework = get_framework(framework_id)
        inserted = importers.import_results_csv(framework, upload)
        return Response({'ok': True, 'inserted': inserted})

    @action(detail=False, methods=['get'], url_path='results/list')
    def results_list(self, request):
        queryset = StudentCloResult.objects.select_related('student')
        framework_id = request.query_params.get('framework_id')
        if framework_id:
            queryset = queryset.filter(framework=get_framework(framework_id))
        course_code = request.query_params.get('course_code')
        if course_code:
            queryset = queryset.filter(course_code=course_code)
        mssv = request.query_params.get('mssv')
        if mssv:
            queryset = queryset.filter(mssv__icontains=mssv.strip())

        queryset = queryset.order_by('-effective_at', '-id')
        data = StudentCloResultSerializer(queryset, many=True).data
        return Response({'data': data, 'count': len(data)})

    @action(detail=False, methods=['patch', 'delete'], url_path='results/item')
    def results_item(self, request):
        result_id = request.data.get('id') or request.query_params.get('id')
        if not result_id:
            raise ServiceError('id is required')
        result = StudentCloResult.objects.filter(pk=result_id).first() if str(result_id).isdigit() else None
        if result is None:
            raise ServiceError('Result not found', 404)

        if request.method == 'DELETE':
            result.delete()
            return Response({'ok': True})

        value = request.data.get('result', request.data.get('status'))
        if value is None:
            raise ServiceError('result is required')
        result.status = importers.normalize_status(value)
        result.effective_at = timezone.now()
        result.save(update_fields=['status', 'effective_at', 'updated_at'])
        return Response({'ok': True, 'item': StudentCloResultSerializer(result).data})

    @action(detail=False, methods=['get'], url_path='metrics')
    def metrics(self, request):
        framework = get_framework(request.query_params.get('framework_id'))
        data = attainment.department_metrics(framework, request.query_params.get('course_code') or None)
        return Response({'data': data})

    @action(detail=False, methods=['post'], url_path='metrics/heatmap')
    def metrics_heatmap(self, request):
        framework = get_framework(request.data.get('framework_id'))
        course_codes = split_csv_param(request.data.get('course_codes'))
        columns = request.data.get('columns') or []
        if not isinstance(columns, list):
            raise ServiceError('columns must be an array')
        data = attainment.results_heatmap(framework, course_codes, columns)
        return Response({'data': data})

    @action(detail=False, methods=['post'], url_path='metrics/export')
    def metrics_export(self, request):
        framework = get_framework(request.data.get('framework_id'))
        course_code = request.data.get('course_code') or None

        queryset = StudentCloResult.objects.filter(framework=framework).select_related('student')
        if course_code:
            queryset = queryset.filter(course_code=course_code)
        queryset = queryset.order_by('mssv', 'course_code', 'clo_code')
        course_names = dict(Course.objects.filter(framework=framework).values_list('course_code', 'course_name'))

        rows = [
            [
                r.mssv,
                r.student.full_name if r.student else '',
                r.course_code,
                course_names.get(r.course_code, ''),
                r.clo_code,
                r.status,
                r.updated_at.strftime('%Y-%m-%d %H:%M:%S'),
            ]
            for r in queryset
        ]
        basename = f"results_{course_code or 'all'}"

        if request.query_params.get('format') == 'xlsx':
            exporter = ExcelExporter()
            exporter.add_sheet('Results', EXPORT_HEADERS, rows, status_column=5)
            response = HttpResponse(exporter.to_bytes(), content_type=XLSX_CONTENT_TYPE)
            response['Content-Disposition'] = f'attachment; filename="{basename}.xlsx"'
            return response

        response = HttpResponse(content_type='text/csv; charset=utf-8')
        response['Content-Disposition'] = f'attachment; filename="{basename}.csv"'
        writer = csv.writer(response)
        writer.writerow(EXPORT_HEADERS)
        writer.writerows(rows)
        logger.info(f"Exported {len(rows)} results for framework {framework.pk}")
        return response

    @action(detail=False, methods=['get'], url_path='courses')
    def courses(self, request):
        framework = get_framework(request.query_params.get('framework_id'))
        names = dict(Course.objects.filter(framework=framework).values_list('course_code', 'course_name'))
        data = [{'code': code, 'name': names.get(code, '')} for code in framework_course_codes(framework)]
        return Response({'data': data})

    @action(detail=False, methods=['get'], url_path=r'courses/(?P<course_code>[^/]+)/detail')
    def course_detail(self, request, course_code=None):
        framework = get_framework(request.query_params.get('framework_id'))
        course = Course.objects.filter(framework=framework, course_code=course_code).first()

        pis_by_clo = {}
        for link in PiCloLink.objects.filter(framework=framework, course_code=course_code):
            pis_by_clo.setdefault(link.clo_code, []).append({'pi_code': link.pi_code, 'level': str(link.level)})
        plos_by_clo = {}
        for link in PloCloLink.objects.filter(framework=framework, course_code=course_code):
            plos_by_clo.setdefault(link.clo_code, []).append({'plo_code': link.plo_code, 'level': str(link.level)})

        texts = dict(CLO.objects.filter(framework=framework, course_code=course_code).values_list('clo_code', 'clo_text'))
        clo_codes = sorted(set(texts) | set(pis_by_clo) | set(plos_by_clo), key=natural_key)

        clos = [
            {
                'clo_code': code,
                'title': texts.get(code, ''),
                'pis': pis_by_clo.get(code, []),
                'plos': plos_by_clo.get(code, []),
            }
            for code in clo_codes
        ]
        return Response({
            'course': {'code': course_code, 'name': course.course_name if course else ''},
            'clos': clos,
        })


def natural_key(code):
    return [int(part) if part.isdigit() else part.lower() for part in re.split(r'(\d+)', code)]
