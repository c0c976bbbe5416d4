# user_management/views.py
import csv
import logging
from datetime import timedelta

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db.models import Count, Q
from django.http import HttpResponse
from django.utils import timezone
from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import filters, permissions, status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import APIView

from monitoring.exceptions import ServiceError

from . import services
from .constants import RoleCode
from .models import AuditLog, CustomUser, Department, Role, StaffDepartment, UserRole
from .permissions import HasPermission, IsAdmin
from .serializers import (
    AuditLogSerializer,
    BulkUserRowSerializer,
    DepartmentSerializer,
    RoleSerializer,
    StaffSerializer,
    UserSerializer,
    UserUpdateSerializer,
)
from .utils import StandardResultsSetPagination, clamp_int, split_csv_param

logger = logging.getLogger(__name__)

ROLE_PRIORITY = [code for code, _ in RoleCode.choices]


def primary_role(codes):
    for code in ROLE_PRIORITY:
        if code in codes:
            return code
    return None


def get_user_or_404(user_id):
    if not user_id:
        raise ServiceError('user_id is required')
    try:
        return CustomUser.objects.get(pk=user_id)
    except (CustomUser.DoesNotExist, DjangoValidationError, ValueError, TypeError):
        raise ServiceError('User not found', 404)


class MeView(APIView):
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        user = request.user
        if not user.is_authenticated:
            return Response({'user': None, 'roles': [], 'profile': None})

        roles = user.role_codes
        department = user.primary_department()
        return Response({
            'user': {'id': str(user.pk), 'email': user.email, 'name': user.name},
            'roles': roles,
            'profile': {
                'role': primary_role(roles),
                'department_id': str(department.pk) if department else None,
            },
        })


class SecurityViewSet(viewsets.ViewSet):
    permission_classes = [IsAdmin]

    @action(detail=False, methods=['get'], url_path='roles')
    def roles(self, request):
        roles = Role.objects.filter(is_active=True).order_by('code')
        return Response({'items': RoleSerializer(roles, many=True).data})

    @action(detail=False, methods=['get'], url_path='staff')
    def staff(self, request):
        q = request.query_params.get('q', '').strip()
        page = clamp_int(request.query_params.get('page'), 1, minimum=1)
        limit = clamp_int(request.query_params.get('limit'), 20, minimum=1, maximum=100)

        queryset = CustomUser.objects.filter(student_profile__isnull=True).order_by('full_name', 'email')
        if q:
            queryset = queryset.filter(Q(full_name__icontains=q) | Q(email__icontains=q))

        total = queryset.count()
        offset = (page - 1) * limit
        items = StaffSerializer(queryset[offset:offset + limit], many=True).data
        return Response({'items': items, 'total': total, 'page': page, 'limit': limit})

    @action(detail=False, methods=['post'], url_path='assign')
    def assign(self, request):
        user = get_user_or_404(request.data.get('user_id'))
        role_code = request.data.get('role_code')
        if not role_code:
            raise ServiceError('role_code is required')

        _, created = services.assign_system_role(user, role_code)
        if not created:
            return Response({'ok': True, 'already': True})
        return Response({'ok': True})

    @action(detail=False, methods=['post'], url_path='unassign')
    def unassign(self, request):
        user = get_user_or_404(request.data.get('user_id'))
        role_code = request.data.get('role_code')
        if not role_code:
            raise ServiceError('role_code is required')

        removed = services.unassign_system_role(user, role_code)
        return Response({'ok': True, 'removed': removed})

    @action(detail=False, methods=['get'], url_path='user-roles')
    def user_roles(self, request):
        user_ids = split_csv_param(request.query_params.get('user_ids'))
        role_map = {user_id: [] for user_id in user_ids}
        if user_ids:
            pairs = (
                UserRole.objects.filter(user_id__in=user_ids)
                .values_list('user_id', 'role__code')
                .order_by('role__code')
            )
            for user_id, code in pairs:
                codes = role_map.setdefault(str(user_id), [])
                if code not in codes:
                    codes.append(code)
        return Response({'map': role_map})


class DepartmentViewSet(viewsets.ModelViewSet):
    queryset = Department.objects.all()
    serializer_class = DepartmentSerializer
    permission_classes = [IsAdmin]
    filter_backends = [filters.OrderingFilter]
    ordering_fields = ['name', 'code']

    def get_queryset(self):
        queryset = super().get_queryset()
        q = self.request.query_params.get('q', '').strip()
        if q:
            queryset = queryset.filter(Q(name__icontains=q) | Q(code__icontains=q))
        return queryset

    def list(self, request, *args, **kwargs):
        serializer = self.get_serializer(self.filter_queryset(self.get_queryset()), many=True)
        return Response({'items': serializer.data})

    def perform_create(self, serializer):
        department = serializer.save(created_by=self.request.user)
        logger.info(f"Department created: {department.code}")

    def perform_destroy(self, instance):
        logger.info(f"Department deleted: {instance.code}")
        instance.delete()


class OrgViewSet(viewsets.ViewSet):
    permission_classes = [IsAdmin]

    def _department(self, department_id):
        if not department_id:
            raise ServiceError('department_id is required')
        department = Department.objects.filter(pk=department_id).first()
        if department is None:
            raise ServiceError('Department not found', 404)
        return department

    @action(detail=False, methods=['post'], url_path='assign')
    def assign(self, request):
        department = self._department(request.data.get('department_id'))
        user_ids = request.data.get('user_ids') or []
        if not isinstance(user_ids, list) or not user_ids:
            raise ServiceError('user_ids must be a non-empty array')

        users = list(CustomUser.objects.filter(pk__in=user_ids))
        added = services.assign_staff(department, users)
        return Response({'ok': True, 'added': added})

    @action(detail=False, methods=['post'], url_path='unassign')
    def unassign(self, request):
        department = self._department(request.data.get('department_id'))
        user = get_user_or_404(request.data.get('user_id'))
        StaffDepartment.objects.filter(department=department, user=user).delete()
        return Response({'ok': True})

    @action(detail=False, methods=['post'], url_path='head')
    def head(self, request):
        department = self._department(request.data.get('department_id'))
        user = get_user_or_404(request.data.get('user_id'))
        services.set_department_head(department, user)
        return Response({'ok': True})

    @action(detail=False, methods=['get'], url_path='staff')
    def staff(self, request):
        department = self._department(request.query_params.get('department_id'))
        links = department.staff_links.select_related('user').order_by('-is_head', 'user__full_name')
        items = [
            {
                'user_id': str(link.user_id),
                'email': link.user.email,
                'name': link.user.name,
                'is_head': link.is_head,
            }
            for link in links
        ]
        return Response({'items': items})


class AdminUserViewSet(viewsets.ViewSet):
    permission_classes = [IsAdmin]

    @action(detail=False, methods=['get'], url_path='list')
    def list_users(self, request):
        q = request.query_params.get('q', '').strip()
        queryset = (
            CustomUser.objects.all()
            .prefetch_related('staff_departments__department', 'role_assignments__role')
            .order_by('email')
        )
        if q:
            queryset = queryset.filter(Q(full_name__icontains=q) | Q(email__icontains=q))
        return Response({'items': UserSerializer(queryset, many=True).data})

    @action(detail=False, methods=['post'], url_path='update')
    def update_user(self, request):
        serializer = UserUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = dict(serializer.validated_data)
        user = get_user_or_404(data.pop('user_id'))

        changes = services.update_user(user, data, actor=request.user)
        request.audit_extra_details = {'changes': len(changes)}
        return Response({'ok': True, 'changes': changes})

    @action(detail=False, methods=['post'], url_path='delete')
    def delete_user(self, request):
        user = get_user_or_404(request.data.get('user_id'))
        if user.pk == request.user.pk:
            raise ServiceError('You cannot delete your own account')
        logger.info(f"User {user.email} deleted by {request.user.email}")
        user.delete()
        return Response({'ok': True})

    @action(detail=False, methods=['post'], url_path='bulk-import')
    def bulk_import(self, request):
        rows = request.data
        if isinstance(rows, dict):
            rows = rows.get('rows') or rows.get('items') or []
        if not isinstance(rows, list) or not rows:
            raise ServiceError('rows must be a non-empty array')

        results = []
        for raw in rows:
            email = str(raw.get('email', '')).strip().lower() if isinstance(raw, dict) else ''
            serializer = BulkUserRowSerializer(data=raw if isinstance(raw, dict) else {})
            if not serializer.is_valid():
                results.append({'email': email, 'ok': False, 'error': 'Invalid row'})
                continue
            try:
                user = services.import_user_row(serializer.validated_data)
            except ServiceError as e:
                results.append({'email': email, 'ok': False, 'error': str(e.detail)})
                continue
            results.append({'email': user.email, 'ok': True, 'user_id': str(user.pk)})

        logger.info(f"Bulk import processed {len(results)} rows")
        return Response({'results': results})


class ResetPasswordView(APIView):
    permission_classes = [IsAdmin]

    def post(self, request):
        user = get_user_or_404(request.data.get('user_id'))
        password = services.reset_password(user, request.data.get('new_password') or None)
        return Response({'ok': True, 'password': password})


class AuditLogViewSet(viewsets.ReadOnlyModelViewSet):
    serializer_class = AuditLogSerializer
    permission_classes = [IsAdmin | HasPermission]
    resource = 'auditlog'
    pagination_class = StandardResultsSetPagination
    filter_backends = [DjangoFilterBackend, filters.SearchFilter, filters.OrderingFilter]
    filterset_fields = ['action', 'module', 'status']
    search_fields = ['user__email', 'user__full_name', 'module']
    ordering_fields = ['created_at', 'action', 'module']

    def get_queryset(self):
        days = clamp_int(self.request.query_params.get('days'), 7, minimum=1)
        start_date = timezone.now() - timedelta(days=days)
        return AuditLog.objects.filter(created_at__gte=start_date).select_related('user')

    @action(detail=False, methods=['get'])
    def export(self, request):
        queryset = self.filter_queryset(self.get_queryset())

        response = HttpResponse(content_type='text/csv')
        response['Content-Disposition'] = 'attachment; filename="audit_logs.csv"'

        writer = csv.writer(response)
        writer.writerow(['Timestamp', 'User', 'Action', 'Module', 'Details', 'IP Address', 'Status'])
        for log in queryset:
            writer.writerow([
                log.created_at.strftime('%Y-%m-%d %H:%M:%S'),
                log.user.email if log.user else 'System',
                log.get_action_display(),
                log.module,
                str(log.details) if log.details else '',
                log.ip_address or '',
                log.status,
            ])
        return response

    @action(detail=False, methods=['get'])
    def summary(self, request):
        queryset = self.get_queryset()
        return Response({
            'total_actions': queryset.count(),
            'actions_by_type': list(queryset.values('action').annotate(count=Count('id')).order_by('action')),
            'actions_by_module': list(queryset.values('module').annotate(count=Count('id')).order_by('module')),
            'actions_by_status': list(queryset.values('status').annotate(count=Count('id')).order_by('status')),
            'top_users': list(
                queryset.exclude(user__isnull=True)
                .values('user__email')
                .annotate(count=Count('id'))
                .order_by('-count')[:5]
            ),
        }, status=status.HTTP_200_OK)
