import json
import logging
import time
import uuid

from django.http import JsonResponse
from django.utils.deprecation import MiddlewareMixin
from rest_framework_simplejwt.authentication import JWTAuthentication
from rest_framework_simplejwt.exceptions import InvalidToken, TokenError

from .constants import METHOD_TO_ACTION, ROUTE_ROLES, RoleCode
from .utils import get_client_ip

logger = logging.getLogger(__name__)


class RequestIDMiddleware(MiddlewareMixin):
    def process_request(self, request):
        request_id = request.headers.get('X-Request-ID') or str(uuid.uuid4())
        request.id = request_id
        logger.debug(f'Request ID: {request_id}')

    def process_response(self, request, response):
        if hasattr(request, 'id'):
            response['X-Request-ID'] = request.id
        return response


class PerformanceMiddleware(MiddlewareMixin):
    def process_request(self, request):
        request.start_time = time.time()

    def process_response(self, request, response):
        if hasattr(request, 'start_time'):
            duration = time.time() - request.start_time
            response['X-Page-Generation-Duration-ms'] = int(duration * 1000)
            logger.info(f'Request {getattr(request, "id", "-")} {request.method} {request.path} took {duration:.2f}s')
        return response


class RoleRouteMiddleware(MiddlewareMixin):
    """Resolves bearer tokens and gates the role-scoped URL prefixes."""

    def __init__(self, get_response=None):
        super().__init__(get_response)
        self.jwt_auth = JWTAuthentication()

    def get_route_roles(self, path):
        for prefix, roles in ROUTE_ROLES:
            if path.startswith(prefix) or path.rstrip('/') == prefix.rstrip('/'):
                return roles
        return None

    def process_request(self, request):
        if request.method == 'OPTIONS':
            return None

        roles = self.get_route_roles(request.path)
        if roles is not None and 'public' in roles:
            return None

        auth_header = request.headers.get('Authorization', '')
        if auth_header:
            try:
                authenticated = self.jwt_auth.authenticate(request)
            except (InvalidToken, TokenError) as e:
                logger.warning(f"Invalid token error: {str(e)}")
                if roles is None:
                    # DRF answers with its own 401 for unscoped routes
                    return None
                return JsonResponse({'error': 'Invalid authentication token'}, status=401)
            if authenticated is not None:
                request.user = authenticated[0]

        if roles is None:
            return None

        user = getattr(request, 'user', None)
        if user is None or not user.is_authenticated:
            return JsonResponse({'error': 'Authentication credentials were not provided.'}, status=401)

        if user.is_superuser or user.has_role(RoleCode.ADMIN):
            return None

        if not user.has_any_role(roles):
            logger.warning(
                f"Role check failed for user {user.email} on {request.path}; "
                f"requires one of {[str(r) for r in roles]}"
            )
            return JsonResponse({'error': 'Forbidden'}, status=403)

        return None


class AuditLogMiddleware(MiddlewareMixin):
    EXEMPT_PATHS = ('/admin/', '/static/', '/media/', '/favicon.ico', '/health/', '/swagger/', '/redoc/')
    EXEMPT_STATUS_CODES = {304, 404}
    AUDITED_METHODS = {'POST', 'PUT', 'PATCH', 'DELETE'}
    SENSITIVE_KEYS = {'password', 'new_password', 'current_password', 'refresh', 'access', 'token'}

    def should_audit(self, request, response):
        if request.method not in self.AUDITED_METHODS:
            return False
        if any(request.path.startswith(path) for path in self.EXEMPT_PATHS):
            return False
        if response.status_code in self.EXEMPT_STATUS_CODES:
            return False
        user = getattr(request, 'user', None)
        return bool(user and user.is_authenticated)

    def process_request(self, request):
        if request.method in self.AUDITED_METHODS:
            request.audit_body = self.get_request_body(request)

    def process_response(self, request, response):
        if not self.should_audit(request, response):
            return response

        from .models import AuditLog

        path_parts = [p for p in request.path.strip('/').split('/') if p]
        if path_parts and path_parts[0] == 'api':
            path_parts.pop(0)
        module = path_parts[0] if path_parts else 'root'

        details = {
            'path': request.path,
            'method': request.method,
            'status_code': response.status_code,
            'query_params': dict(request.GET.items()),
            'body_keys': sorted(getattr(request, 'audit_body', {}).keys()),
            **getattr(request, 'audit_extra_details', {}),
        }

        AuditLog.objects.create(
            user=request.user,
            action=METHOD_TO_ACTION.get(request.method, 'other'),
            module=module,
            details=details,
            ip_address=get_client_ip(request),
            user_agent=request.META.get('HTTP_USER_AGENT'),
            status='success' if response.status_code < 400 else 'failure'
        )
        return response

    def get_request_body(self, request):
        """Top-level request keys, with credentials left out."""
        if request.content_type != 'application/json':
            return {k: '' for k in request.POST.keys() if k not in self.SENSITIVE_KEYS}
        try:
            body = json.loads(request.body.decode('utf-8') or '{}')
        except (ValueError, UnicodeDecodeError):
            return {}
        if not isinstance(body, dict):
            return {}
        return {k: '' for k in body.keys() if k not in self.SENSITIVE_KEYS}
