# monitoring/middleware.py
import logging
import traceback

from django.conf import settings
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import DatabaseError
from django.http import Http404, JsonResponse
from redis.exceptions import RedisError
from rest_framework import status
from rest_framework.exceptions import APIException

logger = logging.getLogger(__name__)


class GlobalErrorHandler:
    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        return self.get_response(request)

    def process_exception(self, request, exception):
        if isinstance(exception, Http404):
            return None
        return self.handle_error(exception)

    def handle_error(self, exc):
        """Map an unhandled exception to a JSON ``{"error": ...}`` response."""
        trace = ''.join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        logger.error(f"Unhandled exception: {str(exc)}\n{trace}")

        error_response = {'error': str(exc) or exc.__class__.__name__}

        if settings.DEBUG:
            error_response['debug'] = {
                'exception_type': exc.__class__.__name__,
                'traceback': trace
            }

        if isinstance(exc, ValidationError):
            error_response['error'] = '; '.join(exc.messages)
            return JsonResponse(error_response, status=status.HTTP_400_BAD_REQUEST)

        if isinstance(exc, APIException):
            return JsonResponse(error_response, status=exc.status_code)

        if isinstance(exc, DatabaseError):
            error_response['error'] = "A database error occurred"
            return JsonResponse(error_response, status=status.HTTP_503_SERVICE_UNAVAILABLE)

        if isinstance(exc, RedisError):
            error_response['error'] = "A caching error occurred"
            return JsonResponse(error_response, status=status.HTTP_503_SERVICE_UNAVAILABLE)

        if isinstance(exc, (PermissionError, PermissionDenied)):
            return JsonResponse(error_response, status=status.HTTP_403_FORBIDDEN)

        error_response['error'] = 'Internal server error'
        return JsonResponse(error_response, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
