# monitoring/tests/test_errors.py
import pytest
from django.db import DatabaseError
from redis.exceptions import RedisError
from rest_framework import serializers, status
from rest_framework.exceptions import NotFound

from monitoring.exceptions import ServiceError, api_exception_handler
from monitoring.middleware import GlobalErrorHandler


class TitleSerializer(serializers.Serializer):
    title = serializers.CharField()


class TestApiExceptionHandler:
    def test_service_error(self):
        response = api_exception_handler(ServiceError('Framework not found', 404), {})
        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data == {'error': 'Framework not found'}

    def test_service_error_defaults_to_bad_request(self):
        response = api_exception_handler(ServiceError('items must be an array'), {})
        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_field_error_is_prefixed_and_detailed(self):
        serializer = TitleSerializer(data={})
        with pytest.raises(serializers.ValidationError) as excinfo:
            serializer.is_valid(raise_exception=True)

        response = api_exception_handler(excinfo.value, {})
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data['error'] == 'title: This field is required.'
        assert response.data['details'] == {'title': ['This field is required.']}

    def test_non_field_error_is_bare(self):
        exc = serializers.ValidationError({'non_field_errors': ['open_at must be before close_at']})
        response = api_exception_handler(exc, {})
        assert response.data['error'] == 'open_at must be before close_at'

    def test_drf_not_found(self):
        response = api_exception_handler(NotFound(), {})
        assert response.data == {'error': 'Not found.'}

    def test_unhandled_exception_passes_through(self):
        assert api_exception_handler(RuntimeError('boom'), {}) is None


class TestGlobalErrorHandler:
    @pytest.fixture
    def handler(self):
        return GlobalErrorHandler(lambda request: None)

    @pytest.mark.parametrize('exc, expected', [
        (DatabaseError('gone'), status.HTTP_503_SERVICE_UNAVAILABLE),
        (RedisError('down'), status.HTTP_503_SERVICE_UNAVAILABLE),
        (PermissionError('nope'), status.HTTP_403_FORBIDDEN),
        (ServiceError('conflict', 409), status.HTTP_409_CONFLICT),
        (KeyError('x'), status.HTTP_500_INTERNAL_SERVER_ERROR),
    ])
    def test_status_mapping(self, handler, rf, exc, expected):
        response = handler.process_exception(rf.get('/api/anything/'), exc)
        assert response.status_code == expected

    def test_internal_error_hides_message(self, handler, rf, settings):
        settings.DEBUG = False
        response = handler.process_exception(rf.get('/'), KeyError('secret'))
        assert response.content == b'{"error": "Internal server error"}'


@pytest.mark.django_db
def test_health_check(client):
    response = client.get('/health/')
    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert body['components']['database']['status'] == 'healthy'
    assert body['components']['cache']['status'] == 'healthy'
