import json
import logging

from django.http import JsonResponse


logger = logging.getLogger(__name__)


class JSONOnlyMiddleware:
    """Keep every /api/ response a JSON body, including framework errors."""

    API_PREFIX = '/api/'

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        response = self.get_response(request)

        if not request.path.startswith(self.API_PREFIX):
            return response

        content_type = response.get('Content-Type', '')
        if response.status_code in (404, 405) and 'application/json' not in content_type:
            messages = {404: 'Endpoint not found', 405: 'Method not allowed'}
            return JsonResponse(
                {'success': False, 'message': messages[response.status_code],
                 'error_code': 'NOT_FOUND' if response.status_code == 404 else 'METHOD_NOT_ALLOWED'},
                status=response.status_code,
            )

        return response

    def process_exception(self, request, exception):
        if not request.path.startswith(self.API_PREFIX):
            return None

        logger.exception("Unhandled error on %s %s", request.method, request.path)
        status = 400 if isinstance(exception, json.JSONDecodeError) else 500
        return JsonResponse(
            {'success': False, 'message': 'Internal server error' if status == 500 else str(exception),
             'error_code': 'SERVER_ERROR' if status == 500 else 'BAD_REQUEST'},
            status=status,
        )
