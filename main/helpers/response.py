from django.http import JsonResponse


class APIResponse:
    """Uniform JSON envelopes for the function-based API views."""

    @staticmethod
    def success(data=None, message='Success', status_code=200):
        body = {'success': True, 'message': message}
        if data is not None:
            body['data'] = data
        return JsonResponse(body, status=status_code)

    @staticmethod
    def created(data=None, message='Created'):
        return APIResponse.success(data=data, message=message, status_code=201)

    @staticmethod
    def error(message='Error', status_code=400, error_code='ERROR', details=None):
        body = {'success': False, 'message': message, 'error_code': error_code}
        if details:
            body['details'] = details
        return JsonResponse(body, status=status_code)

    @staticmethod
    def validation_error(errors=None, message='Validation failed'):
        return APIResponse.error(
            message=message,
            status_code=400,
            error_code='VALIDATION_ERROR',
            details=errors,
        )

    @staticmethod
    def not_found(message='Not found'):
        return APIResponse.error(message=message, status_code=404, error_code='NOT_FOUND')

    @staticmethod
    def unauthorized(message='Authentication required'):
        return APIResponse.error(message=message, status_code=401, error_code='UNAUTHORIZED')

    @staticmethod
    def forbidden(message='Permission denied'):
        return APIResponse.error(message=message, status_code=403, error_code='PERMISSION_DENIED')
