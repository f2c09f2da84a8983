from django.views.decorators.csrf import csrf_exempt
from rest_framework.decorators import api_view

from ..services.clinic_settings_service import ClinicSettingsService
from main.helpers.response import APIResponse
from main.helpers.request import parse_json_body
from main.helpers.require_login import user_required


@csrf_exempt
@api_view(["GET", "PUT"])
@user_required
def clinic_settings(request):
    if request.method == 'GET':
        return APIResponse.success(data=ClinicSettingsService.get_settings())

    if request.user.role != 'ADMIN':
        return APIResponse.forbidden(message='Only administrators can change clinic settings')

    data, error = parse_json_body(request)
    if error:
        return error

    result = ClinicSettingsService.update_settings(updated_by=request.user, **{
        k: v for k, v in data.items() if k in ClinicSettingsService.EDITABLE_FIELDS
    })

    if result['success']:
        return APIResponse.success(data=result['settings'], message=result['message'])

    return APIResponse.validation_error(errors=result['errors'], message=result['message'])
