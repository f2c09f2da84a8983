from django.views.decorators.csrf import csrf_exempt
from rest_framework.decorators import api_view

from ..services.user_service import UserService
from main.helpers.response import APIResponse
from main.helpers.request import parse_json_body
from main.helpers.require_login import admin_required


def _failure(result):
    if result.get('error_code') == 'NOT_FOUND':
        return APIResponse.not_found(message=result['message'])
    if result.get('field'):
        return APIResponse.validation_error(
            errors={result['field']: result['message']},
            message=result['message']
        )
    return APIResponse.error(message=result['message'], error_code=result.get('error_code', 'ERROR'))


@csrf_exempt
@api_view(["GET", "POST"])
@admin_required
def users(request):
    if request.method == 'POST':
        return _create_user(request)

    include_deleted = request.GET.get('include_deleted', 'false').lower() == 'true'

    result = UserService.get_all_users(
        page=int(request.GET.get('page', 1)),
        per_page=int(request.GET.get('per_page', 20)),
        search=request.GET.get('search'),
        role=request.GET.get('role'),
        status=request.GET.get('status'),
        order_by=request.GET.get('order_by', 'first_name'),
        include_deleted=include_deleted
    )

    return APIResponse.success(data=result)


def _create_user(request):
    data, error = parse_json_body(request)
    if error:
        return error

    required = ['first_name', 'last_name', 'email', 'password']
    missing = [field for field in required if not data.get(field)]

    if missing:
        return APIResponse.validation_error(
            errors={field: f'{field} is required' for field in missing},
            message=f'Missing required fields: {", ".join(missing)}'
        )

    result = UserService.create_user(
        first_name=data['first_name'],
        last_name=data['last_name'],
        email=data['email'],
        password=data['password'],
        role=data.get('role', 'PHARMACY'),
        status=data.get('status', 'ACTIVE'),
        created_by=request.user,
    )

    if result['success']:
        return APIResponse.created(data=result['user'], message=result['message'])

    return _failure(result)


@csrf_exempt
@api_view(["GET", "PUT", "DELETE"])
@admin_required
def user_detail(request, user_id):
    if request.method == 'GET':
        result = UserService.get_user_by_id(user_id)
        if result['success']:
            return APIResponse.success(data=result['user'])
        return APIResponse.not_found(message=result['message'])

    if request.method == 'DELETE':
        result = UserService.delete_user(user_id, deleted_by=request.user)
        if result['success']:
            return APIResponse.success(message=result['message'])
        return _failure(result)

    data, error = parse_json_body(request)
    if error:
        return error

    allowed = {'first_name', 'last_name', 'email', 'role', 'status', 'password'}
    result = UserService.update_user(
        user_id,
        updated_by=request.user,
        **{k: v for k, v in data.items() if k in allowed}
    )

    if result['success']:
        return APIResponse.success(data=result['user'], message=result['message'])

    return _failure(result)
