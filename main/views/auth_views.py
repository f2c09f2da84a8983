from django.views.decorators.csrf import csrf_exempt
from rest_framework.decorators import api_view

from ..services.auth_service import AuthService
from ..services.user_service import UserService
from main.helpers.response import APIResponse
from main.helpers.request import parse_json_body, get_client_ip, get_user_agent, get_bearer_token
from main.helpers.require_login import user_required


@csrf_exempt
@api_view(["POST"])
def register(request):
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

    result = AuthService.register(
        first_name=data['first_name'],
        last_name=data['last_name'],
        email=data['email'],
        password=data['password'],
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )

    if result['success']:
        return APIResponse.created(
            data={'token': result['token'], 'user': UserService.serialize_user(result['user'])},
            message=result['message']
        )

    return APIResponse.error(message=result['message'])


@csrf_exempt
@api_view(["POST"])
def login(request):
    data, error = parse_json_body(request)
    if error:
        return error

    if not data.get('email') or not data.get('password'):
        return APIResponse.validation_error(
            errors={'credentials': 'email and password are required'},
            message='Email and password are required'
        )

    result = AuthService.login(
        email=data['email'],
        password=data['password'],
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )

    if result['success']:
        return APIResponse.success(
            data={'token': result['token'], 'user': UserService.serialize_user(result['user'])},
            message=result['message']
        )

    return APIResponse.unauthorized(message=result['message'])


@csrf_exempt
@api_view(["POST"])
@user_required
def logout(request):
    result = AuthService.logout(get_bearer_token(request))
    if result['success']:
        return APIResponse.success(message=result['message'])
    return APIResponse.unauthorized(message=result['message'])


@csrf_exempt
@api_view(["POST"])
@user_required
def refresh_token(request):
    result = AuthService.refresh_token(
        get_bearer_token(request),
        ip_address=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    if result['success']:
        return APIResponse.success(data={'token': result['token']}, message=result['message'])
    return APIResponse.unauthorized(message=result['message'])


@csrf_exempt
@api_view(["GET"])
@user_required
def me(request):
    return APIResponse.success(data=UserService.serialize_user(request.user))
