from functools import wraps

from main.helpers.request import get_bearer_token
from main.helpers.response import APIResponse


def authenticate_request(request):
    """Resolve the bearer token on ``request`` to an active user, or None."""
    from main.services.auth_service import AuthService

    token = get_bearer_token(request)
    if not token:
        return None
    return AuthService.get_user_from_token(token)


def user_required(view_func):
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        user = authenticate_request(request)
        if user is None:
            return APIResponse.unauthorized(message='Invalid or missing token')
        request.user = user
        return view_func(request, *args, **kwargs)
    return wrapper


def role_required(*roles):
    def decorator(view_func):
        @wraps(view_func)
        @user_required
        def wrapper(request, *args, **kwargs):
            if request.user.role not in roles:
                return APIResponse.forbidden(
                    message=f'This action requires one of the roles: {", ".join(roles)}'
                )
            return view_func(request, *args, **kwargs)
        return wrapper
    return decorator


def admin_required(view_func):
    return role_required('ADMIN')(view_func)
