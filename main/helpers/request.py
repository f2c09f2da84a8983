import json

from django.http.request import RawPostDataException

from main.helpers.response import APIResponse


def parse_json_body(request):
    """Return ``(data, error_response)``; exactly one of them is set."""
    try:
        body = request.body
    except RawPostDataException:
        return None, APIResponse.error(message='Unable to read request body')

    if not body:
        return {}, None

    try:
        data = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None, APIResponse.error(message='Invalid JSON body')

    if not isinstance(data, dict):
        return None, APIResponse.error(message='JSON body must be an object')

    return data, None


def get_client_ip(request):
    forwarded = request.META.get('HTTP_X_FORWARDED_FOR')
    if forwarded:
        return forwarded.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR', '')


def get_user_agent(request):
    return request.META.get('HTTP_USER_AGENT', '')[:200]


def get_bearer_token(request):
    header = request.META.get('HTTP_AUTHORIZATION', '')
    if header.lower().startswith('bearer '):
        return header[7:].strip()
    return None
