from datetime import date

from django.views.decorators.csrf import csrf_exempt
from rest_framework.decorators import api_view

from ..services.audit_service import AuditService
from main.helpers.response import APIResponse
from main.helpers.require_login import admin_required


def _parse_date(value):
    if not value:
        return None
    return date.fromisoformat(value)


@csrf_exempt
@api_view(["GET"])
@admin_required
def list_logs(request):
    try:
        date_from = _parse_date(request.GET.get('date_from'))
        date_to = _parse_date(request.GET.get('date_to'))
    except ValueError:
        return APIResponse.validation_error(
            errors={'date': 'Dates must be YYYY-MM-DD'},
            message='Invalid date filter'
        )

    user_id = request.GET.get('user_id')

    result = AuditService.list_logs(
        page=int(request.GET.get('page', 1)),
        per_page=int(request.GET.get('per_page', 50)),
        user_id=int(user_id) if user_id else None,
        action=request.GET.get('action'),
        date_from=date_from,
        date_to=date_to,
    )
    return APIResponse.success(data=result)
