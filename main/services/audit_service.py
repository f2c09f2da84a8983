import json
import logging

from django.core.paginator import Paginator
from django.core.serializers.json import DjangoJSONEncoder
from django.db import DatabaseError, transaction

from main.models import AuditLog


logger = logging.getLogger(__name__)


class AuditService:
    """Append-only record of who did what. Never blocks the business action."""

    @staticmethod
    def log(user, action, details=None):
        details = details or {}
        try:
            with transaction.atomic():
                return AuditLog.objects.create(
                    user=user if user is not None and user.pk else None,
                    user_display_name=user.display_name if user is not None else 'System',
                    action=action,
                    details=_json_safe(details),
                )
        except DatabaseError:
            logger.exception("Failed to write audit entry %s", action)
            return None

    @staticmethod
    def serialize(entry):
        return {
            'id': entry.id,
            'timestamp': entry.timestamp.isoformat(),
            'user_id': entry.user_id,
            'user_display_name': entry.user_display_name,
            'action': entry.action,
            'details': entry.details,
        }

    @staticmethod
    def list_logs(page=1, per_page=50, user_id=None, action=None, date_from=None, date_to=None):
        queryset = AuditLog.objects.all()

        if user_id:
            queryset = queryset.filter(user_id=user_id)
        if action:
            queryset = queryset.filter(action__startswith=action)
        if date_from:
            queryset = queryset.filter(timestamp__date__gte=date_from)
        if date_to:
            queryset = queryset.filter(timestamp__date__lte=date_to)

        paginator = Paginator(queryset, per_page)
        page_obj = paginator.get_page(page)

        return {
            'logs': [AuditService.serialize(entry) for entry in page_obj.object_list],
            'pagination': {
                'current_page': page_obj.number,
                'total_pages': paginator.num_pages,
                'total_logs': paginator.count,
                'per_page': per_page,
                'has_next': page_obj.has_next(),
                'has_previous': page_obj.has_previous(),
            }
        }


def _json_safe(value):
    """Round-trip through Django's encoder so Decimals and dates survive JSONField."""
    return json.loads(json.dumps(value, cls=DjangoJSONEncoder))
