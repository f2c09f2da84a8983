from typing import Dict, Any

from django.db import transaction

from billing.models import ClinicService
from main.services.audit_service import AuditService
from stock.services.base_service import (
    BaseService, success_response, ValidationError, require_decimal
)


class ClinicServiceService(BaseService):
    """Billable clinic services such as consultation or dressing."""
    model = ClinicService

    @classmethod
    def serialize(cls, service: ClinicService) -> Dict[str, Any]:
        return {
            "id": service.id,
            "name": service.name,
            "fee": str(service.fee),
            "is_active": service.is_active,
        }

    @classmethod
    def _clean(cls, data: Dict[str, Any], partial: bool = False, instance: ClinicService = None) -> Dict[str, Any]:
        cleaned = {}
        if not partial or "name" in data:
            name = str(data.get("name") or "").strip()
            if not name:
                raise ValidationError("Service name is required", "name")
            duplicates = cls.model.objects.filter(name__iexact=name)
            if instance:
                duplicates = duplicates.exclude(id=instance.id)
            if duplicates.exists():
                raise ValidationError(f"A service named '{name}' already exists", "name")
            cleaned["name"] = name
        if not partial or "fee" in data:
            cleaned["fee"] = require_decimal(data.get("fee"), "fee")
        if "is_active" in data:
            cleaned["is_active"] = bool(data["is_active"])
        return cleaned

    @classmethod
    def list(cls, active_only: bool = True) -> Dict[str, Any]:
        queryset = cls.model.objects.all()
        if active_only:
            queryset = queryset.filter(is_active=True)
        return success_response({"services": [cls.serialize(service) for service in queryset]})

    @classmethod
    def get(cls, service_id: int) -> Dict[str, Any]:
        return success_response({"service": cls.serialize(cls.get_or_404(service_id))})

    @classmethod
    @transaction.atomic
    def create(cls, user=None, **data) -> Dict[str, Any]:
        service = cls.model.objects.create(**cls._clean(data))
        AuditService.log(user, "service.created", {"service_id": service.id, "name": service.name})
        return success_response({"id": service.id, "service": cls.serialize(service)}, "Service created")

    @classmethod
    @transaction.atomic
    def update(cls, service_id: int, user=None, **data) -> Dict[str, Any]:
        service = cls.get_or_404(service_id)
        cleaned = cls._clean(data, partial=True, instance=service)
        for field, value in cleaned.items():
            setattr(service, field, value)
        service.save()
        AuditService.log(user, "service.updated", {"service_id": service.id, "fields": sorted(cleaned)})
        return success_response({"service": cls.serialize(service)}, "Service updated")

    @classmethod
    @transaction.atomic
    def deactivate(cls, service_id: int, user=None) -> Dict[str, Any]:
        service = cls.get_or_404(service_id)
        service.is_active = False
        service.save(update_fields=["is_active", "updated_at"])
        AuditService.log(user, "service.deactivated", {"service_id": service.id})
        return success_response({"service": cls.serialize(service)}, "Service deactivated")
