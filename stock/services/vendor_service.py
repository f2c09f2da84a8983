import logging
from typing import Dict, Any, List, Iterable

from django.core.exceptions import ValidationError as DjangoValidationError
from django.core.validators import validate_email
from django.db import transaction
from django.db.models import Q

from stock.models import Item, Vendor
from main.services.audit_service import AuditService
from .base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError
)
from .formatting import format_item_name
from .procurement import VendorEntry


logger = logging.getLogger(__name__)


def vendor_entries(vendors: Iterable[Vendor]) -> List[VendorEntry]:
    """Vendor catalog records in catalog order (name, then id)."""
    return [
        VendorEntry(
            id=vendor.id,
            name=vendor.name,
            supplies=frozenset(item.id for item in vendor.supplies.all()),
        )
        for vendor in sorted(vendors, key=lambda v: (v.name.lower(), v.id))
    ]


class VendorService(BaseService):
    model = Vendor

    CONTACT_FIELDS = ["name", "contact_person", "email", "phone", "address"]

    @classmethod
    def serialize(cls, vendor: Vendor, include_items: bool = False) -> Dict[str, Any]:
        supplied = list(vendor.supplies.all())
        data = {
            "id": vendor.id,
            "uuid": str(vendor.uuid),
            "code": vendor.code,
            "name": vendor.name,
            "contact_person": vendor.contact_person,
            "email": vendor.email,
            "phone": vendor.phone,
            "address": vendor.address,
            "is_active": vendor.is_active,
            "supplies": [item.id for item in supplied],
            "supplies_count": len(supplied),
            "created_at": vendor.created_at.isoformat(),
        }
        if include_items:
            data["items"] = [
                {"id": item.id, "item_code": item.item_code, "name": format_item_name(item)}
                for item in supplied
            ]
        return data

    @classmethod
    def list(cls,
             page: int = 1,
             per_page: int = 20,
             search: str = None,
             item_id: int = None,
             active_only: bool = True) -> Dict[str, Any]:
        queryset = cls.model.objects.prefetch_related("supplies")

        if active_only:
            queryset = queryset.filter(is_active=True)
        if item_id:
            queryset = queryset.filter(supplies__id=item_id)
        if search:
            queryset = queryset.filter(
                Q(name__icontains=search) |
                Q(code__icontains=search) |
                Q(contact_person__icontains=search)
            )

        vendors, pagination = paginate_queryset(queryset.distinct(), page, per_page)

        return success_response({
            "vendors": [cls.serialize(vendor) for vendor in vendors],
            "pagination": pagination
        })

    @classmethod
    def get(cls, vendor_id: int) -> Dict[str, Any]:
        vendor = cls.get_or_404(vendor_id)
        return success_response({"vendor": cls.serialize(vendor, include_items=True)})

    @classmethod
    def _clean(cls, data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        cleaned = {}
        for field in cls.CONTACT_FIELDS:
            if field in data:
                cleaned[field] = str(data[field] or "").strip()

        if (not partial or "name" in data) and not cleaned.get("name"):
            raise ValidationError("Vendor name is required", "name")

        if cleaned.get("email"):
            try:
                validate_email(cleaned["email"])
            except DjangoValidationError:
                raise ValidationError("Invalid email address", "email")

        if "is_active" in data:
            cleaned["is_active"] = bool(data["is_active"])

        return cleaned

    @classmethod
    def _resolve_items(cls, item_ids) -> List[Item]:
        if item_ids is None:
            return []
        if not isinstance(item_ids, (list, tuple, set)):
            raise ValidationError("supplies must be a list of item ids", "supplies")
        ids = []
        for raw in item_ids:
            try:
                ids.append(int(raw))
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid item id: {raw}", "supplies")
        found = Item.objects.in_bulk(ids)
        missing = [item_id for item_id in ids if item_id not in found]
        if missing:
            raise NotFoundError("Item", missing[0])
        return [found[item_id] for item_id in dict.fromkeys(ids)]

    @classmethod
    def _next_code(cls) -> str:
        number = cls.model.objects.count() + 1
        while cls.model.objects.filter(code=f"VEND-{number:03d}").exists():
            number += 1
        return f"VEND-{number:03d}"

    @classmethod
    @transaction.atomic
    def create(cls, user=None, code: str = None, supplies=None, **data) -> Dict[str, Any]:
        cleaned = cls._clean(data)

        if code:
            code = str(code).strip().upper()
            if cls.model.objects.filter(code__iexact=code).exists():
                raise ValidationError(f"Vendor code '{code}' already exists", "code")
        else:
            code = cls._next_code()

        items = cls._resolve_items(supplies)
        vendor = cls.model.objects.create(code=code, **cleaned)
        vendor.supplies.set(items)

        AuditService.log(user, "vendor.created", {"vendor_id": vendor.id, "name": vendor.name})
        logger.info("Vendor %s created with %d supplied items", vendor.code, len(items))

        return success_response({
            "id": vendor.id,
            "vendor": cls.serialize(vendor)
        }, f"Vendor '{vendor.name}' created")

    @classmethod
    @transaction.atomic
    def update(cls, vendor_id: int, user=None, supplies=None, **data) -> Dict[str, Any]:
        vendor = cls.get_or_404(vendor_id)
        data.pop("code", None)

        cleaned = cls._clean(data, partial=True)
        for field, value in cleaned.items():
            setattr(vendor, field, value)
        vendor.save()

        if supplies is not None:
            vendor.supplies.set(cls._resolve_items(supplies))

        AuditService.log(user, "vendor.updated", {
            "vendor_id": vendor.id,
            "fields": sorted(cleaned) + (["supplies"] if supplies is not None else []),
        })

        return success_response({"vendor": cls.serialize(vendor)}, "Vendor updated")

    @classmethod
    @transaction.atomic
    def deactivate(cls, vendor_id: int, user=None) -> Dict[str, Any]:
        vendor = cls.get_or_404(vendor_id)
        vendor.is_active = False
        vendor.save(update_fields=["is_active", "updated_at"])

        AuditService.log(user, "vendor.deactivated", {"vendor_id": vendor.id})

        return success_response({"vendor": cls.serialize(vendor)}, "Vendor deactivated")

    @classmethod
    @transaction.atomic
    def add_items(cls, vendor_id: int, item_ids, user=None) -> Dict[str, Any]:
        vendor = cls.get_or_404(vendor_id)
        vendor.supplies.add(*cls._resolve_items(item_ids))
        AuditService.log(user, "vendor.items_added", {"vendor_id": vendor.id, "item_ids": list(item_ids)})
        return success_response({"vendor": cls.serialize(vendor, include_items=True)}, "Items added")

    @classmethod
    @transaction.atomic
    def remove_items(cls, vendor_id: int, item_ids, user=None) -> Dict[str, Any]:
        vendor = cls.get_or_404(vendor_id)
        vendor.supplies.remove(*cls._resolve_items(item_ids))
        AuditService.log(user, "vendor.items_removed", {"vendor_id": vendor.id, "item_ids": list(item_ids)})
        return success_response({"vendor": cls.serialize(vendor, include_items=True)}, "Items removed")

    @classmethod
    def catalog(cls) -> List[VendorEntry]:
        return vendor_entries(cls.model.objects.filter(is_active=True).prefetch_related("supplies"))

