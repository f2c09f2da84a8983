import logging
import re
from typing import Dict, Any, Optional, Iterable, Set

from django.db import transaction
from django.db.models import Q, Sum

from stock.models import Item, PriceHistory, StockLocation
from main.services.audit_service import AuditService
from .base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, require_decimal, require_int, to_decimal
)
from .formatting import format_item_name


logger = logging.getLogger(__name__)


def _choice_value(choices, value, field):
    """Accept either the stored value (``MEDICAL_SUPPLY``) or its label (``Medical Supply``)."""
    if value is None:
        raise ValidationError(f"{field} is required", field)
    text = str(value).strip()
    for choice_value, label in choices:
        if text.upper() == choice_value or text.lower() == str(label).lower():
            return choice_value
    valid = ", ".join(str(label) for _, label in choices)
    raise ValidationError(f"Invalid {field}. Must be one of: {valid}", field)


def code_prefix(generic_name: str) -> str:
    letters = re.sub(r"[^A-Za-z0-9]", "", generic_name or "").upper()
    return (letters[:3] or "ITM").ljust(3, "X")


def generate_item_code(generic_name: str, taken: Optional[Set[str]] = None) -> str:
    """First free ``<PREFIX><NNNN>`` code, e.g. PAR1001."""
    prefix = code_prefix(generic_name)
    taken = set(taken or ())
    taken.update(
        Item.objects.filter(item_code__startswith=prefix).values_list("item_code", flat=True)
    )
    number = 1001
    while f"{prefix}{number}" in taken:
        number += 1
    return f"{prefix}{number}"


class ItemService(BaseService):
    model = Item

    DESCRIPTOR_FIELDS = [
        ("strength_value", "strength_unit"),
        ("concentration_value", "concentration_unit"),
        ("package_size_value", "package_size_unit"),
    ]
    TEXT_FIELDS = ["generic_name", "brand_name", "unit_of_measure",
                   "strength_unit", "concentration_unit", "package_size_unit"]

    @classmethod
    def serialize(cls, item: Item, include_stock: bool = False) -> Dict[str, Any]:
        data = {
            "id": item.id,
            "uuid": str(item.uuid),
            "item_code": item.item_code,
            "display_name": format_item_name(item),
            "generic_name": item.generic_name,
            "brand_name": item.brand_name,
            "formulation": item.formulation,
            "formulation_display": item.get_formulation_display(),
            "strength_value": str(item.strength_value) if item.strength_value is not None else None,
            "strength_unit": item.strength_unit,
            "concentration_value": str(item.concentration_value) if item.concentration_value is not None else None,
            "concentration_unit": item.concentration_unit,
            "package_size_value": str(item.package_size_value) if item.package_size_value is not None else None,
            "package_size_unit": item.package_size_unit,
            "category": item.category,
            "category_display": item.get_category_display(),
            "unit_of_measure": item.unit_of_measure,
            "dispensary_reorder_level": item.dispensary_reorder_level,
            "bulk_store_reorder_level": item.bulk_store_reorder_level,
            "unit_cost": str(item.unit_cost),
            "selling_price": str(item.selling_price),
            "is_active": item.is_active,
            "created_at": item.created_at.isoformat(),
            "updated_at": item.updated_at.isoformat(),
        }

        if include_stock:
            totals = {
                row["location"]: row["total"]
                for row in item.stocks.values("location").annotate(total=Sum("current_stock_quantity"))
            }
            data["stock"] = {
                location: totals.get(location, 0) for location, _ in StockLocation.choices
            }

        return data

    @classmethod
    def list(cls,
             page: int = 1,
             per_page: int = 20,
             search: str = None,
             category: str = None,
             active_only: bool = True) -> Dict[str, Any]:
        queryset = cls.model.objects.all()

        if active_only:
            queryset = queryset.filter(is_active=True)
        if category:
            queryset = queryset.filter(category=category)
        if search:
            queryset = queryset.filter(
                Q(generic_name__icontains=search) |
                Q(brand_name__icontains=search) |
                Q(item_code__icontains=search)
            )

        items, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "items": [cls.serialize(item) for item in items],
            "pagination": pagination
        })

    @classmethod
    def get(cls, item_id: int) -> Dict[str, Any]:
        item = cls.get_or_404(item_id)
        return success_response({"item": cls.serialize(item, include_stock=True)})

    @classmethod
    def clean_fields(cls, data: Dict[str, Any], partial: bool = False) -> Dict[str, Any]:
        """Validate item master input. ``partial`` skips required checks for updates."""
        cleaned = {}

        for field in cls.TEXT_FIELDS:
            if field in data:
                cleaned[field] = str(data[field] or "").strip()

        if not partial or "generic_name" in data:
            if not cleaned.get("generic_name"):
                raise ValidationError("Generic name is required", "generic_name")
        if not partial or "unit_of_measure" in data:
            if not cleaned.get("unit_of_measure"):
                raise ValidationError("Unit of measure is required", "unit_of_measure")

        if not partial or "formulation" in data:
            cleaned["formulation"] = _choice_value(Item.Formulation.choices, data.get("formulation"), "formulation")
        if not partial or "category" in data:
            cleaned["category"] = _choice_value(Item.Category.choices, data.get("category"), "category")

        for field in ("dispensary_reorder_level", "bulk_store_reorder_level"):
            if field in data:
                cleaned[field] = require_int(data[field], field, 0)

        for field in ("unit_cost", "selling_price"):
            if field in data:
                cleaned[field] = require_decimal(data[field], field)

        for value_field, unit_field in cls.DESCRIPTOR_FIELDS:
            if value_field in data:
                raw = data[value_field]
                if raw is None or raw == "":
                    cleaned[value_field] = None
                else:
                    value = to_decimal(raw, None)
                    if value is None or value <= 0:
                        raise ValidationError(f"{value_field} must be a positive number", value_field)
                    cleaned[value_field] = value

        if "is_active" in data:
            cleaned["is_active"] = bool(data["is_active"])

        return cleaned

    @classmethod
    @transaction.atomic
    def create(cls, user=None, item_code: str = None, **data) -> Dict[str, Any]:
        cleaned = cls.clean_fields(data)

        if item_code:
            item_code = str(item_code).strip().upper()
            if cls.model.objects.filter(item_code__iexact=item_code).exists():
                raise ValidationError(f"Item code '{item_code}' already exists", "item_code")
        else:
            item_code = generate_item_code(cleaned["generic_name"])

        item = cls.model.objects.create(item_code=item_code, **cleaned)

        PriceHistory.objects.create(
            item=item,
            unit_cost=item.unit_cost,
            selling_price=item.selling_price,
            changed_by=user,
        )

        AuditService.log(user, "item.created", {"item_id": item.id, "item_code": item.item_code})
        logger.info("Item %s created", item.item_code)

        return success_response({
            "id": item.id,
            "item": cls.serialize(item)
        }, f"Item '{format_item_name(item)}' created")

    @classmethod
    @transaction.atomic
    def update(cls, item_id: int, user=None, **data) -> Dict[str, Any]:
        item = cls.get_or_404(item_id)

        if "item_code" in data and str(data["item_code"]).strip().upper() != item.item_code:
            raise ValidationError("Item code cannot be changed once created", "item_code")
        data.pop("item_code", None)

        cleaned = cls.clean_fields(data, partial=True)

        old_cost, old_price = item.unit_cost, item.selling_price
        for field, value in cleaned.items():
            setattr(item, field, value)
        item.save()

        if item.unit_cost != old_cost or item.selling_price != old_price:
            PriceHistory.objects.create(
                item=item,
                unit_cost=item.unit_cost,
                selling_price=item.selling_price,
                changed_by=user,
            )

        AuditService.log(user, "item.updated", {"item_id": item.id, "fields": sorted(cleaned)})

        return success_response({"item": cls.serialize(item)}, "Item updated")

    @classmethod
    @transaction.atomic
    def deactivate(cls, item_id: int, user=None) -> Dict[str, Any]:
        item = cls.get_or_404(item_id)
        item.is_active = False
        item.save(update_fields=["is_active", "updated_at"])

        AuditService.log(user, "item.deactivated", {"item_id": item.id, "item_code": item.item_code})

        return success_response({"item": cls.serialize(item)}, "Item deactivated")

    @classmethod
    def get_price_history(cls, item_id: int) -> Dict[str, Any]:
        item = cls.get_or_404(item_id)
        history = item.price_history.select_related("changed_by")

        return success_response({
            "item_id": item.id,
            "history": [
                {
                    "unit_cost": str(entry.unit_cost),
                    "selling_price": str(entry.selling_price),
                    "changed_by": entry.changed_by.display_name if entry.changed_by else None,
                    "date": entry.created_at.isoformat(),
                }
                for entry in history
            ]
        })

    @classmethod
    def get_many(cls, item_ids: Iterable[int]) -> Dict[int, Item]:
        ids = list(item_ids)
        found = cls.model.objects.in_bulk(ids)
        missing = [item_id for item_id in ids if item_id not in found]
        if missing:
            raise NotFoundError("Item", missing[0])
        return found
