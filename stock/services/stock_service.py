import logging
from collections import OrderedDict
from datetime import date, timedelta
from typing import Dict, Any, List, Iterable, Tuple

from django.db import transaction
from django.db.models import Q, Sum, F
from django.db.models.functions import TruncDate
from django.utils import timezone

from stock.models import Item, Stock, StockMovement, StockLocation
from main.models import ClinicSettings
from main.services.audit_service import AuditService
from .base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, InsufficientStockError, require_int
)
from .formatting import format_item_name
from .item_service import ItemService
from .procurement import CatalogItem, StockEntry, find_low_stock_items, on_hand_by_item


logger = logging.getLogger(__name__)


def validate_location(location: str, field: str = "location") -> str:
    location = (location or "").upper().replace("-", "_")
    if location not in StockLocation.values:
        raise ValidationError(
            f"Invalid location. Must be one of: {', '.join(StockLocation.values)}", field
        )
    return location


def catalog_entries(items: Iterable[Item]) -> List[CatalogItem]:
    return [
        CatalogItem(
            id=item.id,
            name=format_item_name(item),
            dispensary_reorder_level=item.dispensary_reorder_level,
            bulk_store_reorder_level=item.bulk_store_reorder_level,
        )
        for item in items
    ]


def stock_entries(location: str = None) -> List[StockEntry]:
    queryset = Stock.objects.all()
    if location:
        queryset = queryset.filter(location=location)
    return [
        StockEntry(item_id=item_id, location=loc, quantity=quantity)
        for item_id, loc, quantity in queryset.values_list("item_id", "location", "current_stock_quantity")
    ]


def record_movement(stock: Stock, movement_type: str, quantity: int, before: int,
                    reference: str = "", notes: str = "", user=None) -> StockMovement:
    return StockMovement.objects.create(
        item_id=stock.item_id,
        stock=stock,
        location=stock.location,
        batch_id=stock.batch_id,
        movement_type=movement_type,
        quantity=quantity,
        quantity_before=before,
        quantity_after=stock.current_stock_quantity,
        reference=reference,
        notes=notes,
        user=user,
    )


def fefo_batches(item_id: int, location: str):
    """Batches in first-expiry-first-out order; undated batches go last."""
    return (
        Stock.objects.select_for_update()
        .filter(item_id=item_id, location=location, current_stock_quantity__gt=0)
        .order_by(F("expiry_date").asc(nulls_last=True), "created_at", "id")
    )


def on_hand(item_id: int, location: str) -> int:
    return Stock.objects.filter(item_id=item_id, location=location).aggregate(
        total=Sum("current_stock_quantity")
    )["total"] or 0


def ensure_available(requirements: Dict[int, int], location: str) -> None:
    """Raise before anything is touched if any requirement cannot be met."""
    items = Item.objects.in_bulk(list(requirements))
    for item_id, required in requirements.items():
        available = on_hand(item_id, location)
        if available < required:
            item = items.get(item_id)
            raise InsufficientStockError(
                format_item_name(item) if item else str(item_id), required, available
            )


def deduct_fefo(item_id: int, location: str, quantity: int, movement_type: str,
                reference: str = "", user=None) -> List[Tuple[Stock, int]]:
    """
    Take ``quantity`` units from the location's batches, earliest expiry first.

    Returns the ``(stock, taken)`` pairs. Callers check availability first.
    """
    remaining = quantity
    taken = []

    for stock in fefo_batches(item_id, location):
        if remaining <= 0:
            break
        take = min(stock.current_stock_quantity, remaining)
        before = stock.current_stock_quantity
        stock.current_stock_quantity = before - take
        stock.save(update_fields=["current_stock_quantity", "updated_at"])
        record_movement(stock, movement_type, -take, before, reference=reference, user=user)
        taken.append((stock, take))
        remaining -= take

    if remaining > 0:
        item = Item.objects.get(id=item_id)
        raise InsufficientStockError(format_item_name(item), quantity, quantity - remaining)

    return taken


class StockService(BaseService):
    model = Stock

    @classmethod
    def serialize(cls, stock: Stock) -> Dict[str, Any]:
        today = timezone.localdate()
        return {
            "id": stock.id,
            "uuid": str(stock.uuid),
            "item_id": stock.item_id,
            "item_code": stock.item.item_code,
            "item_name": format_item_name(stock.item),
            "batch_id": stock.batch_id,
            "location": stock.location,
            "location_display": stock.get_location_display(),
            "current_stock_quantity": stock.current_stock_quantity,
            "expiry_date": stock.expiry_date.isoformat() if stock.expiry_date else None,
            "is_expired": bool(stock.expiry_date and stock.expiry_date < today),
            "updated_at": stock.updated_at.isoformat(),
        }

    @classmethod
    def serialize_movement(cls, movement: StockMovement) -> Dict[str, Any]:
        return {
            "id": movement.id,
            "item_id": movement.item_id,
            "location": movement.location,
            "batch_id": movement.batch_id,
            "movement_type": movement.movement_type,
            "movement_type_display": movement.get_movement_type_display(),
            "quantity": movement.quantity,
            "quantity_before": movement.quantity_before,
            "quantity_after": movement.quantity_after,
            "reference": movement.reference,
            "notes": movement.notes,
            "user": movement.user.display_name if movement.user else None,
            "created_at": movement.created_at.isoformat(),
        }

    @classmethod
    def list(cls,
             page: int = 1,
             per_page: int = 20,
             location: str = None,
             item_id: int = None,
             search: str = None,
             in_stock_only: bool = False) -> Dict[str, Any]:
        queryset = cls.model.objects.select_related("item")

        if location:
            queryset = queryset.filter(location=validate_location(location))
        if item_id:
            queryset = queryset.filter(item_id=item_id)
        if in_stock_only:
            queryset = queryset.filter(current_stock_quantity__gt=0)
        if search:
            queryset = queryset.filter(
                Q(item__generic_name__icontains=search) |
                Q(item__brand_name__icontains=search) |
                Q(item__item_code__icontains=search) |
                Q(batch_id__icontains=search)
            )

        stocks, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "stocks": [cls.serialize(stock) for stock in stocks],
            "pagination": pagination
        })

    @classmethod
    def get_item_summary(cls, item_id: int) -> Dict[str, Any]:
        item = ItemService.get_or_404(item_id)

        batches = cls.model.objects.filter(item=item).select_related("item")
        by_location = {location: 0 for location in StockLocation.values}
        for stock in batches:
            by_location[stock.location] += stock.current_stock_quantity

        return success_response({
            "item_id": item.id,
            "item_name": format_item_name(item),
            "on_hand": by_location,
            "reorder_levels": {
                StockLocation.BULK_STORE: item.bulk_store_reorder_level,
                StockLocation.DISPENSARY: item.dispensary_reorder_level,
            },
            "batches": [cls.serialize(stock) for stock in batches],
        })

    @classmethod
    @transaction.atomic
    def receive(cls,
                item_id: int,
                batch_id: str,
                quantity: Any,
                location: str = StockLocation.BULK_STORE,
                expiry_date: date = None,
                reference: str = "",
                user=None) -> Dict[str, Any]:
        item = ItemService.get_or_404(item_id)
        location = validate_location(location)
        quantity = require_int(quantity, "quantity", 1)

        batch_id = (batch_id or "").strip()
        if not batch_id:
            raise ValidationError("Batch id is required", "batch_id")

        stock, created = cls.model.objects.select_for_update().get_or_create(
            item=item,
            batch_id=batch_id,
            location=location,
            defaults={"expiry_date": expiry_date, "current_stock_quantity": 0},
        )
        if not created and expiry_date and stock.expiry_date != expiry_date:
            raise ValidationError(
                f"Batch {batch_id} is already recorded with expiry {stock.expiry_date}", "expiry_date"
            )

        before = stock.current_stock_quantity
        stock.current_stock_quantity = before + quantity
        stock.save()
        record_movement(stock, StockMovement.MovementType.RECEIVE, quantity, before,
                        reference=reference, user=user)

        AuditService.log(user, "stock.received", {
            "item_id": item.id, "batch_id": batch_id, "location": location, "quantity": quantity,
        })
        logger.info("Received %s x %s into %s (batch %s)", quantity, item.item_code, location, batch_id)

        return success_response({"stock": cls.serialize(stock)}, "Stock received")

    @classmethod
    @transaction.atomic
    def adjust(cls, stock_id: int, new_quantity: Any, reason: str = "", user=None) -> Dict[str, Any]:
        try:
            stock = cls.model.objects.select_for_update().select_related("item").get(id=stock_id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Stock", stock_id)

        new_quantity = require_int(new_quantity, "new_quantity", 0)
        if not (reason or "").strip():
            raise ValidationError("A reason is required for stock adjustments", "reason")

        before = stock.current_stock_quantity
        if new_quantity == before:
            return success_response({"stock": cls.serialize(stock)}, "No change")

        stock.current_stock_quantity = new_quantity
        stock.save(update_fields=["current_stock_quantity", "updated_at"])
        record_movement(stock, StockMovement.MovementType.ADJUSTMENT, new_quantity - before, before,
                        notes=reason, user=user)

        AuditService.log(user, "stock.adjusted", {
            "stock_id": stock.id, "item_id": stock.item_id, "from": before, "to": new_quantity, "reason": reason,
        })

        return success_response({"stock": cls.serialize(stock)}, "Stock adjusted")

    @classmethod
    def get_low_stock(cls, location: str = StockLocation.BULK_STORE,
                      exclude_item_ids: Iterable[int] = ()) -> Dict[str, Any]:
        location = validate_location(location)
        items = list(Item.objects.filter(is_active=True))
        stocks = stock_entries(location)
        low = find_low_stock_items(catalog_entries(items), stocks, location, exclude_item_ids)
        on_hand_map = on_hand_by_item(stocks, location)

        return success_response({
            "location": location,
            "items": [
                {
                    "item_id": entry.id,
                    "item_name": entry.name,
                    "on_hand": on_hand_map.get(entry.id, 0),
                    "reorder_level": entry.reorder_level_for(location),
                }
                for entry in low
            ],
            "count": len(low),
        })

    @classmethod
    def get_expiring(cls, days: int = None, location: str = None) -> Dict[str, Any]:
        if days is None:
            days = ClinicSettings.load().expiry_warning_days
        today = timezone.localdate()
        queryset = cls.model.objects.select_related("item").filter(
            current_stock_quantity__gt=0,
            expiry_date__gte=today,
            expiry_date__lte=today + timedelta(days=days),
        ).order_by("expiry_date")
        if location:
            queryset = queryset.filter(location=validate_location(location))

        return success_response({
            "days": days,
            "stocks": [cls.serialize(stock) for stock in queryset],
            "count": queryset.count(),
        })

    @classmethod
    def get_expired(cls, location: str = None) -> Dict[str, Any]:
        queryset = cls.model.objects.select_related("item").filter(
            current_stock_quantity__gt=0,
            expiry_date__lt=timezone.localdate(),
        ).order_by("expiry_date")
        if location:
            queryset = queryset.filter(location=validate_location(location))

        return success_response({
            "stocks": [cls.serialize(stock) for stock in queryset],
            "count": queryset.count(),
        })

    @classmethod
    def usage_history(cls, item_id: int, days: int = None) -> List[Dict[str, Any]]:
        """Units dispensed per day over the window, oldest first, zero days included."""
        if days is None:
            days = ClinicSettings.load().usage_history_days
        today = timezone.localdate()
        start = today - timedelta(days=days - 1)

        daily = OrderedDict(((start + timedelta(days=offset)).isoformat(), 0) for offset in range(days))
        rows = (
            StockMovement.objects
            .filter(item_id=item_id,
                    movement_type=StockMovement.MovementType.DISPENSE,
                    created_at__date__gte=start)
            .annotate(day=TruncDate("created_at"))
            .values("day")
            .annotate(total=Sum("quantity"))
        )
        for row in rows:
            key = row["day"].isoformat()
            if key in daily:
                daily[key] = -row["total"]

        return [{"date": day, "quantity": quantity} for day, quantity in daily.items()]

    @classmethod
    def get_movements(cls, item_id: int, page: int = 1, per_page: int = 50,
                      movement_type: str = None) -> Dict[str, Any]:
        queryset = StockMovement.objects.filter(item_id=item_id).select_related("user")
        if movement_type:
            queryset = queryset.filter(movement_type=movement_type)

        movements, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "movements": [cls.serialize_movement(m) for m in movements],
            "pagination": pagination,
        })
