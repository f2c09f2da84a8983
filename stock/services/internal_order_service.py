"""
Internal Order Service - Dispensary requests for stock from the bulk store
"""
import logging
from typing import Dict, Any, List

from django.db import transaction
from django.utils import timezone

from stock.models import InternalOrder, InternalOrderItem, Stock, StockMovement, StockLocation
from main.services.audit_service import AuditService
from .base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, BusinessRuleError, require_int, create_numbered
)
from .formatting import format_item_name
from .item_service import ItemService
from .stock_service import ensure_available, deduct_fefo, record_movement


logger = logging.getLogger(__name__)

Status = InternalOrder.Status


class InternalOrderService(BaseService):
    model = InternalOrder

    TRANSITIONS = {
        Status.PENDING: {Status.APPROVED, Status.ISSUED, Status.REJECTED},
        Status.APPROVED: {Status.ISSUED, Status.REJECTED},
        Status.ISSUED: set(),
        Status.REJECTED: set(),
    }

    # ==================== SERIALIZATION ====================

    @classmethod
    def serialize(cls, order: InternalOrder, include_items: bool = True) -> Dict[str, Any]:
        data = {
            "id": order.id,
            "uuid": str(order.uuid),
            "order_number": order.order_number,
            "requesting_location": order.requesting_location,
            "supplying_location": order.supplying_location,
            "status": order.status,
            "status_display": order.get_status_display(),
            "notes": order.notes,
            "rejection_reason": order.rejection_reason,
            "requested_by": order.requested_by.display_name if order.requested_by else None,
            "processed_by": order.processed_by.display_name if order.processed_by else None,
            "issued_at": order.issued_at.isoformat() if order.issued_at else None,
            "created_at": order.created_at.isoformat(),
        }

        if include_items:
            data["items"] = [
                {
                    "id": line.id,
                    "item_id": line.item_id,
                    "item_name": line.item_name,
                    "quantity": line.quantity,
                }
                for line in order.items.all()
            ]

        return data

    # ==================== LIST & GET ====================

    @classmethod
    def list(cls, page: int = 1, per_page: int = 20, status: str = None) -> Dict[str, Any]:
        queryset = cls.model.objects.select_related("requested_by", "processed_by")
        if status:
            queryset = queryset.filter(status=status.upper())

        orders, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "orders": [cls.serialize(order, include_items=False) for order in orders],
            "pagination": pagination,
        })

    @classmethod
    def get(cls, order_id: int) -> Dict[str, Any]:
        order = cls.get_or_404(order_id)
        return success_response({"order": cls.serialize(order)})

    # ==================== CREATE ====================

    @classmethod
    def _clean_lines(cls, items: List[Dict[str, Any]]) -> Dict[int, int]:
        if not isinstance(items, list) or not items:
            raise ValidationError("At least one item is required", "items")

        requested: Dict[int, int] = {}
        for line in items:
            if not isinstance(line, dict):
                raise ValidationError("Each item must be an object with item_id and quantity", "items")
            item_id = require_int(line.get("item_id"), "item_id", 1)
            quantity = require_int(line.get("quantity"), "quantity", 1)
            requested[item_id] = requested.get(item_id, 0) + quantity
        return requested

    @classmethod
    @transaction.atomic
    def create(cls, items: List[Dict[str, Any]], notes: str = "", user=None) -> Dict[str, Any]:
        requested = cls._clean_lines(items)
        catalog = ItemService.get_many(requested)

        order = create_numbered(
            cls.model, "IO", "order_number",
            notes=notes or "",
            requested_by=user,
        )
        InternalOrderItem.objects.bulk_create([
            InternalOrderItem(
                order=order,
                item_id=item_id,
                item_name=format_item_name(catalog[item_id]),
                quantity=quantity,
            )
            for item_id, quantity in requested.items()
        ])

        AuditService.log(user, "internal_order.created", {
            "order_id": order.id, "order_number": order.order_number, "lines": len(requested),
        })
        logger.info("Internal order %s requested with %d lines", order.order_number, len(requested))

        return success_response({
            "id": order.id,
            "order": cls.serialize(order)
        }, "Internal order created")

    # ==================== WORKFLOW ====================

    @classmethod
    def _lock(cls, order_id: int) -> InternalOrder:
        try:
            return cls.model.objects.select_for_update().get(id=order_id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Internal order", order_id)

    @classmethod
    def _check_transition(cls, order: InternalOrder, target: str) -> None:
        if target not in cls.TRANSITIONS[order.status]:
            raise BusinessRuleError(
                f"Cannot move a {order.get_status_display().lower()} order to {target.lower()}",
                "internal_order_status_transition",
            )

    @classmethod
    @transaction.atomic
    def approve(cls, order_id: int, user=None) -> Dict[str, Any]:
        order = cls._lock(order_id)
        cls._check_transition(order, Status.APPROVED)

        order.status = Status.APPROVED
        order.processed_by = user
        order.save(update_fields=["status", "processed_by", "updated_at"])

        AuditService.log(user, "internal_order.approved", {"order_number": order.order_number})

        return success_response({"order": cls.serialize(order)}, "Internal order approved")

    @classmethod
    @transaction.atomic
    def reject(cls, order_id: int, reason: str = "", user=None) -> Dict[str, Any]:
        order = cls._lock(order_id)
        cls._check_transition(order, Status.REJECTED)

        if not (reason or "").strip():
            raise ValidationError("A rejection reason is required", "reason")

        order.status = Status.REJECTED
        order.rejection_reason = reason.strip()
        order.processed_by = user
        order.save(update_fields=["status", "rejection_reason", "processed_by", "updated_at"])

        AuditService.log(user, "internal_order.rejected", {
            "order_number": order.order_number, "reason": order.rejection_reason,
        })

        return success_response({"order": cls.serialize(order)}, "Internal order rejected")

    @classmethod
    @transaction.atomic
    def issue(cls, order_id: int, user=None) -> Dict[str, Any]:
        """
        Move the requested quantities from the bulk store to the dispensary.

        Bulk store batches are drawn first-expiry-first-out and each drawn batch
        lands in the dispensary under the same batch id and expiry date. Nothing
        moves unless every line can be filled.
        """
        order = cls._lock(order_id)
        cls._check_transition(order, Status.ISSUED)

        lines = list(order.items.all())
        requirements: Dict[int, int] = {}
        for line in lines:
            requirements[line.item_id] = requirements.get(line.item_id, 0) + line.quantity
        ensure_available(requirements, order.supplying_location)

        for line in lines:
            drawn = deduct_fefo(
                line.item_id,
                order.supplying_location,
                line.quantity,
                StockMovement.MovementType.TRANSFER_OUT,
                reference=order.order_number,
                user=user,
            )
            for source, quantity in drawn:
                target, _ = Stock.objects.select_for_update().get_or_create(
                    item_id=source.item_id,
                    batch_id=source.batch_id,
                    location=order.requesting_location,
                    defaults={"expiry_date": source.expiry_date, "current_stock_quantity": 0},
                )
                before = target.current_stock_quantity
                target.current_stock_quantity = before + quantity
                target.save(update_fields=["current_stock_quantity", "updated_at"])
                record_movement(target, StockMovement.MovementType.TRANSFER_IN, quantity, before,
                                reference=order.order_number, user=user)

        order.status = Status.ISSUED
        order.processed_by = user
        order.issued_at = timezone.now()
        order.save(update_fields=["status", "processed_by", "issued_at", "updated_at"])

        AuditService.log(user, "internal_order.issued", {
            "order_number": order.order_number,
            "from": order.supplying_location,
            "to": order.requesting_location,
        })
        logger.info("Internal order %s issued to %s", order.order_number,
                    StockLocation(order.requesting_location).label)

        return success_response({"order": cls.serialize(order)}, "Stock issued to dispensary")
