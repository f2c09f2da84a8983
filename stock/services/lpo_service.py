import logging
from datetime import date
from typing import Dict, Any, List

from django.db import transaction
from django.db.models import Q, Sum, Count
from django.utils import timezone

from stock.models import LocalPurchaseOrder, LocalPurchaseOrderItem, ProcurementSession, Vendor
from main.services.audit_service import AuditService
from .base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, BusinessRuleError, create_numbered
)
from .procurement import DraftLpo


logger = logging.getLogger(__name__)

Status = LocalPurchaseOrder.Status


class LocalPurchaseOrderService(BaseService):
    model = LocalPurchaseOrder

    # Draft -> Sent -> Completed, or Draft -> Rejected
    TRANSITIONS = {
        Status.DRAFT: {Status.SENT, Status.REJECTED},
        Status.SENT: {Status.COMPLETED},
        Status.COMPLETED: set(),
        Status.REJECTED: set(),
    }

    ACTIONS = {
        "send": Status.SENT,
        "complete": Status.COMPLETED,
        "reject": Status.REJECTED,
    }

    TIMESTAMP_FIELDS = {
        Status.SENT: "sent_at",
        Status.COMPLETED: "completed_at",
        Status.REJECTED: "rejected_at",
    }

    @classmethod
    def allowed_actions(cls, lpo: LocalPurchaseOrder) -> List[str]:
        targets = cls.TRANSITIONS.get(lpo.status, set())
        return [action for action, status in cls.ACTIONS.items() if status in targets]

    @classmethod
    def serialize(cls, lpo: LocalPurchaseOrder, include_items: bool = True) -> Dict[str, Any]:
        data = {
            "id": lpo.id,
            "uuid": str(lpo.uuid),
            "lpo_number": lpo.lpo_number,
            "vendor_id": lpo.vendor_id,
            "vendor_name": lpo.vendor_name,
            "procurement_session_id": lpo.procurement_session_id,
            "status": lpo.status,
            "status_display": lpo.get_status_display(),
            "allowed_actions": cls.allowed_actions(lpo),
            "order_date": lpo.order_date.isoformat(),
            "grand_total": str(lpo.grand_total),
            "notes": lpo.notes,
            "created_by": lpo.created_by.display_name if lpo.created_by else None,
            "sent_at": lpo.sent_at.isoformat() if lpo.sent_at else None,
            "completed_at": lpo.completed_at.isoformat() if lpo.completed_at else None,
            "rejected_at": lpo.rejected_at.isoformat() if lpo.rejected_at else None,
            "created_at": lpo.created_at.isoformat(),
        }

        if include_items:
            data["items"] = [
                {
                    "id": line.id,
                    "item_id": line.item_id,
                    "item_name": line.item_name,
                    "quantity": line.quantity,
                    "unit_price": str(line.unit_price),
                    "total": str(line.total),
                }
                for line in lpo.items.all()
            ]

        return data

    @classmethod
    def list(cls,
             page: int = 1,
             per_page: int = 20,
             status: str = None,
             vendor_id: int = None,
             date_from: date = None,
             date_to: date = None,
             search: str = None) -> Dict[str, Any]:
        queryset = cls.model.objects.select_related("created_by").prefetch_related("items")

        if status:
            queryset = queryset.filter(status=status.upper())
        if vendor_id:
            queryset = queryset.filter(vendor_id=vendor_id)
        if date_from:
            queryset = queryset.filter(order_date__gte=date_from)
        if date_to:
            queryset = queryset.filter(order_date__lte=date_to)
        if search:
            queryset = queryset.filter(
                Q(lpo_number__icontains=search) |
                Q(vendor_name__icontains=search)
            )

        orders, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "purchase_orders": [cls.serialize(lpo, include_items=False) for lpo in orders],
            "pagination": pagination
        })

    @classmethod
    def get(cls, lpo_id: int) -> Dict[str, Any]:
        lpo = cls.get_or_404(lpo_id)
        return success_response({"purchase_order": cls.serialize(lpo)})

    @classmethod
    def create_from_draft(cls, draft: DraftLpo, session: ProcurementSession = None,
                          user=None) -> LocalPurchaseOrder:
        """Persist one draft grouping. Runs inside the caller's transaction."""
        try:
            vendor = Vendor.objects.get(id=draft.vendor_id)
        except Vendor.DoesNotExist:
            raise NotFoundError("Vendor", draft.vendor_id)

        lpo = create_numbered(
            cls.model, "LPO", "lpo_number",
            vendor=vendor,
            vendor_name=draft.vendor_name,
            procurement_session=session,
            status=Status.DRAFT,
            order_date=timezone.localdate(),
            grand_total=draft.grand_total,
            created_by=user,
        )

        LocalPurchaseOrderItem.objects.bulk_create([
            LocalPurchaseOrderItem(
                purchase_order=lpo,
                item_id=line.item_id,
                item_name=line.item_name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                total=line.total,
            )
            for line in draft.items
        ])

        return lpo

    @classmethod
    @transaction.atomic
    def transition(cls, lpo_id: int, action: str, user=None, notes: str = None) -> Dict[str, Any]:
        target = cls.ACTIONS.get(action)
        if target is None:
            raise ValidationError(
                f"Unknown action: {action}. Must be one of: {', '.join(cls.ACTIONS)}", "action"
            )

        try:
            lpo = cls.model.objects.select_for_update().get(id=lpo_id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Local purchase order", lpo_id)

        if target not in cls.TRANSITIONS[lpo.status]:
            logger.warning("Rejected LPO transition %s: %s -> %s", lpo.lpo_number, lpo.status, target)
            raise BusinessRuleError(
                f"Cannot {action} a {lpo.get_status_display().lower()} purchase order",
                "lpo_status_transition",
            )

        previous = lpo.status
        lpo.status = target
        setattr(lpo, cls.TIMESTAMP_FIELDS[target], timezone.now())
        if notes:
            lpo.notes = notes
        lpo.save()

        AuditService.log(user, f"lpo.{target.lower()}", {
            "lpo_id": lpo.id, "lpo_number": lpo.lpo_number, "from": previous, "to": target,
        })
        logger.info("LPO %s moved %s -> %s", lpo.lpo_number, previous, target)

        return success_response({
            "purchase_order": cls.serialize(lpo)
        }, f"Purchase order marked as {lpo.get_status_display().lower()}")

    @classmethod
    @transaction.atomic
    def delete(cls, lpo_id: int, user=None) -> Dict[str, Any]:
        lpo = cls.get_or_404(lpo_id)

        if lpo.status != Status.DRAFT:
            raise BusinessRuleError("Only draft purchase orders can be deleted", "lpo_delete_draft_only")

        number = lpo.lpo_number
        lpo.delete()

        AuditService.log(user, "lpo.deleted", {"lpo_number": number})

        return success_response(message=f"Purchase order {number} deleted")

    @classmethod
    def get_stats(cls) -> Dict[str, Any]:
        rows = cls.model.objects.values("status").annotate(count=Count("id"), value=Sum("grand_total"))
        by_status = {
            status: {"count": 0, "value": "0"} for status in Status.values
        }
        for row in rows:
            by_status[row["status"]] = {"count": row["count"], "value": str(row["value"] or 0)}

        return success_response({"by_status": by_status})
