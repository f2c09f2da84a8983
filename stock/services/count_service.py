"""
Stock Take Service - Physical counts reconciled against recorded stock
"""
import logging
from decimal import Decimal
from typing import Dict, Any, List

from django.db import transaction
from django.utils import timezone

from stock.models import Stock, StockMovement, StockTakeItem, StockTakeSession
from main.services.audit_service import AuditService
from .base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, BusinessRuleError, require_int, create_numbered
)
from .formatting import format_item_name
from .stock_service import validate_location, record_movement


logger = logging.getLogger(__name__)

Status = StockTakeSession.Status


class StockTakeService(BaseService):
    model = StockTakeSession

    # ==================== SERIALIZATION ====================

    @classmethod
    def serialize_line(cls, line: StockTakeItem) -> Dict[str, Any]:
        return {
            "id": line.id,
            "stock_id": line.stock_id,
            "item_id": line.item_id,
            "item_name": line.item_name,
            "batch_id": line.batch_id,
            "expiry_date": line.expiry_date.isoformat() if line.expiry_date else None,
            "system_quantity": line.system_quantity,
            "physical_quantity": line.physical_quantity,
            "variance": line.variance,
        }

    @classmethod
    def summarize(cls, lines: List[StockTakeItem]) -> Dict[str, Any]:
        varied = [line for line in lines if line.variance != 0]
        value = sum(
            (Decimal(line.variance) * line.item.unit_cost for line in varied),
            Decimal("0"),
        )
        return {
            "total_lines": len(lines),
            "lines_with_variance": len(varied),
            "net_variance": sum(line.variance for line in lines),
            "variance_value": str(value),
        }

    @classmethod
    def serialize(cls, session: StockTakeSession, include_items: bool = True) -> Dict[str, Any]:
        data = {
            "id": session.id,
            "uuid": str(session.uuid),
            "session_number": session.session_number,
            "location": session.location,
            "location_display": session.get_location_display(),
            "status": session.status,
            "status_display": session.get_status_display(),
            "notes": session.notes,
            "started_by": session.started_by.display_name if session.started_by else None,
            "completed_by": session.completed_by.display_name if session.completed_by else None,
            "started_at": session.started_at.isoformat(),
            "completed_at": session.completed_at.isoformat() if session.completed_at else None,
        }

        if include_items:
            lines = list(session.items.select_related("item"))
            data["items"] = [cls.serialize_line(line) for line in lines]
            data["summary"] = cls.summarize(lines)

        return data

    # ==================== LIST & GET ====================

    @classmethod
    def list(cls, page: int = 1, per_page: int = 20, location: str = None,
             status: str = None) -> Dict[str, Any]:
        queryset = cls.model.objects.select_related("started_by", "completed_by")
        if location:
            queryset = queryset.filter(location=validate_location(location))
        if status:
            queryset = queryset.filter(status=status.upper())

        sessions, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "sessions": [cls.serialize(session, include_items=False) for session in sessions],
            "pagination": pagination,
        })

    @classmethod
    def get(cls, session_id: int) -> Dict[str, Any]:
        session = cls.get_or_404(session_id)
        return success_response({"session": cls.serialize(session)})

    # ==================== WORKFLOW ====================

    @classmethod
    def _lock(cls, session_id: int) -> StockTakeSession:
        try:
            return cls.model.objects.select_for_update().get(id=session_id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Stock take session", session_id)

    @classmethod
    def _require_ongoing(cls, session: StockTakeSession) -> None:
        if session.status != Status.ONGOING:
            raise BusinessRuleError("This stock take is already completed", "stock_take_completed")

    @classmethod
    @transaction.atomic
    def start(cls, location: str, notes: str = "", user=None) -> Dict[str, Any]:
        location = validate_location(location)

        if cls.model.objects.filter(location=location, status=Status.ONGOING).exists():
            raise BusinessRuleError(
                "A stock take is already in progress for this location", "stock_take_in_progress"
            )

        session = create_numbered(
            cls.model, "ST", "session_number",
            location=location,
            notes=notes or "",
            started_by=user,
        )

        stocks = Stock.objects.filter(location=location).select_related("item")
        StockTakeItem.objects.bulk_create([
            StockTakeItem(
                session=session,
                stock=stock,
                item=stock.item,
                item_name=format_item_name(stock.item),
                batch_id=stock.batch_id,
                expiry_date=stock.expiry_date,
                system_quantity=stock.current_stock_quantity,
                physical_quantity=stock.current_stock_quantity,
                variance=0,
            )
            for stock in stocks
        ])

        AuditService.log(user, "stock_take.started", {
            "session_number": session.session_number, "location": location,
        })
        logger.info("Stock take %s started at %s", session.session_number, location)

        return success_response({
            "id": session.id,
            "session": cls.serialize(session)
        }, "Stock take started")

    @classmethod
    @transaction.atomic
    def record_counts(cls, session_id: int, counts: List[Dict[str, Any]], user=None) -> Dict[str, Any]:
        session = cls._lock(session_id)
        cls._require_ongoing(session)

        if not isinstance(counts, list) or not counts:
            raise ValidationError("counts must be a non-empty list", "counts")

        lines = {line.id: line for line in session.items.all()}
        for entry in counts:
            if not isinstance(entry, dict):
                raise ValidationError("Each count must be an object with id and physical_quantity", "counts")
            line_id = require_int(entry.get("id"), "id", 1)
            line = lines.get(line_id)
            if line is None:
                raise NotFoundError("Stock take line", line_id)
            line.physical_quantity = require_int(entry.get("physical_quantity"), "physical_quantity", 0)
            line.variance = line.physical_quantity - line.system_quantity
            line.save(update_fields=["physical_quantity", "variance"])

        return success_response({"session": cls.serialize(session)}, "Counts recorded")

    @classmethod
    @transaction.atomic
    def finalize(cls, session_id: int, user=None) -> Dict[str, Any]:
        session = cls._lock(session_id)
        cls._require_ongoing(session)

        adjusted = 0
        for line in session.items.exclude(variance=0).select_related("item"):
            stock = None
            if line.stock_id:
                stock = Stock.objects.select_for_update().filter(id=line.stock_id).first()
            if stock is None:
                stock, _ = Stock.objects.select_for_update().get_or_create(
                    item_id=line.item_id,
                    batch_id=line.batch_id,
                    location=session.location,
                    defaults={"expiry_date": line.expiry_date, "current_stock_quantity": 0},
                )
                line.stock = stock
                line.save(update_fields=["stock"])

            before = stock.current_stock_quantity
            stock.current_stock_quantity = line.physical_quantity
            stock.save(update_fields=["current_stock_quantity", "updated_at"])
            record_movement(stock, StockMovement.MovementType.COUNT_ADJUSTMENT,
                            line.physical_quantity - before, before,
                            reference=session.session_number, user=user)
            adjusted += 1

        session.status = Status.COMPLETED
        session.completed_by = user
        session.completed_at = timezone.now()
        session.save(update_fields=["status", "completed_by", "completed_at"])

        AuditService.log(user, "stock_take.finalized", {
            "session_number": session.session_number, "adjusted_lines": adjusted,
        })
        logger.info("Stock take %s finalized, %d lines adjusted", session.session_number, adjusted)

        return success_response({
            "session": cls.serialize(session),
            "adjusted_lines": adjusted,
        }, "Stock take finalized")
