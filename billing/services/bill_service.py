"""
Bill Service - Patient bills for items and clinic services, and their payment
"""
import logging
from datetime import datetime, time, timedelta
from decimal import Decimal
from typing import Dict, Any, List, Optional, Tuple

import pytz
from django.conf import settings
from django.db import transaction
from django.db.models import Q, Sum, Count
from django.utils import timezone

from billing.models import Bill, BillLine, ClinicService, Patient
from main.services.audit_service import AuditService
from stock.models import Item
from stock.services.base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, BusinessRuleError,
    require_decimal, require_int, round_decimal, create_numbered, get_date_range
)
from stock.services.formatting import format_item_name
from stock.services.stock_service import validate_location


logger = logging.getLogger(__name__)


def _choice(choices_class, value, field: str) -> str:
    text = str(value or "").strip().upper().replace("-", "_").replace(" ", "_")
    if text not in choices_class.values:
        raise ValidationError(
            f"Invalid {field}. Must be one of: {', '.join(choices_class.values)}", field
        )
    return text


def settle_payment(method: str, grand_total: Decimal, amount_tendered) -> Tuple[str, Decimal, Decimal]:
    """
    Resolve ``(status, tendered, change)`` for a payment.

    Cash must cover the total and gets change back; invoices stay unpaid;
    mobile money and bank transfers are taken as the exact amount.
    """
    if method == Bill.PaymentMethod.INVOICE:
        return Bill.PaymentStatus.UNPAID, Decimal("0"), Decimal("0")

    if method == Bill.PaymentMethod.CASH:
        tendered = require_decimal(amount_tendered, "amount_tendered")
        if tendered < grand_total:
            raise ValidationError(
                f"Amount tendered ({tendered}) is less than the total ({grand_total})", "amount_tendered"
            )
        return Bill.PaymentStatus.PAID, round_decimal(tendered), round_decimal(tendered - grand_total)

    return Bill.PaymentStatus.PAID, grand_total, Decimal("0")


class BillService(BaseService):
    model = Bill

    # ==================== SERIALIZATION ====================

    @classmethod
    def serialize_line(cls, line: BillLine) -> Dict[str, Any]:
        return {
            "id": line.id,
            "line_type": line.line_type,
            "item_id": line.item_id,
            "service_id": line.service_id,
            "description": line.description,
            "quantity": line.quantity,
            "unit_price": str(line.unit_price),
            "total": str(line.total),
        }

    @classmethod
    def serialize(cls, bill: Bill, include_lines: bool = True) -> Dict[str, Any]:
        data = {
            "id": bill.id,
            "uuid": str(bill.uuid),
            "bill_number": bill.bill_number,
            "patient_id": bill.patient_id,
            "patient_name": bill.patient_name,
            "bill_type": bill.bill_type,
            "bill_type_display": bill.get_bill_type_display(),
            "prescription_number": bill.prescription_number,
            "subtotal": str(bill.subtotal),
            "discount": str(bill.discount),
            "grand_total": str(bill.grand_total),
            "payment_method": bill.payment_method,
            "amount_tendered": str(bill.amount_tendered),
            "change": str(bill.change),
            "transaction_id": bill.transaction_id,
            "payment_status": bill.payment_status,
            "paid_at": bill.paid_at.isoformat() if bill.paid_at else None,
            "dispensing_location": bill.dispensing_location,
            "is_dispensed": bill.is_dispensed,
            "dispensed_at": bill.dispensed_at.isoformat() if bill.dispensed_at else None,
            "created_by": bill.created_by.display_name if bill.created_by else None,
            "created_at": bill.created_at.isoformat(),
        }
        if include_lines:
            data["lines"] = [cls.serialize_line(line) for line in bill.lines.all()]
        return data

    # ==================== LIST & GET ====================

    @classmethod
    def list(cls,
             page: int = 1,
             per_page: int = 20,
             payment_status: str = None,
             bill_type: str = None,
             search: str = None,
             date_from=None,
             date_to=None) -> Dict[str, Any]:
        queryset = cls.model.objects.select_related("created_by")

        if payment_status:
            queryset = queryset.filter(payment_status=payment_status.upper())
        if bill_type:
            queryset = queryset.filter(bill_type=bill_type.upper())
        if date_from:
            queryset = queryset.filter(created_at__date__gte=date_from)
        if date_to:
            queryset = queryset.filter(created_at__date__lte=date_to)
        if search:
            queryset = queryset.filter(
                Q(bill_number__icontains=search) |
                Q(patient_name__icontains=search) |
                Q(prescription_number__icontains=search)
            )

        bills, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "bills": [cls.serialize(bill, include_lines=False) for bill in bills],
            "pagination": pagination,
        })

    @classmethod
    def get(cls, bill_id: int) -> Dict[str, Any]:
        return success_response({"bill": cls.serialize(cls.get_or_404(bill_id))})

    # ==================== CREATE ====================

    @classmethod
    def _build_lines(cls, items: Optional[List[Dict[str, Any]]],
                     services: Optional[List[Any]]) -> List[BillLine]:
        if items is not None and not isinstance(items, list):
            raise ValidationError("items must be a list", "items")
        if services is not None and not isinstance(services, list):
            raise ValidationError("services must be a list", "services")

        quantities: Dict[int, int] = {}
        for entry in items or []:
            if not isinstance(entry, dict):
                raise ValidationError("Each item must be an object with item_id and quantity", "items")
            item_id = require_int(entry.get("item_id"), "item_id", 1)
            quantity = require_int(entry.get("quantity", 1), "quantity", 1)
            quantities[item_id] = quantities.get(item_id, 0) + quantity

        service_ids = []
        for raw in services or []:
            service_id = require_int(raw.get("service_id") if isinstance(raw, dict) else raw, "service_id", 1)
            if service_id not in service_ids:
                service_ids.append(service_id)

        if not quantities and not service_ids:
            raise ValidationError("A bill needs at least one item or service", "items")

        found_items = Item.objects.in_bulk(list(quantities))
        found_services = ClinicService.objects.in_bulk(service_ids)

        lines = []
        for item_id, quantity in quantities.items():
            item = found_items.get(item_id)
            if item is None or not item.is_active:
                raise NotFoundError("Item", item_id)
            lines.append(BillLine(
                line_type=BillLine.LineType.ITEM,
                item=item,
                description=format_item_name(item),
                quantity=quantity,
                unit_price=item.selling_price,
                total=round_decimal(item.selling_price * quantity),
            ))
        for service_id in service_ids:
            service = found_services.get(service_id)
            if service is None or not service.is_active:
                raise NotFoundError("Service", service_id)
            lines.append(BillLine(
                line_type=BillLine.LineType.SERVICE,
                service=service,
                description=service.name,
                quantity=1,
                unit_price=service.fee,
                total=round_decimal(service.fee),
            ))
        return lines

    @classmethod
    @transaction.atomic
    def create(cls,
               patient_name: str = "",
               patient_id: int = None,
               bill_type: str = Bill.BillType.WALK_IN,
               prescription_number: str = "",
               items: List[Dict[str, Any]] = None,
               services: List[Any] = None,
               discount: Any = 0,
               payment_method: str = Bill.PaymentMethod.CASH,
               amount_tendered: Any = None,
               transaction_id: str = "",
               dispensing_location: str = "DISPENSARY",
               user=None) -> Dict[str, Any]:
        patient = None
        if patient_id:
            try:
                patient = Patient.objects.get(id=patient_id)
            except (Patient.DoesNotExist, ValueError, TypeError):
                raise NotFoundError("Patient", patient_id)
            patient_name = patient_name or patient.full_name

        patient_name = (patient_name or "").strip()
        if not patient_name:
            raise ValidationError("Patient name is required", "patient_name")

        bill_type = _choice(Bill.BillType, bill_type, "bill_type")
        prescription_number = (prescription_number or "").strip()
        if bill_type == Bill.BillType.OPD and not prescription_number:
            raise ValidationError("Prescription number is required for OPD bills", "prescription_number")

        payment_method = _choice(Bill.PaymentMethod, payment_method, "payment_method")
        dispensing_location = validate_location(dispensing_location, "dispensing_location")

        lines = cls._build_lines(items, services)
        subtotal = sum((line.total for line in lines), Decimal("0"))
        discount = require_decimal(discount or 0, "discount")
        if discount > subtotal:
            raise ValidationError("Discount cannot exceed the subtotal", "discount")
        grand_total = round_decimal(subtotal - discount)

        status, tendered, change = settle_payment(payment_method, grand_total, amount_tendered)

        bill = create_numbered(
            cls.model, "BILL", "bill_number",
            patient=patient,
            patient_name=patient_name,
            bill_type=bill_type,
            prescription_number=prescription_number,
            subtotal=subtotal,
            discount=round_decimal(discount),
            grand_total=grand_total,
            payment_method=payment_method,
            amount_tendered=tendered,
            change=change,
            transaction_id=(transaction_id or "").strip(),
            payment_status=status,
            paid_at=timezone.now() if status == Bill.PaymentStatus.PAID else None,
            dispensing_location=dispensing_location,
            created_by=user,
        )
        for line in lines:
            line.bill = bill
        BillLine.objects.bulk_create(lines)

        AuditService.log(user, "bill.created", {
            "bill_number": bill.bill_number, "grand_total": str(grand_total), "payment_status": status,
        })
        logger.info("Bill %s created for %s (%s)", bill.bill_number, grand_total, status)

        return success_response({
            "id": bill.id,
            "bill": cls.serialize(bill)
        }, f"Bill {bill.bill_number} created")

    # ==================== PAYMENT ====================

    @classmethod
    @transaction.atomic
    def mark_paid(cls, bill_id: int, payment_method: str = Bill.PaymentMethod.CASH,
                  amount_tendered: Any = None, transaction_id: str = "", user=None) -> Dict[str, Any]:
        try:
            bill = cls.model.objects.select_for_update().get(id=bill_id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Bill", bill_id)

        if bill.payment_status == Bill.PaymentStatus.PAID:
            raise BusinessRuleError("This bill is already paid", "bill_already_paid")

        payment_method = _choice(Bill.PaymentMethod, payment_method, "payment_method")
        if payment_method == Bill.PaymentMethod.INVOICE:
            raise ValidationError("Choose a settling payment method, not invoice", "payment_method")

        status, tendered, change = settle_payment(payment_method, bill.grand_total, amount_tendered)

        bill.payment_method = payment_method
        bill.payment_status = status
        bill.amount_tendered = tendered
        bill.change = change
        bill.transaction_id = (transaction_id or "").strip()
        bill.paid_at = timezone.now()
        bill.save()

        AuditService.log(user, "bill.paid", {"bill_number": bill.bill_number, "method": payment_method})

        return success_response({"bill": cls.serialize(bill)}, f"Bill {bill.bill_number} marked as paid")

    # ==================== STATS ====================

    @staticmethod
    def period_bounds(period: str) -> Tuple[datetime, datetime]:
        """Start and end instants of a named period in the clinic's time zone."""
        clinic_tz = pytz.timezone(settings.CLINIC_TIME_ZONE)
        start, end = get_date_range(period)
        return (
            clinic_tz.localize(datetime.combine(start, time.min)),
            clinic_tz.localize(datetime.combine(end + timedelta(days=1), time.min)),
        )

    @classmethod
    def get_stats(cls, period: str = "today") -> Dict[str, Any]:
        start, end = cls.period_bounds(period)
        bills = cls.model.objects.filter(created_at__gte=start, created_at__lt=end)

        paid = bills.filter(payment_status=Bill.PaymentStatus.PAID)
        unpaid = bills.filter(payment_status=Bill.PaymentStatus.UNPAID)

        by_type = {bill_type: 0 for bill_type in Bill.BillType.values}
        for row in bills.values("bill_type").annotate(count=Count("id")):
            by_type[row["bill_type"]] = row["count"]

        by_method = {
            row["payment_method"]: str(row["total"] or 0)
            for row in paid.values("payment_method").annotate(total=Sum("grand_total"))
        }

        return success_response({
            "period": period,
            "start": start.isoformat(),
            "end": end.isoformat(),
            "bill_count": bills.count(),
            "revenue": str(paid.aggregate(total=Sum("grand_total"))["total"] or Decimal("0")),
            "outstanding": str(unpaid.aggregate(total=Sum("grand_total"))["total"] or Decimal("0")),
            "outstanding_count": unpaid.count(),
            "by_type": by_type,
            "revenue_by_method": by_method,
        })
