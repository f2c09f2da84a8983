import logging
from typing import Dict, Any

from django.db import transaction
from django.utils import timezone

from billing.models import Bill, BillLine
from main.services.audit_service import AuditService
from stock.models import StockMovement
from stock.services.base_service import (
    success_response, paginate_queryset, NotFoundError, BusinessRuleError
)
from stock.services.stock_service import ensure_available, deduct_fefo
from .bill_service import BillService


logger = logging.getLogger(__name__)


class DispenseService:

    @classmethod
    def pending(cls, page: int = 1, per_page: int = 20, location: str = None) -> Dict[str, Any]:
        """Paid bills still waiting at the dispensing counter, oldest first."""
        queryset = Bill.objects.filter(
            payment_status=Bill.PaymentStatus.PAID,
            is_dispensed=False,
        ).order_by("created_at", "id")
        if location:
            queryset = queryset.filter(dispensing_location=location.upper())

        bills, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "bills": [BillService.serialize(bill) for bill in bills],
            "pagination": pagination,
        })

    @classmethod
    @transaction.atomic
    def dispense(cls, bill_id: int, user=None) -> Dict[str, Any]:
        try:
            bill = Bill.objects.select_for_update().get(id=bill_id)
        except (Bill.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Bill", bill_id)

        if bill.payment_status != Bill.PaymentStatus.PAID:
            raise BusinessRuleError("Only paid bills can be dispensed", "bill_unpaid")
        if bill.is_dispensed:
            raise BusinessRuleError("This bill has already been dispensed", "bill_already_dispensed")

        lines = list(bill.lines.filter(line_type=BillLine.LineType.ITEM))
        requirements: Dict[int, int] = {}
        for line in lines:
            requirements[line.item_id] = requirements.get(line.item_id, 0) + line.quantity
        ensure_available(requirements, bill.dispensing_location)

        for item_id, quantity in requirements.items():
            deduct_fefo(
                item_id,
                bill.dispensing_location,
                quantity,
                StockMovement.MovementType.DISPENSE,
                reference=bill.bill_number,
                user=user,
            )

        bill.is_dispensed = True
        bill.dispensed_at = timezone.now()
        bill.dispensed_by = user
        bill.save(update_fields=["is_dispensed", "dispensed_at", "dispensed_by", "updated_at"])

        AuditService.log(user, "bill.dispensed", {
            "bill_number": bill.bill_number, "location": bill.dispensing_location, "items": len(requirements),
        })
        logger.info("Bill %s dispensed from %s", bill.bill_number, bill.dispensing_location)

        return success_response({"bill": BillService.serialize(bill)}, f"Bill {bill.bill_number} dispensed")
