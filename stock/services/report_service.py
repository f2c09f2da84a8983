from datetime import timedelta
from decimal import Decimal
from typing import Dict, Any

import pytz
from django.conf import settings
from django.db.models import Count, F, Sum, DecimalField, ExpressionWrapper
from django.utils import timezone

from stock.models import Item, Stock, InternalOrder, LocalPurchaseOrder, StockLocation
from main.models import ClinicSettings
from .base_service import success_response
from .procurement import find_low_stock_items
from .stock_service import catalog_entries, stock_entries, validate_location


def clinic_today():
    return timezone.now().astimezone(pytz.timezone(settings.CLINIC_TIME_ZONE)).date()


class StockReportService:

    @classmethod
    def dashboard(cls, location: str = None) -> Dict[str, Any]:
        locations = [validate_location(location)] if location else list(StockLocation.values)
        today = clinic_today()
        warning_days = ClinicSettings.load().expiry_warning_days

        stocks = Stock.objects.filter(location__in=locations, current_stock_quantity__gt=0)
        value = stocks.aggregate(
            total=Sum(ExpressionWrapper(
                F("current_stock_quantity") * F("item__unit_cost"),
                output_field=DecimalField(max_digits=20, decimal_places=4),
            ))
        )["total"] or Decimal("0")

        catalog = catalog_entries(Item.objects.filter(is_active=True))
        low_stock = {
            loc: len(find_low_stock_items(catalog, stock_entries(loc), loc))
            for loc in locations
        }

        lpo_counts = {status: 0 for status in LocalPurchaseOrder.Status.values}
        for row in LocalPurchaseOrder.objects.values("status").annotate(count=Count("id")):
            lpo_counts[row["status"]] = row["count"]

        return success_response({
            "date": today.isoformat(),
            "locations": locations,
            "item_count": len(catalog),
            "stock_value": str(value),
            "low_stock": low_stock,
            "low_stock_count": sum(low_stock.values()),
            "expiring_soon_count": stocks.filter(
                expiry_date__gte=today,
                expiry_date__lte=today + timedelta(days=warning_days),
            ).count(),
            "expired_count": stocks.filter(expiry_date__lt=today).count(),
            "pending_internal_orders": InternalOrder.objects.filter(
                status__in=[InternalOrder.Status.PENDING, InternalOrder.Status.APPROVED]
            ).count(),
            "lpo_counts": lpo_counts,
        })
