"""
Stock Services - Inventory, procurement and stock control business logic

Usage:
    from stock.services import ProcurementSessionService

    session = ProcurementSessionService.create(location="BULK_STORE", user=user)
    ProcurementSessionService.set_quotes(session["id"], {item_id: {vendor_id: "0.08"}})
    ProcurementSessionService.finalize(session["id"], user=user)
"""

# Base utilities
from stock.services.base_service import (
    ServiceError,
    ValidationError,
    NotFoundError,
    BusinessRuleError,
    InsufficientStockError,
    PermissionDeniedError,
    ExternalServiceError,
    AIResponseError,
    success_response,
    paginate_queryset,
    to_decimal,
    round_decimal,
    generate_number,
    create_numbered,
    get_date_range,
    BaseService,
)
from .formatting import format_item_name

# Item master & stock
from .item_service import ItemService
from .stock_service import StockService
from .vendor_service import VendorService

# Procurement
from .procurement_service import ProcurementSessionService
from .lpo_service import LocalPurchaseOrderService

# Stock control
from .internal_order_service import InternalOrderService
from .count_service import StockTakeService

# Import, AI & reports
from .import_service import ItemImportService
from .ai_service import LpoSuggestionService, StockPredictionService
from .report_service import StockReportService


__all__ = [
    # Base
    "ServiceError",
    "ValidationError",
    "NotFoundError",
    "BusinessRuleError",
    "InsufficientStockError",
    "PermissionDeniedError",
    "ExternalServiceError",
    "AIResponseError",
    "success_response",
    "paginate_queryset",
    "to_decimal",
    "round_decimal",
    "generate_number",
    "create_numbered",
    "get_date_range",
    "BaseService",
    "format_item_name",

    # Item master & stock
    "ItemService",
    "StockService",
    "VendorService",

    # Procurement
    "ProcurementSessionService",
    "LocalPurchaseOrderService",

    # Stock control
    "InternalOrderService",
    "StockTakeService",

    # Import, AI & reports
    "ItemImportService",
    "LpoSuggestionService",
    "StockPredictionService",
    "StockReportService",
]
