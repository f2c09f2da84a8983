import logging

from django.http import JsonResponse
from django.utils.dateparse import parse_date
from django.utils.decorators import method_decorator
from django.views import View
from django.views.decorators.csrf import csrf_exempt

from main.helpers.request import parse_json_body
from main.helpers.require_login import authenticate_request
from main.helpers.response import APIResponse
from main.models import User
from stock.services import (
    ServiceError, ValidationError, NotFoundError, BusinessRuleError, InsufficientStockError,
    PermissionDeniedError, ExternalServiceError, AIResponseError,
    ItemService, StockService, VendorService,
    ProcurementSessionService, LocalPurchaseOrderService,
    InternalOrderService, StockTakeService,
    ItemImportService, StockReportService,
)

logger = logging.getLogger(__name__)

Role = User.RoleChoices


def error_response(message: str, code: str = "error", status: int = 400, details: dict = None):
    data = {"success": False, "error": {"code": code, "message": message}}
    if details:
        data["error"]["details"] = details
    return JsonResponse(data, status=status)


def handle_service_error(e: Exception):
    if isinstance(e, ValidationError):
        return error_response(e.message, "validation_error", 400, {"field": e.field, **e.details})
    elif isinstance(e, NotFoundError):
        return error_response(e.message, "not_found", 404, e.details)
    elif isinstance(e, InsufficientStockError):
        return error_response(e.message, "insufficient_stock", 400, e.details)
    elif isinstance(e, BusinessRuleError):
        return error_response(e.message, "business_rule", 400, e.details)
    elif isinstance(e, PermissionDeniedError):
        return error_response(e.message, "permission_denied", 403)
    elif isinstance(e, ExternalServiceError):
        return error_response(e.message, "external_service_error", 503, e.details)
    elif isinstance(e, AIResponseError):
        return error_response(e.message, "ai_response_invalid", 502, e.details)
    elif isinstance(e, ServiceError):
        return error_response(e.message, e.code.lower(), 400, e.details)
    else:
        logger.exception("Unhandled error in API view")
        return error_response("Internal server error", "server_error", 500)


class BaseStockView(View):
    """
    Authenticated JSON view. Subclasses list the roles allowed to call them;
    service errors raised by a handler are turned into the error envelope.
    """
    allowed_roles = (Role.ADMIN, Role.PHARMACY)

    @method_decorator(csrf_exempt)
    def dispatch(self, request, *args, **kwargs):
        user = authenticate_request(request)
        if user is None:
            return APIResponse.unauthorized(message="Invalid or missing token")
        request.user = user

        try:
            if user.role not in self.allowed_roles:
                raise PermissionDeniedError(
                    f"This action requires one of the roles: {', '.join(self.allowed_roles)}"
                )
            return super().dispatch(request, *args, **kwargs)
        except Exception as e:
            return handle_service_error(e)

    def get_json_body(self, request) -> dict:
        data, error = parse_json_body(request)
        if error:
            raise ValidationError("Request body must be a JSON object", "body")
        return data

    def query_int(self, request, name: str, default: int = None):
        raw = request.GET.get(name)
        if raw in (None, ""):
            return default
        try:
            return int(raw)
        except ValueError:
            raise ValidationError(f"{name} must be a whole number", name)

    def query_bool(self, request, name: str, default: bool = False) -> bool:
        raw = request.GET.get(name)
        if raw in (None, ""):
            return default
        return raw.lower() in ("1", "true", "yes")

    def parse_date(self, value, field: str):
        if value in (None, ""):
            return None
        parsed = parse_date(str(value))
        if parsed is None:
            raise ValidationError(f"{field} must be a date (YYYY-MM-DD)", field)
        return parsed

    def success(self, data: dict, status: int = 200):
        return JsonResponse({"success": True, **data}, status=status)


def _without(data: dict, *keys) -> dict:
    return {k: v for k, v in data.items() if k not in keys}


# ==================== ITEMS ====================

class ItemListView(BaseStockView):

    def get(self, request):
        result = ItemService.list(
            page=self.query_int(request, "page", 1),
            per_page=self.query_int(request, "per_page", 20),
            search=request.GET.get("search"),
            category=request.GET.get("category"),
            active_only=self.query_bool(request, "active_only", True),
        )
        return self.success(result)

    def post(self, request):
        data = self.get_json_body(request)
        result = ItemService.create(user=request.user, **_without(data, "user"))
        return self.success(result, 201)


class ItemDetailView(BaseStockView):

    def get(self, request, item_id):
        return self.success(ItemService.get(item_id))

    def put(self, request, item_id):
        data = self.get_json_body(request)
        result = ItemService.update(item_id, user=request.user, **_without(data, "user", "item_id"))
        return self.success(result)

    def delete(self, request, item_id):
        return self.success(ItemService.deactivate(item_id, user=request.user))


class ItemPriceHistoryView(BaseStockView):

    def get(self, request, item_id):
        return self.success(ItemService.get_price_history(item_id))


class ItemStockView(BaseStockView):

    def get(self, request, item_id):
        return self.success(StockService.get_item_summary(item_id))


class ItemMovementsView(BaseStockView):

    def get(self, request, item_id):
        result = StockService.get_movements(
            item_id,
            page=self.query_int(request, "page", 1),
            per_page=self.query_int(request, "per_page", 50),
            movement_type=request.GET.get("type"),
        )
        return self.success(result)


class ItemUsageView(BaseStockView):

    def get(self, request, item_id):
        item = ItemService.get_or_404(item_id)
        history = StockService.usage_history(item.id, days=self.query_int(request, "days"))
        return self.success({"item_id": item.id, "usage": history})


class ItemImportMixin:

    def get_csv_text(self, request) -> str:
        upload = request.FILES.get("file")
        if upload is not None:
            try:
                return upload.read().decode("utf-8-sig")
            except UnicodeDecodeError:
                raise ValidationError("The file must be UTF-8 encoded CSV", "file")
        return self.get_json_body(request).get("csv", "")


class ItemImportPreviewView(ItemImportMixin, BaseStockView):

    def post(self, request):
        return self.success(ItemImportService.preview(self.get_csv_text(request)))


class ItemImportView(ItemImportMixin, BaseStockView):

    def post(self, request):
        csv_text = self.get_csv_text(request)
        mapping = None if request.FILES else self.get_json_body(request).get("mapping")
        result = ItemImportService.import_items(csv_text, mapping, user=request.user)
        return self.success(result, 201)


# ==================== STOCK ====================

class StockListView(BaseStockView):

    def get(self, request):
        result = StockService.list(
            page=self.query_int(request, "page", 1),
            per_page=self.query_int(request, "per_page", 20),
            location=request.GET.get("location"),
            item_id=self.query_int(request, "item_id"),
            search=request.GET.get("search"),
            in_stock_only=self.query_bool(request, "in_stock_only"),
        )
        return self.success(result)


class StockReceiveView(BaseStockView):

    def post(self, request):
        data = self.get_json_body(request)
        result = StockService.receive(
            item_id=data.get("item_id"),
            batch_id=data.get("batch_id"),
            quantity=data.get("quantity"),
            location=data.get("location", "BULK_STORE"),
            expiry_date=self.parse_date(data.get("expiry_date"), "expiry_date"),
            reference=data.get("reference", ""),
            user=request.user,
        )
        return self.success(result, 201)


class StockAdjustView(BaseStockView):

    def post(self, request, stock_id):
        data = self.get_json_body(request)
        result = StockService.adjust(
            stock_id,
            new_quantity=data.get("new_quantity"),
            reason=data.get("reason", ""),
            user=request.user,
        )
        return self.success(result)


class LowStockView(BaseStockView):

    def get(self, request):
        return self.success(StockService.get_low_stock(request.GET.get("location", "BULK_STORE")))


class ExpiringStockView(BaseStockView):

    def get(self, request):
        result = StockService.get_expiring(
            days=self.query_int(request, "days"),
            location=request.GET.get("location"),
        )
        return self.success(result)


class ExpiredStockView(BaseStockView):

    def get(self, request):
        return self.success(StockService.get_expired(location=request.GET.get("location")))


class DashboardView(BaseStockView):

    def get(self, request):
        return self.success(StockReportService.dashboard(location=request.GET.get("location")))


# ==================== VENDORS ====================

class VendorListView(BaseStockView):

    def get(self, request):
        result = VendorService.list(
            page=self.query_int(request, "page", 1),
            per_page=self.query_int(request, "per_page", 20),
            search=request.GET.get("search"),
            item_id=self.query_int(request, "item_id"),
            active_only=self.query_bool(request, "active_only", True),
        )
        return self.success(result)

    def post(self, request):
        data = self.get_json_body(request)
        result = VendorService.create(user=request.user, **_without(data, "user"))
        return self.success(result, 201)


class VendorDetailView(BaseStockView):

    def get(self, request, vendor_id):
        return self.success(VendorService.get(vendor_id))

    def put(self, request, vendor_id):
        data = self.get_json_body(request)
        result = VendorService.update(vendor_id, user=request.user, **_without(data, "user", "vendor_id"))
        return self.success(result)

    def delete(self, request, vendor_id):
        return self.success(VendorService.deactivate(vendor_id, user=request.user))


class VendorItemsView(BaseStockView):

    def post(self, request, vendor_id):
        data = self.get_json_body(request)
        return self.success(VendorService.add_items(vendor_id, data.get("item_ids"), user=request.user))

    def delete(self, request, vendor_id):
        data = self.get_json_body(request)
        return self.success(VendorService.remove_items(vendor_id, data.get("item_ids"), user=request.user))


# ==================== PROCUREMENT ====================

class ProcurementListView(BaseStockView):

    def get(self, request):
        result = ProcurementSessionService.list(
            page=self.query_int(request, "page", 1),
            per_page=self.query_int(request, "per_page", 20),
            status=request.GET.get("status"),
        )
        return self.success(result)

    def post(self, request):
        data = self.get_json_body(request)
        result = ProcurementSessionService.create(
            location=data.get("location", "BULK_STORE"),
            item_ids=data.get("item_ids") or [],
            include_low_stock=bool(data.get("include_low_stock", True)),
            user=request.user,
        )
        return self.success(result, 201)


class ProcurementDetailView(BaseStockView):

    def get(self, request, session_id):
        return self.success(ProcurementSessionService.get(session_id))


class ProcurementCandidatesView(BaseStockView):

    def get(self, request, session_id):
        return self.success(ProcurementSessionService.get_candidates(session_id))


class ProcurementItemsView(BaseStockView):

    def post(self, request, session_id):
        data = self.get_json_body(request)
        return self.success(ProcurementSessionService.add_item(session_id, data.get("item_id"), user=request.user))


class ProcurementItemDetailView(BaseStockView):

    def delete(self, request, session_id, item_id):
        return self.success(ProcurementSessionService.remove_item(session_id, item_id, user=request.user))


class ProcurementQuotesView(BaseStockView):

    def put(self, request, session_id):
        data = self.get_json_body(request)
        return self.success(ProcurementSessionService.set_quotes(session_id, data.get("quotes"), user=request.user))


class ProcurementQuantitiesView(BaseStockView):

    def put(self, request, session_id):
        data = self.get_json_body(request)
        result = ProcurementSessionService.set_quantities(session_id, data.get("quantities"), user=request.user)
        return self.success(result)


class ProcurementPreviewView(BaseStockView):

    def get(self, request, session_id):
        return self.success(ProcurementSessionService.preview(session_id))


class ProcurementFinalizeView(BaseStockView):

    def post(self, request, session_id):
        return self.success(ProcurementSessionService.finalize(session_id, user=request.user), 201)


# ==================== PURCHASE ORDERS ====================

class PurchaseOrderListView(BaseStockView):

    def get(self, request):
        result = LocalPurchaseOrderService.list(
            page=self.query_int(request, "page", 1),
            per_page=self.query_int(request, "per_page", 20),
            status=request.GET.get("status"),
            vendor_id=self.query_int(request, "vendor_id"),
            date_from=self.parse_date(request.GET.get("date_from"), "date_from"),
            date_to=self.parse_date(request.GET.get("date_to"), "date_to"),
            search=request.GET.get("search"),
        )
        return self.success(result)


class PurchaseOrderStatsView(BaseStockView):

    def get(self, request):
        return self.success(LocalPurchaseOrderService.get_stats())


class PurchaseOrderDetailView(BaseStockView):

    def get(self, request, lpo_id):
        return self.success(LocalPurchaseOrderService.get(lpo_id))

    def delete(self, request, lpo_id):
        return self.success(LocalPurchaseOrderService.delete(lpo_id, user=request.user))


class PurchaseOrderActionView(BaseStockView):

    def post(self, request, lpo_id, action):
        data = self.get_json_body(request)
        result = LocalPurchaseOrderService.transition(lpo_id, action, user=request.user, notes=data.get("notes"))
        return self.success(result)


# ==================== INTERNAL ORDERS ====================

class InternalOrderListView(BaseStockView):

    def get(self, request):
        result = InternalOrderService.list(
            page=self.query_int(request, "page", 1),
            per_page=self.query_int(request, "per_page", 20),
            status=request.GET.get("status"),
        )
        return self.success(result)

    def post(self, request):
        data = self.get_json_body(request)
        result = InternalOrderService.create(items=data.get("items"), notes=data.get("notes", ""), user=request.user)
        return self.success(result, 201)


class InternalOrderDetailView(BaseStockView):

    def get(self, request, order_id):
        return self.success(InternalOrderService.get(order_id))


class InternalOrderActionView(BaseStockView):

    def post(self, request, order_id, action):
        data = self.get_json_body(request)
        if action == "approve":
            result = InternalOrderService.approve(order_id, user=request.user)
        elif action == "reject":
            result = InternalOrderService.reject(order_id, reason=data.get("reason", ""), user=request.user)
        elif action == "issue":
            result = InternalOrderService.issue(order_id, user=request.user)
        else:
            raise ValidationError(f"Unknown action: {action}. Must be one of: approve, reject, issue", "action")
        return self.success(result)


# ==================== STOCK TAKE ====================

class StockTakeListView(BaseStockView):

    def get(self, request):
        result = StockTakeService.list(
            page=self.query_int(request, "page", 1),
            per_page=self.query_int(request, "per_page", 20),
            location=request.GET.get("location"),
            status=request.GET.get("status"),
        )
        return self.success(result)

    def post(self, request):
        data = self.get_json_body(request)
        result = StockTakeService.start(location=data.get("location"), notes=data.get("notes", ""), user=request.user)
        return self.success(result, 201)


class StockTakeDetailView(BaseStockView):

    def get(self, request, session_id):
        return self.success(StockTakeService.get(session_id))


class StockTakeCountsView(BaseStockView):

    def put(self, request, session_id):
        data = self.get_json_body(request)
        return self.success(StockTakeService.record_counts(session_id, data.get("counts"), user=request.user))


class StockTakeFinalizeView(BaseStockView):

    def post(self, request, session_id):
        return self.success(StockTakeService.finalize(session_id, user=request.user))
