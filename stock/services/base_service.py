from typing import Dict, Any, Optional, List, Tuple
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from datetime import date, timedelta
from django.db import IntegrityError, transaction
from django.db.models import Model
from django.utils import timezone


class ServiceError(Exception):
    def __init__(self, message: str, code: str = "ERROR", details: Dict = None):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)


class ValidationError(ServiceError):
    def __init__(self, message: str, field: str = None, details: Dict = None):
        super().__init__(message, "VALIDATION_ERROR", details)
        self.field = field


class NotFoundError(ServiceError):
    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            f"{resource} not found: {identifier}",
            "NOT_FOUND",
            {"resource": resource, "identifier": str(identifier)}
        )


class BusinessRuleError(ServiceError):
    def __init__(self, message: str, rule: str = None):
        super().__init__(message, "BUSINESS_RULE_VIOLATION", {"rule": rule})


class InsufficientStockError(ServiceError):
    def __init__(self, item_name: str, required: Any, available: Any):
        super().__init__(
            f"Insufficient stock for {item_name}: required {required}, available {available}",
            "INSUFFICIENT_STOCK",
            {"item": item_name, "required": str(required), "available": str(available)}
        )


class PermissionDeniedError(ServiceError):
    def __init__(self, message: str = "You do not have permission to perform this action"):
        super().__init__(message, "PERMISSION_DENIED")


class ExternalServiceError(ServiceError):
    def __init__(self, service: str, message: str):
        super().__init__(f"{service} is unavailable: {message}", "EXTERNAL_SERVICE_ERROR", {"service": service})


class AIResponseError(ServiceError):
    def __init__(self, message: str, details: Dict = None):
        super().__init__(message, "AI_RESPONSE_INVALID", details)


def success_response(data: Any = None, message: str = "Success") -> Dict:
    response = {"success": True, "message": message}
    if data is not None:
        if isinstance(data, dict):
            response.update(data)
        else:
            response["data"] = data
    return response


def paginate_queryset(queryset, page: int = 1, per_page: int = 20) -> Tuple[List, Dict]:
    page = max(1, page)
    per_page = min(max(1, per_page), 100)

    total = queryset.count()
    total_pages = (total + per_page - 1) // per_page

    offset = (page - 1) * per_page
    items = list(queryset[offset:offset + per_page])

    return items, {
        "page": page,
        "per_page": per_page,
        "total_items": total,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1
    }


def to_decimal(value: Any, default: Optional[Decimal] = Decimal("0")) -> Optional[Decimal]:
    if value is None or value == "":
        return default
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default
    if not result.is_finite():
        return default
    return result


def require_decimal(value: Any, field: str, minimum: Decimal = Decimal("0")) -> Decimal:
    result = to_decimal(value, None)
    if result is None:
        raise ValidationError(f"{field} must be a number", field)
    if result < minimum:
        raise ValidationError(f"{field} must be at least {minimum}", field)
    return result


def require_int(value: Any, field: str, minimum: int = 0) -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a whole number", field)
    result = to_decimal(value, None)
    if result is None or result != result.to_integral_value():
        raise ValidationError(f"{field} must be a whole number", field)
    result = int(result)
    if result < minimum:
        raise ValidationError(f"{field} must be at least {minimum}", field)
    return result


def round_decimal(value: Decimal, places: int = 2) -> Decimal:
    if value is None:
        return Decimal("0")
    quantize_str = "0." + "0" * places
    return value.quantize(Decimal(quantize_str), rounding=ROUND_HALF_UP)


def generate_number(prefix: str, model_class: Model, field: str = "number") -> str:
    today = timezone.now()
    date_part = today.strftime("%Y%m%d")
    filter_kwargs = {f"{field}__startswith": f"{prefix}-{date_part}"}
    last = model_class.objects.filter(**filter_kwargs).order_by(f"-{field}").first()

    if last:
        last_num = getattr(last, field)
        try:
            seq = int(last_num.split("-")[-1]) + 1
        except ValueError:
            seq = 1
    else:
        seq = 1

    return f"{prefix}-{date_part}-{seq:04d}"


def create_numbered(model_class, prefix: str, field: str, attempts: int = 3, **fields) -> Model:
    """
    Create a row under the next daily document number.

    Two writers can read the same last number; the loser retries inside a
    savepoint with a fresh number.
    """
    for _ in range(attempts):
        number = generate_number(prefix, model_class, field)
        try:
            with transaction.atomic():
                return model_class.objects.create(**{field: number}, **fields)
        except IntegrityError:
            if not model_class.objects.filter(**{field: number}).exists():
                raise
    raise BusinessRuleError(
        f"Could not allocate a {prefix} number, please retry", "document_number_conflict"
    )


def get_date_range(period: str) -> Tuple[date, date]:
    today = timezone.localdate()

    if period == "today":
        return today, today
    elif period == "yesterday":
        return today - timedelta(days=1), today - timedelta(days=1)
    elif period == "this_week":
        start = today - timedelta(days=today.weekday())
        return start, today
    elif period == "this_month":
        return today.replace(day=1), today
    elif period == "last_month":
        first_of_month = today.replace(day=1)
        last_month_end = first_of_month - timedelta(days=1)
        return last_month_end.replace(day=1), last_month_end
    elif period == "this_year":
        return today.replace(month=1, day=1), today
    elif period.startswith("last_") and period.endswith("_days"):
        try:
            days = int(period.replace("last_", "").replace("_days", ""))
            return today - timedelta(days=days), today
        except ValueError:
            pass

    return today, today


class BaseService:
    model = None

    @classmethod
    def get_by_id(cls, id: int) -> Optional[Model]:
        try:
            return cls.model.objects.get(id=id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            return None

    @classmethod
    def get_by_uuid(cls, uuid_str: str) -> Optional[Model]:
        try:
            return cls.model.objects.get(uuid=uuid_str)
        except (cls.model.DoesNotExist, ValueError):
            return None

    @classmethod
    def get_or_404(cls, id: int) -> Model:
        obj = cls.get_by_id(id)
        if not obj:
            raise NotFoundError(cls.model._meta.verbose_name.title(), id)
        return obj

    @classmethod
    def exists(cls, id: int) -> bool:
        return cls.model.objects.filter(id=id).exists()
