import logging
from typing import Dict, Any, List, Iterable, Mapping

from django.db import transaction
from django.utils import timezone

from stock.models import Item, ProcurementSession, StockLocation
from main.services.audit_service import AuditService
from .base_service import (
    BaseService, success_response, paginate_queryset,
    ValidationError, NotFoundError, BusinessRuleError
)
from .lpo_service import LocalPurchaseOrderService
from .procurement import (
    add_to_list, remove_from_list, relevant_vendors, best_prices,
    select_winning_vendor, build_draft_lpos, find_low_stock_items,
    on_hand_by_item, resolve_quantity, validate_quote,
)
from .stock_service import catalog_entries, stock_entries, validate_location
from .vendor_service import VendorService


logger = logging.getLogger(__name__)

Status = ProcurementSession.Status


def _int_id(value: Any, field: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid id: {value}", field)


class ProcurementSessionService(BaseService):
    """
    Build list -> compare vendor prices -> finalize into draft LPOs.

    The session row keeps the working state so a half-finished run can be
    resumed. Quotes and quantities are stored as entered, keyed by id strings.
    """
    model = ProcurementSession

    # ==================== helpers ====================

    @classmethod
    def _get_for_update(cls, session_id: int) -> ProcurementSession:
        try:
            return cls.model.objects.select_for_update().get(id=session_id)
        except (cls.model.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("Procurement session", session_id)

    @classmethod
    def _require_draft(cls, session: ProcurementSession) -> None:
        if session.status != Status.DRAFT:
            raise BusinessRuleError("This procurement session is already completed", "procurement_session_completed")

    @staticmethod
    def _quotes(session: ProcurementSession) -> Dict[int, Dict[int, Any]]:
        return {
            int(item_id): {int(vendor_id): price for vendor_id, price in (vendor_prices or {}).items()}
            for item_id, vendor_prices in (session.vendor_quotes or {}).items()
        }

    @staticmethod
    def _quantities(session: ProcurementSession) -> Dict[int, Any]:
        return {int(item_id): qty for item_id, qty in (session.lpo_quantities or {}).items()}

    @staticmethod
    def _listed_items(session: ProcurementSession) -> List[Item]:
        found = Item.objects.in_bulk(session.procurement_list)
        return [found[item_id] for item_id in session.procurement_list if item_id in found]

    # ==================== serialization ====================

    @classmethod
    def serialize(cls, session: ProcurementSession, include_details: bool = True) -> Dict[str, Any]:
        data = {
            "id": session.id,
            "uuid": str(session.uuid),
            "location": session.location,
            "status": session.status,
            "status_display": session.get_status_display(),
            "item_count": len(session.procurement_list),
            "created_by": session.created_by.display_name if session.created_by else None,
            "created_at": session.created_at.isoformat(),
            "updated_at": session.updated_at.isoformat(),
            "completed_at": session.completed_at.isoformat() if session.completed_at else None,
        }
        if not include_details:
            return data

        items = cls._listed_items(session)
        entries = catalog_entries(items)
        vendors = VendorService.catalog()
        quotes = cls._quotes(session)
        quantities = cls._quantities(session)
        listed_ids = [entry.id for entry in entries]
        on_hand = on_hand_by_item(stock_entries(session.location), session.location)
        best = best_prices(listed_ids, vendors, quotes)

        lines = []
        for item, entry in zip(items, entries):
            winner = select_winning_vendor(entry.id, vendors, quotes)
            lines.append({
                "item_id": item.id,
                "item_code": item.item_code,
                "item_name": entry.name,
                "on_hand": on_hand.get(item.id, 0),
                "reorder_level": entry.reorder_level_for(session.location),
                "quantity": quantities.get(item.id, 1),
                "quotes": {str(vendor_id): price for vendor_id, price in quotes.get(item.id, {}).items()},
                "best_price": str(best[item.id]) if item.id in best else None,
                "winning_vendor_id": winner[0].id if winner else None,
            })

        data["items"] = lines
        data["relevant_vendors"] = [
            {
                "id": vendor.id,
                "name": vendor.name,
                "supplies": [item_id for item_id in listed_ids if item_id in vendor.supplies],
            }
            for vendor in relevant_vendors(listed_ids, vendors)
        ]
        data["purchase_orders"] = [
            LocalPurchaseOrderService.serialize(lpo, include_items=False)
            for lpo in session.purchase_orders.all()
        ]
        return data

    # ==================== list builder ====================

    @classmethod
    def list(cls, page: int = 1, per_page: int = 20, status: str = None) -> Dict[str, Any]:
        queryset = cls.model.objects.select_related("created_by")
        if status:
            queryset = queryset.filter(status=status.upper())

        sessions, pagination = paginate_queryset(queryset, page, per_page)

        return success_response({
            "sessions": [cls.serialize(session, include_details=False) for session in sessions],
            "pagination": pagination,
        })

    @classmethod
    def get(cls, session_id: int) -> Dict[str, Any]:
        session = cls.get_or_404(session_id)
        return success_response({"session": cls.serialize(session)})

    @classmethod
    @transaction.atomic
    def create(cls,
               location: str = StockLocation.BULK_STORE,
               item_ids: Iterable[Any] = (),
               include_low_stock: bool = True,
               user=None) -> Dict[str, Any]:
        location = validate_location(location)

        procurement_list: List[int] = []
        if include_low_stock:
            catalog = catalog_entries(Item.objects.filter(is_active=True))
            for entry in find_low_stock_items(catalog, stock_entries(location), location):
                procurement_list = add_to_list(procurement_list, entry.id)

        requested = [_int_id(item_id, "item_ids") for item_id in item_ids or ()]
        existing = Item.objects.in_bulk(requested)
        for item_id in requested:
            if item_id not in existing:
                raise NotFoundError("Item", item_id)
            procurement_list = add_to_list(procurement_list, item_id)

        session = cls.model.objects.create(
            location=location,
            procurement_list=procurement_list,
            created_by=user,
        )

        AuditService.log(user, "procurement.started", {
            "session_id": session.id, "location": location, "items": len(procurement_list),
        })
        logger.info("Procurement session %s started with %d items", session.id, len(procurement_list))

        return success_response({
            "id": session.id,
            "session": cls.serialize(session),
        }, "Procurement session created")

    @classmethod
    def get_candidates(cls, session_id: int) -> Dict[str, Any]:
        """Low-stock items at the session's location that are not on its list yet."""
        session = cls.get_or_404(session_id)
        catalog = catalog_entries(Item.objects.filter(is_active=True))
        stocks = stock_entries(session.location)
        low = find_low_stock_items(catalog, stocks, session.location, session.procurement_list)
        on_hand = on_hand_by_item(stocks, session.location)

        return success_response({
            "items": [
                {
                    "item_id": entry.id,
                    "item_name": entry.name,
                    "on_hand": on_hand.get(entry.id, 0),
                    "reorder_level": entry.reorder_level_for(session.location),
                }
                for entry in low
            ]
        })

    @classmethod
    @transaction.atomic
    def add_item(cls, session_id: int, item_id: Any, user=None) -> Dict[str, Any]:
        session = cls._get_for_update(session_id)
        cls._require_draft(session)

        item_id = _int_id(item_id, "item_id")
        if not Item.objects.filter(id=item_id).exists():
            raise NotFoundError("Item", item_id)

        session.procurement_list = add_to_list(session.procurement_list, item_id)
        session.save(update_fields=["procurement_list", "updated_at"])

        return success_response({"session": cls.serialize(session)}, "Item added to list")

    @classmethod
    @transaction.atomic
    def remove_item(cls, session_id: int, item_id: Any, user=None) -> Dict[str, Any]:
        session = cls._get_for_update(session_id)
        cls._require_draft(session)

        item_id = _int_id(item_id, "item_id")
        session.procurement_list = remove_from_list(session.procurement_list, item_id)
        session.vendor_quotes.pop(str(item_id), None)
        session.lpo_quantities.pop(str(item_id), None)
        session.save(update_fields=["procurement_list", "vendor_quotes", "lpo_quantities", "updated_at"])

        return success_response({"session": cls.serialize(session)}, "Item removed from list")

    # ==================== price comparator ====================

    @classmethod
    @transaction.atomic
    def set_quotes(cls, session_id: int, quotes: Mapping[Any, Mapping[Any, Any]], user=None) -> Dict[str, Any]:
        """
        Merge entered prices into the quote matrix.

        ``quotes`` is ``{item_id: {vendor_id: price}}``. A blank or null price
        clears that entry. Anything else must be a positive price that fits a
        purchase order line, otherwise nothing is saved.
        """
        session = cls._get_for_update(session_id)
        cls._require_draft(session)

        if not isinstance(quotes, Mapping):
            raise ValidationError("quotes must be an object of {item_id: {vendor_id: price}}", "quotes")

        vendors = {vendor.id: vendor for vendor in VendorService.catalog()}
        listed = set(session.procurement_list)
        matrix = dict(session.vendor_quotes or {})

        for raw_item_id, vendor_prices in quotes.items():
            item_id = _int_id(raw_item_id, "quotes")
            if item_id not in listed:
                raise ValidationError(f"Item {item_id} is not on the procurement list", "quotes")
            if not isinstance(vendor_prices, Mapping):
                raise ValidationError(f"Quotes for item {item_id} must be an object", "quotes")

            item_quotes = dict(matrix.get(str(item_id), {}))
            for raw_vendor_id, price in vendor_prices.items():
                vendor_id = _int_id(raw_vendor_id, "quotes")
                vendor = vendors.get(vendor_id)
                if vendor is None:
                    raise NotFoundError("Vendor", vendor_id)
                if item_id not in vendor.supplies:
                    raise ValidationError(
                        f"{vendor.name} does not supply item {item_id}", "quotes"
                    )
                if price is None or str(price).strip() == "":
                    item_quotes.pop(str(vendor_id), None)
                else:
                    validate_quote(price, item_id)
                    item_quotes[str(vendor_id)] = str(price).strip()

            if item_quotes:
                matrix[str(item_id)] = item_quotes
            else:
                matrix.pop(str(item_id), None)

        session.vendor_quotes = matrix
        session.save(update_fields=["vendor_quotes", "updated_at"])

        return success_response({"session": cls.serialize(session)}, "Quotes saved")

    @classmethod
    @transaction.atomic
    def set_quantities(cls, session_id: int, quantities: Mapping[Any, Any], user=None) -> Dict[str, Any]:
        session = cls._get_for_update(session_id)
        cls._require_draft(session)

        if not isinstance(quantities, Mapping):
            raise ValidationError("quantities must be an object of {item_id: quantity}", "quantities")

        listed = set(session.procurement_list)
        stored = dict(session.lpo_quantities or {})
        for raw_item_id, quantity in quantities.items():
            item_id = _int_id(raw_item_id, "quantities")
            if item_id not in listed:
                raise ValidationError(f"Item {item_id} is not on the procurement list", "quantities")
            stored[str(item_id)] = resolve_quantity({item_id: quantity}, item_id)

        session.lpo_quantities = stored
        session.save(update_fields=["lpo_quantities", "updated_at"])

        return success_response({"session": cls.serialize(session)}, "Quantities saved")

    # ==================== finalizer ====================

    @classmethod
    def _drafts(cls, session: ProcurementSession):
        return build_draft_lpos(
            catalog_entries(cls._listed_items(session)),
            VendorService.catalog(),
            cls._quotes(session),
            cls._quantities(session),
        )

    @classmethod
    def preview(cls, session_id: int) -> Dict[str, Any]:
        session = cls.get_or_404(session_id)
        drafts = cls._drafts(session)
        quoted = {line.item_id for draft in drafts for line in draft.items}

        return success_response({
            "drafts": [draft.to_dict() for draft in drafts],
            "unquoted_item_ids": [item_id for item_id in session.procurement_list if item_id not in quoted],
        })

    @classmethod
    @transaction.atomic
    def finalize(cls, session_id: int, user=None) -> Dict[str, Any]:
        session = cls._get_for_update(session_id)
        cls._require_draft(session)

        drafts = cls._drafts(session)
        orders = [
            LocalPurchaseOrderService.create_from_draft(draft, session=session, user=user)
            for draft in drafts
        ]

        session.status = Status.COMPLETED
        session.completed_at = timezone.now()
        session.save(update_fields=["status", "completed_at", "updated_at"])

        if not orders:
            logger.warning("Procurement session %s finalized without any quoted items", session.id)

        AuditService.log(user, "procurement.finalized", {
            "session_id": session.id,
            "lpo_numbers": [lpo.lpo_number for lpo in orders],
        })

        return success_response({
            "session_id": session.id,
            "purchase_orders": [LocalPurchaseOrderService.serialize(lpo) for lpo in orders],
            "count": len(orders),
        }, f"{len(orders)} draft purchase order(s) created")
