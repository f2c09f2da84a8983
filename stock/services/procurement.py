"""
Procurement planning: low-stock list building, vendor price comparison and
grouping of winning quotes into draft purchase orders.

Everything here is a pure function over plain records so the same rules
serve the API, the admin and the tests without touching the database.
"""

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, FrozenSet, Hashable, Iterable, List, Mapping, Optional, Sequence, Tuple

from .base_service import ValidationError


# Limits of the purchase order columns: DecimalField(max_digits=15,
# decimal_places=4) and PositiveIntegerField.
PRICE_STEP = Decimal("0.0001")
MAX_AMOUNT = Decimal("100000000000")
MAX_QUANTITY = 2147483647


@dataclass(frozen=True)
class CatalogItem:
    id: Hashable
    name: str
    dispensary_reorder_level: int = 0
    bulk_store_reorder_level: int = 0

    def reorder_level_for(self, location: str) -> int:
        if location == "DISPENSARY":
            return self.dispensary_reorder_level
        return self.bulk_store_reorder_level


@dataclass(frozen=True)
class StockEntry:
    item_id: Hashable
    location: str
    quantity: int


@dataclass(frozen=True)
class VendorEntry:
    id: Hashable
    name: str
    supplies: FrozenSet[Hashable] = frozenset()


@dataclass(frozen=True)
class DraftLpoLine:
    item_id: Hashable
    item_name: str
    quantity: int
    unit_price: Decimal

    @property
    def total(self) -> Decimal:
        return self.unit_price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "item_name": self.item_name,
            "quantity": self.quantity,
            "unit_price": str(self.unit_price),
            "total": str(self.total),
        }


@dataclass
class DraftLpo:
    vendor_id: Hashable
    vendor_name: str
    items: List[DraftLpoLine] = field(default_factory=list)

    @property
    def grand_total(self) -> Decimal:
        return sum((line.total for line in self.items), Decimal("0"))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "vendor_id": self.vendor_id,
            "vendor_name": self.vendor_name,
            "items": [line.to_dict() for line in self.items],
            "grand_total": str(self.grand_total),
        }


# ==================== LIST BUILDER ====================

def on_hand_by_item(stocks: Iterable[StockEntry], location: str) -> Dict[Hashable, int]:
    totals: Dict[Hashable, int] = {}
    for entry in stocks:
        if entry.location != location:
            continue
        totals[entry.item_id] = totals.get(entry.item_id, 0) + entry.quantity
    return totals


def find_low_stock_items(catalog: Sequence[CatalogItem],
                         stocks: Iterable[StockEntry],
                         location: str,
                         current_list: Iterable[Hashable] = ()) -> List[CatalogItem]:
    """Items whose on-hand quantity at ``location`` is below its reorder level."""
    on_hand = on_hand_by_item(stocks, location)
    already_listed = set(current_list)

    return [
        item for item in catalog
        if item.id not in already_listed
        and on_hand.get(item.id, 0) < item.reorder_level_for(location)
    ]


def add_to_list(current: Sequence[Hashable], item_id: Hashable) -> List[Hashable]:
    if item_id in current:
        return list(current)
    return list(current) + [item_id]


def remove_from_list(current: Sequence[Hashable], item_id: Hashable) -> List[Hashable]:
    return [existing for existing in current if existing != item_id]


# ==================== PRICE COMPARATOR ====================

def parse_quote(value: Any) -> Optional[Decimal]:
    """A usable unit price, or None for blanks, text, zero and negatives."""
    if value is None or isinstance(value, bool):
        return None
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not price.is_finite() or price <= 0:
        return None
    return price


def validate_quote(value: Any, item_id: Hashable = None) -> Decimal:
    """A quote that can be stored on a purchase order line, or ValidationError."""
    label = f"Quote for item {item_id}" if item_id is not None else "Quote"
    price = parse_quote(value)
    if price is None:
        raise ValidationError(f"{label} must be a positive number", "quotes")
    if price >= MAX_AMOUNT:
        raise ValidationError(f"{label} must be less than {MAX_AMOUNT}", "quotes")
    if price != price.quantize(PRICE_STEP):
        raise ValidationError(f"{label} can have at most 4 decimal places", "quotes")
    return price


def relevant_vendors(item_ids: Iterable[Hashable], vendors: Sequence[VendorEntry]) -> List[VendorEntry]:
    wanted = set(item_ids)
    return [vendor for vendor in vendors if vendor.supplies & wanted]


def _valid_quotes(item_id: Hashable,
                  vendors: Sequence[VendorEntry],
                  quotes: Mapping[Hashable, Mapping[Hashable, Any]]) -> List[Tuple[VendorEntry, Decimal]]:
    item_quotes = quotes.get(item_id) or {}
    valid = []
    for vendor in vendors:
        if item_id not in vendor.supplies:
            continue
        price = parse_quote(item_quotes.get(vendor.id))
        if price is not None:
            valid.append((vendor, price))
    return valid


def best_prices(item_ids: Iterable[Hashable],
                vendors: Sequence[VendorEntry],
                quotes: Mapping[Hashable, Mapping[Hashable, Any]]) -> Dict[Hashable, Decimal]:
    result = {}
    for item_id in item_ids:
        valid = _valid_quotes(item_id, vendors, quotes)
        if valid:
            result[item_id] = min(price for _, price in valid)
    return result


def select_winning_vendor(item_id: Hashable,
                          vendors: Sequence[VendorEntry],
                          quotes: Mapping[Hashable, Mapping[Hashable, Any]]) -> Optional[Tuple[VendorEntry, Decimal]]:
    """
    Cheapest supplying vendor for one item.

    Vendors are visited in the order given (the vendor catalog order) and a
    later vendor only wins with a strictly lower price, so equal quotes go to
    the vendor listed first.
    """
    winner = None
    for vendor, price in _valid_quotes(item_id, vendors, quotes):
        if winner is None or price < winner[1]:
            winner = (vendor, price)
    return winner


# ==================== LPO FINALIZER ====================

def resolve_quantity(quantities: Mapping[Hashable, Any], item_id: Hashable) -> int:
    raw = quantities.get(item_id)
    if raw is None or raw == "":
        return 1
    if isinstance(raw, bool):
        raise ValidationError("Quantity must be a whole number", "quantities")
    try:
        quantity = Decimal(str(raw).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Quantity for item {item_id} must be a whole number", "quantities")
    if not quantity.is_finite() or quantity != quantity.to_integral_value() or quantity < 1:
        raise ValidationError(f"Quantity for item {item_id} must be a positive whole number", "quantities")
    if quantity > MAX_QUANTITY:
        raise ValidationError(f"Quantity for item {item_id} must be at most {MAX_QUANTITY}", "quantities")
    return int(quantity)


def build_draft_lpos(items: Sequence[CatalogItem],
                     vendors: Sequence[VendorEntry],
                     quotes: Mapping[Hashable, Mapping[Hashable, Any]],
                     quantities: Optional[Mapping[Hashable, Any]] = None) -> List[DraftLpo]:
    """
    Group each item under its cheapest vendor.

    Returns one draft per vendor that won at least one item, in the order the
    vendors first win. Items without a valid quote are left out.
    """
    quantities = quantities or {}
    drafts: Dict[Hashable, DraftLpo] = {}

    for item in items:
        winner = select_winning_vendor(item.id, vendors, quotes)
        if winner is None:
            continue

        vendor, price = winner
        draft = drafts.get(vendor.id)
        if draft is None:
            draft = drafts[vendor.id] = DraftLpo(vendor_id=vendor.id, vendor_name=vendor.name)

        draft.items.append(DraftLpoLine(
            item_id=item.id,
            item_name=item.name,
            quantity=resolve_quantity(quantities, item.id),
            unit_price=price,
        ))

    for draft in drafts.values():
        for line in draft.items:
            validate_quote(line.unit_price, line.item_id)
        if any(line.total >= MAX_AMOUNT for line in draft.items) or draft.grand_total >= MAX_AMOUNT:
            raise ValidationError(
                f"The order for {draft.vendor_name} exceeds the largest amount a purchase order can hold",
                "quantities",
            )

    return list(drafts.values())
