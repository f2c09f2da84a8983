"""
Item Import Service - Bulk item master load from CSV
"""
import csv
import io
import logging
import re
from typing import Dict, Any, List, Optional

from django.db import transaction

from stock.models import Item, PriceHistory
from stock.serializers import ItemImportRowSerializer
from main.services.audit_service import AuditService
from .base_service import success_response, ValidationError
from .item_service import generate_item_code


logger = logging.getLogger(__name__)

IMPORT_FIELDS = list(ItemImportRowSerializer().fields)

# Common spreadsheet headers that do not normalize to a field name
HEADER_ALIASES = {
    "code": "item_code",
    "item_code": "item_code",
    "generic": "generic_name",
    "name": "generic_name",
    "brand": "brand_name",
    "form": "formulation",
    "dosage_form": "formulation",
    "unit": "unit_of_measure",
    "uom": "unit_of_measure",
    "strength": "strength_value",
    "concentration": "concentration_value",
    "package_size": "package_size_value",
    "cost": "unit_cost",
    "cost_price": "unit_cost",
    "price": "selling_price",
    "dispensary_reorder": "dispensary_reorder_level",
    "bulk_reorder": "bulk_store_reorder_level",
    "bulk_store_reorder": "bulk_store_reorder_level",
}

PREVIEW_ROWS = 5


def normalize_header(header: str) -> str:
    return re.sub(r"[^a-z0-9]+", "_", (header or "").strip().lower()).strip("_")


def suggest_field(header: str) -> Optional[str]:
    key = normalize_header(header)
    if key in IMPORT_FIELDS:
        return key
    return HEADER_ALIASES.get(key)


def _read_csv(csv_text: str):
    if not csv_text or not csv_text.strip():
        raise ValidationError("The file is empty", "file")
    reader = csv.DictReader(io.StringIO(csv_text.lstrip("\ufeff")))
    if not reader.fieldnames:
        raise ValidationError("The file has no header row", "file")
    return reader


class ItemImportService:

    @classmethod
    def preview(cls, csv_text: str) -> Dict[str, Any]:
        reader = _read_csv(csv_text)
        headers = list(reader.fieldnames)
        rows = []
        for row in reader:
            rows.append(row)
            if len(rows) >= PREVIEW_ROWS:
                break

        return success_response({
            "headers": headers,
            "suggested_mapping": {header: suggest_field(header) for header in headers},
            "fields": IMPORT_FIELDS,
            "rows": rows,
        })

    @classmethod
    def _validate_mapping(cls, mapping: Dict[str, str], headers: List[str]) -> Dict[str, str]:
        if mapping is None:
            mapping = {header: suggest_field(header) for header in headers}
        if not isinstance(mapping, dict):
            raise ValidationError("mapping must be an object of {column: field}", "mapping")

        cleaned = {}
        for column, field in mapping.items():
            if not field:
                continue
            if field not in IMPORT_FIELDS:
                raise ValidationError(f"Unknown field in mapping: {field}", "mapping")
            if column not in headers:
                raise ValidationError(f"Column not found in file: {column}", "mapping")
            cleaned[column] = field
        if not cleaned:
            raise ValidationError("No columns are mapped to item fields", "mapping")
        return cleaned

    @classmethod
    @transaction.atomic
    def import_items(cls, csv_text: str, mapping: Dict[str, str] = None, user=None) -> Dict[str, Any]:
        """
        Create items from the mapped columns.

        Valid rows are created together; invalid rows are reported with their
        file row number (header is row 1) and skipped.
        """
        reader = _read_csv(csv_text)
        mapping = cls._validate_mapping(mapping, list(reader.fieldnames))

        existing_codes = {code.upper() for code in Item.objects.values_list("item_code", flat=True)}
        seen_codes = set()
        valid_rows = []
        skipped = []

        for row_number, row in enumerate(reader, start=2):
            data = {field: (row.get(column) or "").strip() for column, field in mapping.items()}
            if not any(data.values()):
                continue

            serializer = ItemImportRowSerializer(data=data)
            if not serializer.is_valid():
                skipped.append({
                    "row": row_number,
                    "errors": {field: [str(e) for e in errors] for field, errors in serializer.errors.items()},
                })
                continue

            values = dict(serializer.validated_data)
            code = (values.pop("item_code", "") or "").strip().upper()
            if code:
                if code in existing_codes or code in seen_codes:
                    skipped.append({"row": row_number, "errors": {"item_code": [f"Duplicate item code {code}"]}})
                    continue
                seen_codes.add(code)
            valid_rows.append((code, values))

        items = []
        for code, values in valid_rows:
            if not code:
                code = generate_item_code(values["generic_name"], taken=seen_codes)
                seen_codes.add(code)
            items.append(Item(item_code=code, **values))

        created = Item.objects.bulk_create(items)
        # bulk_create does not return primary keys on every backend
        created = list(Item.objects.filter(item_code__in=[item.item_code for item in created]))
        PriceHistory.objects.bulk_create([
            PriceHistory(item=item, unit_cost=item.unit_cost, selling_price=item.selling_price, changed_by=user)
            for item in created
        ])

        AuditService.log(user, "item.imported", {"created": len(created), "skipped": len(skipped)})
        logger.info("Item import created %d items, skipped %d rows", len(created), len(skipped))

        return success_response({
            "created": len(created),
            "skipped": skipped,
            "item_codes": sorted(item.item_code for item in created),
        }, f"Imported {len(created)} item(s)")
