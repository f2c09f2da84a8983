"""
Load a small sample catalog: items, opening bulk-store stock and vendors.

Safe to run repeatedly; existing codes are left untouched.
"""

import logging
from datetime import date
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction

from stock.models import Item, PriceHistory, Stock, StockLocation, StockMovement, Vendor
from stock.services.stock_service import record_movement

logger = logging.getLogger(__name__)


ITEMS = [
    {
        "item_code": "PAR500", "generic_name": "Paracetamol", "formulation": "TABLET", "category": "MEDICINE",
        "strength_value": Decimal("500"), "strength_unit": "mg", "unit_of_measure": "tablets",
        "bulk_store_reorder_level": 1000, "dispensary_reorder_level": 200,
        "unit_cost": Decimal("0.02"), "selling_price": Decimal("0.10"),
        "opening": ("B12345", 5000, date(2027, 12, 31)),
    },
    {
        "item_code": "IBU200", "generic_name": "Ibuprofen", "formulation": "TABLET", "category": "MEDICINE",
        "strength_value": Decimal("200"), "strength_unit": "mg", "unit_of_measure": "tablets",
        "bulk_store_reorder_level": 800, "dispensary_reorder_level": 150,
        "unit_cost": Decimal("0.05"), "selling_price": Decimal("0.15"),
        "opening": ("B67890", 3500, date(2028, 6, 30)),
    },
    {
        "item_code": "AMO500", "generic_name": "Amoxicillin", "formulation": "CAPSULE", "category": "MEDICINE",
        "strength_value": Decimal("500"), "strength_unit": "mg", "unit_of_measure": "capsules",
        "bulk_store_reorder_level": 500, "dispensary_reorder_level": 100,
        "unit_cost": Decimal("0.10"), "selling_price": Decimal("0.25"),
        "opening": ("AMX1122", 200, date(2027, 10, 31)),
    },
    {
        "item_code": "GAUZE-S", "generic_name": "Gauze Swabs Small", "formulation": "MEDICAL_SUPPLY",
        "category": "MEDICAL_SUPPLY", "unit_of_measure": "boxes",
        "bulk_store_reorder_level": 50, "dispensary_reorder_level": 10,
        "unit_cost": Decimal("2.50"), "selling_price": Decimal("5.00"),
        "opening": ("GZ-S-001", 200, date(2029, 1, 1)),
    },
    {
        "item_code": "SYR-10ML", "generic_name": "Syringes", "formulation": "CONSUMABLE", "category": "CONSUMABLE",
        "package_size_value": Decimal("10"), "package_size_unit": "ml", "unit_of_measure": "boxes",
        "bulk_store_reorder_level": 100, "dispensary_reorder_level": 20,
        "unit_cost": Decimal("5.00"), "selling_price": Decimal("10.00"),
        "opening": ("SYR-10-002", 150, date(2030, 5, 20)),
    },
    {
        "item_code": "VITC1000", "generic_name": "Vitamin C", "formulation": "TABLET", "category": "MEDICINE",
        "strength_value": Decimal("1000"), "strength_unit": "mg", "unit_of_measure": "tablets",
        "bulk_store_reorder_level": 300, "dispensary_reorder_level": 50,
        "unit_cost": Decimal("0.08"), "selling_price": Decimal("0.20"),
        "opening": None,
    },
]

VENDORS = [
    {"code": "VEND-001", "name": "MediSupplies Inc.", "email": "sales@medisupplies.com",
     "supplies": ["PAR500", "IBU200", "AMO500"]},
    {"code": "VEND-002", "name": "Global Medical", "email": "orders@globalmed.com",
     "supplies": ["PAR500", "GAUZE-S", "SYR-10ML"]},
    {"code": "VEND-003", "name": "PharmaDirect", "email": "contact@pharmadirect.co",
     "supplies": ["IBU200", "AMO500", "VITC1000"]},
]


class Command(BaseCommand):
    help = 'Load the sample item catalog, opening stock and vendors'

    def add_arguments(self, parser):
        parser.add_argument(
            '--no-stock',
            action='store_true',
            help='Create items and vendors without opening stock'
        )

    @transaction.atomic
    def handle(self, *args, **options):
        created_items = 0
        for entry in ITEMS:
            fields = dict(entry)
            opening = fields.pop("opening")
            item, created = Item.objects.get_or_create(item_code=fields.pop("item_code"), defaults=fields)
            if not created:
                continue
            created_items += 1
            PriceHistory.objects.create(item=item, unit_cost=item.unit_cost, selling_price=item.selling_price)

            if opening and not options['no_stock']:
                batch_id, quantity, expiry = opening
                stock = Stock.objects.create(
                    item=item,
                    batch_id=batch_id,
                    location=StockLocation.BULK_STORE,
                    current_stock_quantity=quantity,
                    expiry_date=expiry,
                )
                record_movement(stock, StockMovement.MovementType.RECEIVE, quantity, 0, reference="OPENING")

        created_vendors = 0
        for entry in VENDORS:
            fields = dict(entry)
            supplies = fields.pop("supplies")
            vendor, created = Vendor.objects.get_or_create(code=fields.pop("code"), defaults=fields)
            if created:
                created_vendors += 1
                vendor.supplies.set(Item.objects.filter(item_code__in=supplies))

        logger.info("Seeded %d items and %d vendors", created_items, created_vendors)
        self.stdout.write(self.style.SUCCESS(
            f'Catalog ready: {created_items} new item(s), {created_vendors} new vendor(s)'
        ))
