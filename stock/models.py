import uuid as uuid_lib

from django.db import models


class StockLocation(models.TextChoices):
    BULK_STORE = "BULK_STORE", "Bulk Store"
    DISPENSARY = "DISPENSARY", "Dispensary"


class Item(models.Model):
    class Formulation(models.TextChoices):
        TABLET = "TABLET", "Tablet"
        CAPSULE = "CAPSULE", "Capsule"
        SYRUP = "SYRUP", "Syrup"
        INJECTION = "INJECTION", "Injection"
        CREAM = "CREAM", "Cream"
        LOTION = "LOTION", "Lotion"
        MEDICAL_SUPPLY = "MEDICAL_SUPPLY", "Medical Supply"
        CONSUMABLE = "CONSUMABLE", "Consumable"

    class Category(models.TextChoices):
        MEDICINE = "MEDICINE", "Medicine"
        MEDICAL_SUPPLY = "MEDICAL_SUPPLY", "Medical Supply"
        CONSUMABLE = "CONSUMABLE", "Consumable"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    item_code = models.CharField(max_length=30, unique=True)
    generic_name = models.CharField(max_length=150)
    brand_name = models.CharField(max_length=150, blank=True, default="")
    formulation = models.CharField(max_length=20, choices=Formulation.choices)

    strength_value = models.DecimalField(max_digits=12, decimal_places=4, null=True, blank=True)
    strength_unit = models.CharField(max_length=20, blank=True, default="")
    concentration_value = models.DecimalField(max_digits=12, decimal_places=4, null=True, blank=True)
    concentration_unit = models.CharField(max_length=20, blank=True, default="")
    package_size_value = models.DecimalField(max_digits=12, decimal_places=4, null=True, blank=True)
    package_size_unit = models.CharField(max_length=20, blank=True, default="")

    category = models.CharField(max_length=20, choices=Category.choices)
    unit_of_measure = models.CharField(max_length=30)

    dispensary_reorder_level = models.PositiveIntegerField(default=0)
    bulk_store_reorder_level = models.PositiveIntegerField(default=0)

    unit_cost = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    selling_price = models.DecimalField(max_digits=15, decimal_places=4, default=0)

    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["generic_name", "id"]
        indexes = [
            models.Index(fields=["generic_name"]),
            models.Index(fields=["category", "is_active"]),
        ]

    @property
    def display_name(self):
        from stock.services.formatting import format_item_name
        return format_item_name(self)

    def reorder_level_for(self, location: str) -> int:
        if location == StockLocation.DISPENSARY:
            return self.dispensary_reorder_level
        return self.bulk_store_reorder_level

    def __str__(self):
        return f"{self.item_code} - {self.display_name}"


class PriceHistory(models.Model):
    item = models.ForeignKey(Item, on_delete=models.CASCADE, related_name="price_history")
    unit_cost = models.DecimalField(max_digits=15, decimal_places=4)
    selling_price = models.DecimalField(max_digits=15, decimal_places=4)
    changed_by = models.ForeignKey(
        "main.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        verbose_name_plural = "Price history"


class Stock(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name="stocks")
    batch_id = models.CharField(max_length=60)
    location = models.CharField(max_length=20, choices=StockLocation.choices)
    current_stock_quantity = models.PositiveIntegerField(default=0)
    expiry_date = models.DateField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["item__generic_name", "expiry_date", "id"]
        constraints = [
            models.UniqueConstraint(
                fields=["item", "batch_id", "location"],
                name="unique_stock_item_batch_location",
            ),
        ]
        indexes = [
            models.Index(fields=["location", "item"]),
            models.Index(fields=["expiry_date"]),
        ]

    def __str__(self):
        return f"{self.item.item_code} [{self.batch_id}] @ {self.get_location_display()}: {self.current_stock_quantity}"


class StockMovement(models.Model):
    class MovementType(models.TextChoices):
        RECEIVE = "RECEIVE", "Received"
        DISPENSE = "DISPENSE", "Dispensed"
        TRANSFER_OUT = "TRANSFER_OUT", "Transfer Out"
        TRANSFER_IN = "TRANSFER_IN", "Transfer In"
        ADJUSTMENT = "ADJUSTMENT", "Adjustment"
        COUNT_ADJUSTMENT = "COUNT_ADJUSTMENT", "Stock Take Adjustment"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name="movements")
    stock = models.ForeignKey(Stock, on_delete=models.SET_NULL, null=True, blank=True, related_name="movements")
    location = models.CharField(max_length=20, choices=StockLocation.choices)
    batch_id = models.CharField(max_length=60, blank=True, default="")
    movement_type = models.CharField(max_length=20, choices=MovementType.choices)
    quantity = models.IntegerField(help_text="Signed change in units")
    quantity_before = models.IntegerField()
    quantity_after = models.IntegerField()
    reference = models.CharField(max_length=60, blank=True, default="")
    notes = models.TextField(blank=True, default="")
    user = models.ForeignKey(
        "main.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["item", "movement_type", "created_at"]),
        ]

    def __str__(self):
        return f"{self.get_movement_type_display()} {self.quantity:+d} {self.item.item_code}"


class Vendor(models.Model):
    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    code = models.CharField(max_length=30, unique=True)
    name = models.CharField(max_length=150)
    contact_person = models.CharField(max_length=100, blank=True, default="")
    email = models.EmailField(blank=True, default="")
    phone = models.CharField(max_length=50, blank=True, default="")
    address = models.TextField(blank=True, default="")
    supplies = models.ManyToManyField(Item, blank=True, related_name="vendors")
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name", "id"]

    def __str__(self):
        return self.name


class ProcurementSession(models.Model):
    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        COMPLETED = "COMPLETED", "Completed"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    location = models.CharField(
        max_length=20,
        choices=StockLocation.choices,
        default=StockLocation.BULK_STORE,
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT)
    procurement_list = models.JSONField(default=list, blank=True, help_text="Ordered item ids")
    vendor_quotes = models.JSONField(
        default=dict,
        blank=True,
        help_text="{item_id: {vendor_id: entered price}}",
    )
    lpo_quantities = models.JSONField(default=dict, blank=True, help_text="{item_id: quantity}")
    created_by = models.ForeignKey(
        "main.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    completed_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"Procurement #{self.id} ({self.get_status_display()})"


class LocalPurchaseOrder(models.Model):
    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        SENT = "SENT", "Sent"
        COMPLETED = "COMPLETED", "Completed"
        REJECTED = "REJECTED", "Rejected"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    lpo_number = models.CharField(max_length=30, unique=True)
    vendor = models.ForeignKey(Vendor, on_delete=models.PROTECT, related_name="purchase_orders")
    vendor_name = models.CharField(max_length=150)
    procurement_session = models.ForeignKey(
        ProcurementSession,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="purchase_orders",
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.DRAFT)
    order_date = models.DateField()
    grand_total = models.DecimalField(max_digits=15, decimal_places=4, default=0)
    notes = models.TextField(blank=True, default="")
    created_by = models.ForeignKey(
        "main.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    sent_at = models.DateTimeField(null=True, blank=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        verbose_name = "Local purchase order"

    def __str__(self):
        return f"{self.lpo_number} - {self.vendor_name}"


class LocalPurchaseOrderItem(models.Model):
    purchase_order = models.ForeignKey(LocalPurchaseOrder, on_delete=models.CASCADE, related_name="items")
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name="+")
    item_name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField()
    unit_price = models.DecimalField(max_digits=15, decimal_places=4)
    total = models.DecimalField(max_digits=15, decimal_places=4)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.item_name} x {self.quantity}"


class InternalOrder(models.Model):
    class Status(models.TextChoices):
        PENDING = "PENDING", "Pending"
        APPROVED = "APPROVED", "Approved"
        ISSUED = "ISSUED", "Issued"
        REJECTED = "REJECTED", "Rejected"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    order_number = models.CharField(max_length=30, unique=True)
    requesting_location = models.CharField(
        max_length=20,
        choices=StockLocation.choices,
        default=StockLocation.DISPENSARY,
    )
    supplying_location = models.CharField(
        max_length=20,
        choices=StockLocation.choices,
        default=StockLocation.BULK_STORE,
    )
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    notes = models.TextField(blank=True, default="")
    requested_by = models.ForeignKey(
        "main.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    processed_by = models.ForeignKey(
        "main.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    rejection_reason = models.TextField(blank=True, default="")
    issued_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.order_number} ({self.get_status_display()})"


class InternalOrderItem(models.Model):
    order = models.ForeignKey(InternalOrder, on_delete=models.CASCADE, related_name="items")
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name="+")
    item_name = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField()

    class Meta:
        ordering = ["id"]


class StockTakeSession(models.Model):
    class Status(models.TextChoices):
        ONGOING = "ONGOING", "Ongoing"
        COMPLETED = "COMPLETED", "Completed"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    session_number = models.CharField(max_length=30, unique=True)
    location = models.CharField(max_length=20, choices=StockLocation.choices)
    status = models.CharField(max_length=20, choices=Status.choices, default=Status.ONGOING)
    notes = models.TextField(blank=True, default="")
    started_by = models.ForeignKey(
        "main.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    completed_by = models.ForeignKey(
        "main.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    started_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-started_at", "-id"]

    def __str__(self):
        return f"{self.session_number} @ {self.get_location_display()}"


class StockTakeItem(models.Model):
    session = models.ForeignKey(StockTakeSession, on_delete=models.CASCADE, related_name="items")
    stock = models.ForeignKey(Stock, on_delete=models.SET_NULL, null=True, blank=True, related_name="+")
    item = models.ForeignKey(Item, on_delete=models.PROTECT, related_name="+")
    item_name = models.CharField(max_length=255)
    batch_id = models.CharField(max_length=60)
    expiry_date = models.DateField(null=True, blank=True)
    system_quantity = models.IntegerField()
    physical_quantity = models.IntegerField()
    variance = models.IntegerField(default=0)

    class Meta:
        ordering = ["item_name", "batch_id", "id"]
