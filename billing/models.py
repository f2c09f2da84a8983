import uuid as uuid_lib

from django.db import models

from stock.models import Item, StockLocation


class Patient(models.Model):
    class Gender(models.TextChoices):
        MALE = "MALE", "Male"
        FEMALE = "FEMALE", "Female"
        OTHER = "OTHER", "Other"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100, blank=True, default="")
    phone = models.CharField(max_length=50, blank=True, default="")
    date_of_birth = models.DateField(null=True, blank=True)
    gender = models.CharField(max_length=10, choices=Gender.choices, blank=True, default="")
    address = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["first_name", "last_name", "id"]
        indexes = [
            models.Index(fields=["phone"]),
        ]

    @property
    def full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def __str__(self):
        return self.full_name


class ClinicService(models.Model):
    name = models.CharField(max_length=150, unique=True)
    fee = models.DecimalField(max_digits=15, decimal_places=2)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.fee})"


class Bill(models.Model):
    class BillType(models.TextChoices):
        WALK_IN = "WALK_IN", "Walk-in"
        OPD = "OPD", "OPD"

    class PaymentMethod(models.TextChoices):
        CASH = "CASH", "Cash"
        MOBILE_MONEY = "MOBILE_MONEY", "Mobile Money"
        BANK = "BANK", "Bank"
        INVOICE = "INVOICE", "Invoice"

    class PaymentStatus(models.TextChoices):
        PAID = "PAID", "Paid"
        UNPAID = "UNPAID", "Unpaid"

    uuid = models.UUIDField(default=uuid_lib.uuid4, unique=True, editable=False)
    bill_number = models.CharField(max_length=30, unique=True)
    patient = models.ForeignKey(Patient, on_delete=models.SET_NULL, null=True, blank=True, related_name="bills")
    patient_name = models.CharField(max_length=200)
    bill_type = models.CharField(max_length=10, choices=BillType.choices, default=BillType.WALK_IN)
    prescription_number = models.CharField(max_length=60, blank=True, default="")

    subtotal = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    discount = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    grand_total = models.DecimalField(max_digits=15, decimal_places=2, default=0)

    payment_method = models.CharField(max_length=20, choices=PaymentMethod.choices, default=PaymentMethod.CASH)
    amount_tendered = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    change = models.DecimalField(max_digits=15, decimal_places=2, default=0)
    transaction_id = models.CharField(max_length=100, blank=True, default="")
    payment_status = models.CharField(max_length=10, choices=PaymentStatus.choices, default=PaymentStatus.UNPAID)
    paid_at = models.DateTimeField(null=True, blank=True)

    dispensing_location = models.CharField(
        max_length=20,
        choices=StockLocation.choices,
        default=StockLocation.DISPENSARY,
    )
    is_dispensed = models.BooleanField(default=False)
    dispensed_at = models.DateTimeField(null=True, blank=True)
    dispensed_by = models.ForeignKey(
        "main.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )

    created_by = models.ForeignKey(
        "main.User",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(fields=["payment_status", "is_dispensed"]),
        ]

    def __str__(self):
        return f"{self.bill_number} - {self.patient_name}"


class BillLine(models.Model):
    class LineType(models.TextChoices):
        ITEM = "ITEM", "Item"
        SERVICE = "SERVICE", "Service"

    bill = models.ForeignKey(Bill, on_delete=models.CASCADE, related_name="lines")
    line_type = models.CharField(max_length=10, choices=LineType.choices)
    item = models.ForeignKey(Item, on_delete=models.PROTECT, null=True, blank=True, related_name="+")
    service = models.ForeignKey(ClinicService, on_delete=models.PROTECT, null=True, blank=True, related_name="+")
    description = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=15, decimal_places=4)
    total = models.DecimalField(max_digits=15, decimal_places=2)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.description} x {self.quantity}"
