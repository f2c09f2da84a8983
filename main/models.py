"""
MediTrack core models: users, sessions, audit trail and clinic settings.
"""

import uuid
from django.conf import settings
from django.core.cache import cache
from django.db import models


CLINIC_SETTINGS_CACHE_KEY = 'main:clinic_settings'


# =============================================================================
# USERS
# =============================================================================

class User(models.Model):
    class RoleChoices(models.TextChoices):
        ADMIN = "ADMIN", "Admin"
        CASHIER = "CASHIER", "Cashier"
        PHARMACY = "PHARMACY", "Pharmacy"

    class UserStatus(models.TextChoices):
        ACTIVE = "ACTIVE", "Active"
        SUSPENDED = "SUSPENDED", "Suspended"

    uuid = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    first_name = models.CharField(max_length=50)
    last_name = models.CharField(max_length=50)
    email = models.EmailField(unique=True)
    password = models.CharField(max_length=128)

    role = models.CharField(
        max_length=10,
        choices=RoleChoices.choices,
        default=RoleChoices.PHARMACY
    )

    status = models.CharField(
        max_length=10,
        choices=UserStatus.choices,
        default=UserStatus.ACTIVE
    )

    is_deleted = models.BooleanField(default=False, db_index=True)
    last_login_at = models.DateTimeField(null=True, blank=True)
    last_login_ip = models.CharField(max_length=45, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["first_name", "last_name"]

    @property
    def is_authenticated(self):
        return True

    @property
    def display_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def __str__(self):
        return self.display_name


class Session(models.Model):
    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="sessions")
    ip_address = models.CharField(max_length=45)
    user_agent = models.CharField(max_length=200, null=True, blank=True)
    payload = models.CharField(max_length=64, db_index=True)
    last_activity = models.DateTimeField(auto_now=True)
    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return f"{self.user} @ {self.ip_address}"


# =============================================================================
# AUDIT TRAIL
# =============================================================================

class AuditLog(models.Model):
    uuid = models.UUIDField(default=uuid.uuid4, unique=True, editable=False)
    user = models.ForeignKey(
        User,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="audit_logs",
    )
    user_display_name = models.CharField(max_length=120, blank=True, default="System")
    action = models.CharField(max_length=100, db_index=True)
    details = models.JSONField(default=dict, blank=True)
    timestamp = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        ordering = ["-timestamp", "-id"]

    def __str__(self):
        return f"{self.timestamp:%Y-%m-%d %H:%M} {self.user_display_name}: {self.action}"


# =============================================================================
# CLINIC SETTINGS
# =============================================================================

class ClinicSettings(models.Model):
    clinic_name = models.CharField(max_length=150)
    address = models.CharField(max_length=255, blank=True, default="")
    phone = models.CharField(max_length=50, blank=True, default="")
    currency = models.CharField(max_length=3)
    usage_history_days = models.PositiveIntegerField(
        default=30,
        help_text="Days of dispensing history sent to stock predictions",
    )
    expiry_warning_days = models.PositiveIntegerField(
        default=90,
        help_text="Batches expiring within this many days are flagged",
    )
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Clinic Settings"
        verbose_name_plural = "Clinic Settings"

    def save(self, *args, **kwargs):
        self.pk = 1
        super().save(*args, **kwargs)
        cache.delete(CLINIC_SETTINGS_CACHE_KEY)

    def delete(self, *args, **kwargs):
        pass

    @classmethod
    def load(cls):
        obj = cache.get(CLINIC_SETTINGS_CACHE_KEY)
        if obj is None:
            obj, _ = cls.objects.get_or_create(pk=1, defaults=settings.CLINIC_DEFAULTS)
            cache.set(CLINIC_SETTINGS_CACHE_KEY, obj, 300)
        return obj

    def __str__(self):
        return self.clinic_name
