from django.contrib import admin
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display
from unfold.contrib.filters.admin import RangeDateTimeFilter

from .models import Patient, ClinicService, Bill, BillLine


@admin.register(Patient)
class PatientAdmin(ModelAdmin):
    list_display = ['id', 'full_name', 'phone', 'gender', 'date_of_birth', 'created_at']
    list_filter = ['gender']
    search_fields = ['first_name', 'last_name', 'phone']


@admin.register(ClinicService)
class ClinicServiceAdmin(ModelAdmin):
    list_display = ['name', 'fee', 'is_active']
    list_filter = ['is_active']
    search_fields = ['name']


class BillLineInline(TabularInline):
    model = BillLine
    extra = 0
    readonly_fields = ['line_type', 'item', 'service', 'description', 'quantity', 'unit_price', 'total']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Bill)
class BillAdmin(ModelAdmin):
    list_display = ['bill_number', 'patient_name', 'bill_type', 'grand_total', 'payment_badge', 'dispensed_badge',
                    'created_at']
    list_filter = [
        'payment_status',
        'bill_type',
        'payment_method',
        'is_dispensed',
        ('created_at', RangeDateTimeFilter),
    ]
    search_fields = ['bill_number', 'patient_name', 'prescription_number']
    list_filter_submit = True
    inlines = [BillLineInline]
    readonly_fields = ['bill_number', 'subtotal', 'grand_total', 'amount_tendered', 'change', 'payment_status',
                       'paid_at', 'is_dispensed', 'dispensed_at', 'dispensed_by', 'created_by']

    @display(description=_("Payment"), label=True)
    def payment_badge(self, obj):
        if obj.payment_status == Bill.PaymentStatus.PAID:
            return 'success', obj.get_payment_status_display()
        return 'warning', obj.get_payment_status_display()

    @display(description=_("Dispensed"), label=True)
    def dispensed_badge(self, obj):
        return ('success', _('Yes')) if obj.is_dispensed else ('info', _('No'))
