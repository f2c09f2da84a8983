from django.contrib import admin
from django.utils.translation import gettext_lazy as _
from unfold.admin import ModelAdmin, TabularInline
from unfold.decorators import display
from unfold.contrib.filters.admin import RangeDateFilter, RangeDateTimeFilter

from .models import (
    Item, PriceHistory, Stock, StockMovement, Vendor,
    ProcurementSession, LocalPurchaseOrder, LocalPurchaseOrderItem,
    InternalOrder, InternalOrderItem, StockTakeSession, StockTakeItem,
)
from .services.formatting import format_item_name


STATUS_COLORS = {
    'DRAFT': 'info',
    'SENT': 'warning',
    'COMPLETED': 'success',
    'REJECTED': 'danger',
    'PENDING': 'warning',
    'APPROVED': 'info',
    'ISSUED': 'success',
    'ONGOING': 'warning',
}


class PriceHistoryInline(TabularInline):
    model = PriceHistory
    extra = 0
    can_delete = False
    readonly_fields = ['unit_cost', 'selling_price', 'changed_by', 'created_at']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Item)
class ItemAdmin(ModelAdmin):
    list_display = ['item_code', 'name', 'category', 'unit_of_measure', 'unit_cost', 'selling_price', 'active_badge']
    list_filter = ['category', 'formulation', 'is_active']
    search_fields = ['item_code', 'generic_name', 'brand_name']
    list_filter_submit = True
    inlines = [PriceHistoryInline]

    fieldsets = (
        (_('Identification'), {
            'fields': ('item_code', 'generic_name', 'brand_name', 'formulation', 'category', 'unit_of_measure'),
            'classes': ['tab'],
        }),
        (_('Descriptors'), {
            'fields': (
                ('strength_value', 'strength_unit'),
                ('concentration_value', 'concentration_unit'),
                ('package_size_value', 'package_size_unit'),
            ),
            'classes': ['tab'],
        }),
        (_('Stock & Pricing'), {
            'fields': ('dispensary_reorder_level', 'bulk_store_reorder_level', 'unit_cost', 'selling_price',
                       'is_active'),
            'classes': ['tab'],
        }),
    )

    def get_readonly_fields(self, request, obj=None):
        # Codes are permanent once issued
        return ['item_code'] if obj else []

    @display(description=_("Name"), ordering='generic_name')
    def name(self, obj):
        return format_item_name(obj)

    @display(description=_("Active"), label=True)
    def active_badge(self, obj):
        return ('success', _('Active')) if obj.is_active else ('danger', _('Inactive'))


@admin.register(Stock)
class StockAdmin(ModelAdmin):
    list_display = ['item', 'batch_id', 'location', 'current_stock_quantity', 'expiry_date']
    list_filter = [
        'location',
        ('expiry_date', RangeDateFilter),
    ]
    search_fields = ['item__generic_name', 'item__item_code', 'batch_id']
    list_filter_submit = True
    list_select_related = ['item']
    # Quantities only change through the API so every change leaves a movement
    readonly_fields = ['current_stock_quantity']


@admin.register(StockMovement)
class StockMovementAdmin(ModelAdmin):
    list_display = ['created_at', 'item', 'location', 'movement_type', 'quantity', 'quantity_after', 'reference']
    list_filter = [
        'movement_type',
        'location',
        ('created_at', RangeDateTimeFilter),
    ]
    search_fields = ['item__generic_name', 'batch_id', 'reference']
    list_filter_submit = True

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


@admin.register(Vendor)
class VendorAdmin(ModelAdmin):
    list_display = ['code', 'name', 'contact_person', 'phone', 'email', 'is_active']
    list_filter = ['is_active']
    search_fields = ['code', 'name', 'contact_person']
    filter_horizontal = ['supplies']


@admin.register(ProcurementSession)
class ProcurementSessionAdmin(ModelAdmin):
    list_display = ['id', 'location', 'status_badge', 'created_by', 'created_at', 'completed_at']
    list_filter = ['status', 'location']
    readonly_fields = ['procurement_list', 'vendor_quotes', 'lpo_quantities', 'completed_at']

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        return STATUS_COLORS.get(obj.status, 'info'), obj.get_status_display()


class LocalPurchaseOrderItemInline(TabularInline):
    model = LocalPurchaseOrderItem
    extra = 0
    readonly_fields = ['item', 'item_name', 'quantity', 'unit_price', 'total']

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(LocalPurchaseOrder)
class LocalPurchaseOrderAdmin(ModelAdmin):
    list_display = ['lpo_number', 'vendor_name', 'order_date', 'grand_total', 'status_badge']
    list_filter = [
        'status',
        ('order_date', RangeDateFilter),
    ]
    search_fields = ['lpo_number', 'vendor_name']
    list_filter_submit = True
    inlines = [LocalPurchaseOrderItemInline]
    # Status moves through the API state machine only
    readonly_fields = ['lpo_number', 'vendor', 'vendor_name', 'procurement_session', 'status', 'grand_total',
                       'sent_at', 'completed_at', 'rejected_at', 'created_by']

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        return STATUS_COLORS.get(obj.status, 'info'), obj.get_status_display()


class InternalOrderItemInline(TabularInline):
    model = InternalOrderItem
    extra = 0
    readonly_fields = ['item', 'item_name', 'quantity']


@admin.register(InternalOrder)
class InternalOrderAdmin(ModelAdmin):
    list_display = ['order_number', 'status_badge', 'requested_by', 'processed_by', 'created_at', 'issued_at']
    list_filter = ['status']
    search_fields = ['order_number']
    inlines = [InternalOrderItemInline]
    readonly_fields = ['order_number', 'status', 'requested_by', 'processed_by', 'issued_at']

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        return STATUS_COLORS.get(obj.status, 'info'), obj.get_status_display()


class StockTakeItemInline(TabularInline):
    model = StockTakeItem
    extra = 0
    readonly_fields = ['item_name', 'batch_id', 'expiry_date', 'system_quantity', 'physical_quantity', 'variance']
    fields = readonly_fields

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(StockTakeSession)
class StockTakeSessionAdmin(ModelAdmin):
    list_display = ['session_number', 'location', 'status_badge', 'started_by', 'started_at', 'completed_at']
    list_filter = ['status', 'location']
    inlines = [StockTakeItemInline]
    readonly_fields = ['session_number', 'location', 'status', 'started_by', 'completed_by', 'completed_at']

    @display(description=_("Status"), label=True)
    def status_badge(self, obj):
        return STATUS_COLORS.get(obj.status, 'info'), obj.get_status_display()
