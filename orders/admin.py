"""
Django Admin configuration for order models.

Payment and escrow fields are read-only here: they are only written by
settlement and delivery confirmation.
"""
from django.contrib import admin
from .models import Order, OrderItem, OrderTrackingUpdate


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ['vendor', 'product', 'variant', 'product_name', 'variant_name',
                       'quantity', 'unit_price', 'total_price']
    can_delete = False


class OrderTrackingUpdateInline(admin.TabularInline):
    model = OrderTrackingUpdate
    extra = 0
    readonly_fields = ['status', 'message', 'timestamp']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['id', 'buyer', 'status', 'payment_status', 'escrow_status', 'total', 'item_count', 'created_at']
    list_filter = ['status', 'payment_status', 'escrow_status', 'created_at']
    search_fields = ['id', 'payment_reference', 'buyer__email', 'email']
    ordering = ['-created_at']
    raw_id_fields = ['buyer']
    readonly_fields = ['payment_status', 'payment_reference', 'escrow_status', 'paid_at',
                       'confirmed_at', 'subtotal', 'shipping_fee', 'total', 'created_at', 'updated_at']
    inlines = [OrderItemInline, OrderTrackingUpdateInline]

    def item_count(self, obj):
        return obj.items.count()
    item_count.short_description = 'Items'
