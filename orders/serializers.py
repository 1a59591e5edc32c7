"""
Serializers for order models.
"""
from rest_framework import serializers
from .models import Order, OrderItem, OrderTrackingUpdate


class OrderItemSerializer(serializers.ModelSerializer):
    """Serializer for the price snapshot of an order line."""
    vendor_name = serializers.CharField(source='vendor.store_name', read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            'id', 'vendor', 'vendor_name', 'product', 'product_name',
            'variant', 'variant_name', 'quantity', 'unit_price', 'total_price'
        ]
        read_only_fields = fields


class TrackingUpdateSerializer(serializers.ModelSerializer):

    class Meta:
        model = OrderTrackingUpdate
        fields = ['status', 'message', 'timestamp']
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """
    Serializer for Order model with nested items and tracking history.
    Uses prefetch_related for optimized queries.
    """
    items = OrderItemSerializer(many=True, read_only=True)
    tracking_updates = TrackingUpdateSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            'id', 'status', 'payment_status', 'payment_reference', 'escrow_status',
            'subtotal', 'shipping_fee', 'total', 'shipping_address',
            'items', 'tracking_updates',
            'paid_at', 'confirmed_at', 'created_at', 'updated_at'
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """
    Optimized serializer for listing orders.
    """
    item_count = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id', 'status', 'payment_status', 'escrow_status',
            'total', 'item_count', 'created_at'
        ]

    def get_item_count(self, obj):
        # Use prefetched items count if available
        if hasattr(obj, '_prefetched_objects_cache') and 'items' in obj._prefetched_objects_cache:
            return len(obj.items.all())
        return obj.items.count()
