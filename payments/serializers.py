"""
Serializers for payment API requests.

Field names follow the storefront's camelCase wire format; validated
data uses snake_case.
"""
from rest_framework import serializers


class InitializePaymentSerializer(serializers.Serializer):
    """
    Request format:
    {
        "orderId": "2f1c...",
        "email": "buyer@example.com",
        "callbackUrl": "https://shop.example.com/orders/2f1c..."
    }
    """
    orderId = serializers.UUIDField(source='order_id')
    email = serializers.EmailField()
    callbackUrl = serializers.URLField(source='callback_url', required=False, allow_blank=True)


class VerifyPaymentSerializer(serializers.Serializer):
    """
    Request format:
    {
        "reference": "ORD-2f1c...-1718000000000",
        "orderId": "2f1c..."          # optional
    }
    """
    reference = serializers.RegexField(r'^[A-Za-z0-9._=-]+$', max_length=128)
    orderId = serializers.UUIDField(source='order_id', required=False, allow_null=True)


class InitializeFeaturedPaymentSerializer(serializers.Serializer):
    """
    Request format:
    {
        "productId": 42,
        "email": "vendor@example.com",     # optional, defaults to the vendor's email
        "promoCode": "...",                 # optional
        "callbackUrl": "https://shop.example.com/vendor/products"
    }
    """
    productId = serializers.IntegerField(source='product_id', min_value=1)
    email = serializers.EmailField(required=False, allow_blank=True)
    promoCode = serializers.CharField(source='promo_code', required=False, allow_blank=True, max_length=64)
    callbackUrl = serializers.URLField(source='callback_url', required=False, allow_blank=True)


class VerifyFeaturedPaymentSerializer(serializers.Serializer):
    reference = serializers.RegexField(r'^[A-Za-z0-9._=-]+$', max_length=128)
