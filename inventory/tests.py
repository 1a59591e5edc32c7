"""
Tests for stock adjustment after settlement.

Test Cases:
1. Product stock decremented by item quantity
2. Stock floored at zero, never negative
3. Variant stock decremented independently of the product
4. Missing catalogue rows skipped, remaining items still adjusted
5. Failure on one item does not stop the others
"""
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.test import TestCase

from inventory.models import Vendor, Product, ProductVariant
from inventory.services import apply_order_stock
from orders.models import Order, OrderItem

User = get_user_model()


class ApplyOrderStockTestCase(TestCase):
    """Test cases for apply_order_stock."""

    def setUp(self):
        vendor_user = User.objects.create_user('vendor', 'vendor@example.com', 'password')
        self.vendor = Vendor.objects.create(user=vendor_user, store_name='Kano Leatherworks')
        self.buyer = User.objects.create_user('buyer', 'buyer@example.com', 'password')

        self.sandals = Product.objects.create(
            vendor=self.vendor, name='Leather Sandals', price=Decimal('8000.00'), stock_quantity=10
        )
        self.bag = Product.objects.create(
            vendor=self.vendor, name='Leather Bag', price=Decimal('15000.00'), stock_quantity=5
        )
        self.size_42 = ProductVariant.objects.create(product=self.sandals, name='42', stock_quantity=3)

        self.order = Order.objects.create(buyer=self.buyer)

    def add_item(self, product, quantity, variant=None):
        return OrderItem.objects.create(
            order=self.order,
            vendor=self.vendor,
            product=product,
            variant=variant,
            product_name=product.name,
            variant_name=variant.name if variant else '',
            quantity=quantity,
            unit_price=product.price,
            total_price=product.price * quantity,
        )

    def test_decrements_product_stock(self):
        self.add_item(self.bag, 2)

        apply_order_stock(self.order.id)

        self.bag.refresh_from_db()
        self.assertEqual(self.bag.stock_quantity, 3)

    def test_stock_floored_at_zero(self):
        self.add_item(self.bag, 8)

        apply_order_stock(self.order.id)

        self.bag.refresh_from_db()
        self.assertEqual(self.bag.stock_quantity, 0)
        self.assertTrue(self.bag.is_out_of_stock)

    def test_variant_and_product_decremented_independently(self):
        self.add_item(self.sandals, 2, variant=self.size_42)

        apply_order_stock(self.order.id)

        self.sandals.refresh_from_db()
        self.size_42.refresh_from_db()
        self.assertEqual(self.sandals.stock_quantity, 8)
        self.assertEqual(self.size_42.stock_quantity, 1)

    def test_variant_floored_at_zero(self):
        self.add_item(self.sandals, 5, variant=self.size_42)

        apply_order_stock(self.order.id)

        self.sandals.refresh_from_db()
        self.size_42.refresh_from_db()
        self.assertEqual(self.sandals.stock_quantity, 5)
        self.assertEqual(self.size_42.stock_quantity, 0)

    def test_missing_product_skipped(self):
        self.add_item(self.sandals, 1)
        self.add_item(self.bag, 1)
        Product.objects.filter(pk=self.sandals.pk).delete()

        with self.assertLogs('inventory.services', level='WARNING') as logs:
            apply_order_stock(self.order.id)

        self.assertTrue(any('not found' in line for line in logs.output))
        self.bag.refresh_from_db()
        self.assertEqual(self.bag.stock_quantity, 4)

    def test_failure_on_one_item_continues_with_rest(self):
        self.add_item(self.sandals, 1)
        self.add_item(self.bag, 1)

        with patch('inventory.services._decrement', side_effect=[DatabaseError('locked'), 1]) as mock_decrement:
            with self.assertLogs('inventory.services', level='ERROR'):
                apply_order_stock(self.order.id)

        self.assertEqual(mock_decrement.call_count, 2)
        self.assertEqual(mock_decrement.call_args.args, (Product, self.bag.id, 1))

    def test_order_without_items(self):
        apply_order_stock(self.order.id)

        self.sandals.refresh_from_db()
        self.assertEqual(self.sandals.stock_quantity, 10)
