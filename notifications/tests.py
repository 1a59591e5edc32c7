"""
Tests for post-settlement notification fan-out.
"""
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase

from inventory.models import Vendor, Product
from notifications.models import Notification
from notifications.tasks import dispatch_payment_notifications, format_amount
from orders.models import Order, OrderItem

User = get_user_model()


class PaymentNotificationTestCase(TestCase):

    def setUp(self):
        self.buyer = User.objects.create_user('buyer', 'buyer@example.com', 'password')
        self.staff = User.objects.create_user('ops', 'ops@example.com', 'password', is_staff=True)
        User.objects.create_user('former-ops', 'former@example.com', 'password', is_staff=True, is_active=False)

        self.vendor_user_a = User.objects.create_user('vendor-a', 'a@example.com', 'password')
        self.vendor_user_b = User.objects.create_user('vendor-b', 'b@example.com', 'password')
        vendor_a = Vendor.objects.create(user=self.vendor_user_a, store_name='Jos Crafts')
        vendor_b = Vendor.objects.create(user=self.vendor_user_b, store_name='Benin Beauty')

        self.order = Order.objects.create(
            buyer=self.buyer,
            subtotal=Decimal('64000.00'),
            shipping_fee=Decimal('1000.00'),
            total=Decimal('65000.00'),
            payment_status=Order.PaymentStatus.PAID,
            payment_reference='ORD-O1-123',
            status=Order.Status.PAYMENT_CONFIRMED,
            escrow_status=Order.EscrowStatus.HELD,
        )

        lines = [
            (vendor_a, 'Clay Pot', Decimal('10000.00')),
            (vendor_a, 'Woven Basket', Decimal('12000.00')),
            (vendor_a, 'Beaded Necklace', Decimal('8000.00')),
            (vendor_b, 'Shea Butter', Decimal('34000.00')),
        ]
        for vendor, name, price in lines:
            product = Product.objects.create(vendor=vendor, name=name, price=price, stock_quantity=5)
            OrderItem.objects.create(
                order=self.order,
                vendor=vendor,
                product=product,
                product_name=name,
                quantity=1,
                unit_price=price,
                total_price=price,
            )

    def test_fan_out_to_buyer_vendors_and_staff(self):
        result = dispatch_payment_notifications(str(self.order.id))

        self.assertEqual(result['status'], 'success')
        self.assertEqual(result['sent'], 4)

        buyer_note = Notification.objects.get(user=self.buyer)
        self.assertEqual(buyer_note.title, 'Payment Confirmed!')
        self.assertIn('₦65,000.00', buyer_note.message)
        self.assertEqual(buyer_note.category, Notification.Category.PAYMENT)
        self.assertEqual(buyer_note.action_url, f'/orders/{self.order.id}')

        vendor_note = Notification.objects.get(user=self.vendor_user_a)
        self.assertEqual(vendor_note.title, 'New Order Received!')
        self.assertIn('Clay Pot, Woven Basket +1 more', vendor_note.message)
        self.assertIn('₦30,000.00', vendor_note.message)

        other_vendor_note = Notification.objects.get(user=self.vendor_user_b)
        self.assertNotIn('more', other_vendor_note.message)

        staff_note = Notification.objects.get(user=self.staff)
        self.assertIn(f'#{self.order.short_id}', staff_note.message)

    def test_unpaid_order_skipped(self):
        Order.objects.filter(id=self.order.id).update(
            payment_status=Order.PaymentStatus.PENDING, payment_reference=None
        )

        result = dispatch_payment_notifications(str(self.order.id))

        self.assertEqual(result['status'], 'skipped')
        self.assertFalse(Notification.objects.exists())

    def test_unknown_order(self):
        result = dispatch_payment_notifications('00000000-0000-0000-0000-000000000000')

        self.assertEqual(result['status'], 'error')

    def test_format_amount(self):
        self.assertEqual(format_amount(Decimal('1234567.5')), '₦1,234,567.50')
