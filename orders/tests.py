"""
Tests for the order ledger.

Test Cases:
1. Order totals are constrained to subtotal + shipping
2. Tracking history is appended in timestamp order
3. Delivery confirmation releases held escrow exactly once
4. Delivery confirmation refused without held escrow
5. Buyers only see their own orders
"""
from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction
from django.test import TestCase
from django.urls import reverse
from django.utils import timezone

from inventory.models import Vendor, Product
from orders.models import Order, OrderItem, OrderTrackingUpdate
from orders.services import append_tracking_update, confirm_delivery, OrderTransitionError

User = get_user_model()


class OrderModelTestCase(TestCase):

    def setUp(self):
        self.buyer = User.objects.create_user('buyer', 'buyer@example.com', 'password')

    def test_total_must_match_components(self):
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                Order.objects.create(
                    buyer=self.buyer,
                    subtotal=Decimal('100.00'),
                    shipping_fee=Decimal('10.00'),
                    total=Decimal('90.00'),
                )

    def test_new_order_awaits_payment(self):
        order = Order.objects.create(
            buyer=self.buyer,
            subtotal=Decimal('100.00'),
            shipping_fee=Decimal('10.00'),
            total=Decimal('110.00'),
        )

        self.assertEqual(order.status, Order.Status.PENDING_PAYMENT)
        self.assertEqual(order.payment_status, Order.PaymentStatus.PENDING)
        self.assertEqual(order.escrow_status, Order.EscrowStatus.NONE)
        self.assertIsNone(order.payment_reference)
        self.assertFalse(order.is_paid)
        self.assertEqual(order.short_id, str(order.id)[:8])

    def test_tracking_updates_ordered_by_timestamp(self):
        order = Order.objects.create(buyer=self.buyer)
        now = timezone.now()
        append_tracking_update(order.id, Order.Status.SHIPPED, 'Shipped', timestamp=now)
        append_tracking_update(order.id, Order.Status.PAYMENT_CONFIRMED, 'Paid', timestamp=now - timedelta(hours=1))

        statuses = list(order.tracking_updates.values_list('status', flat=True))

        self.assertEqual(statuses, [Order.Status.PAYMENT_CONFIRMED, Order.Status.SHIPPED])


class ConfirmDeliveryTestCase(TestCase):
    """Test cases for escrow release on delivery confirmation."""

    def setUp(self):
        self.buyer = User.objects.create_user('buyer', 'buyer@example.com', 'password')
        self.other_buyer = User.objects.create_user('other', 'other@example.com', 'password')
        self.order = Order.objects.create(
            buyer=self.buyer,
            subtotal=Decimal('64000.00'),
            shipping_fee=Decimal('1000.00'),
            total=Decimal('65000.00'),
            status=Order.Status.SHIPPED,
            payment_status=Order.PaymentStatus.PAID,
            payment_reference='ORD-O1-123',
            escrow_status=Order.EscrowStatus.HELD,
        )

    def test_confirm_releases_escrow(self):
        order = confirm_delivery(self.order.id, self.buyer)

        self.assertEqual(order.status, Order.Status.COMPLETED)
        self.assertEqual(order.escrow_status, Order.EscrowStatus.RELEASED)
        self.assertIsNotNone(order.confirmed_at)
        self.assertEqual(order.payment_reference, 'ORD-O1-123')

        update = OrderTrackingUpdate.objects.get(order=self.order)
        self.assertEqual(update.status, Order.Status.COMPLETED)

    def test_second_confirmation_refused(self):
        confirm_delivery(self.order.id, self.buyer)

        with self.assertRaises(OrderTransitionError):
            confirm_delivery(self.order.id, self.buyer)

        self.assertEqual(OrderTrackingUpdate.objects.filter(order=self.order).count(), 1)

    def test_unpaid_order_refused(self):
        Order.objects.filter(id=self.order.id).update(
            payment_status=Order.PaymentStatus.PENDING,
            payment_reference=None,
            escrow_status=Order.EscrowStatus.NONE,
            status=Order.Status.PENDING_PAYMENT,
        )

        with self.assertRaises(OrderTransitionError):
            confirm_delivery(self.order.id, self.buyer)

        self.order.refresh_from_db()
        self.assertEqual(self.order.escrow_status, Order.EscrowStatus.NONE)

    def test_other_buyer_cannot_confirm(self):
        with self.assertRaises(Order.DoesNotExist):
            confirm_delivery(self.order.id, self.other_buyer)

        self.order.refresh_from_db()
        self.assertEqual(self.order.escrow_status, Order.EscrowStatus.HELD)


class OrderAPITestCase(TestCase):
    """Test cases for the buyer-facing order endpoints."""

    def setUp(self):
        self.buyer = User.objects.create_user('buyer', 'buyer@example.com', 'password')
        self.other_buyer = User.objects.create_user('other', 'other@example.com', 'password')
        vendor_user = User.objects.create_user('vendor', 'vendor@example.com', 'password')
        self.vendor = Vendor.objects.create(user=vendor_user, store_name='Abuja Fabrics')
        self.product = Product.objects.create(
            vendor=self.vendor,
            name='Ankara Fabric',
            price=Decimal('5000.00'),
            stock_quantity=20,
        )

        self.paid_order = Order.objects.create(
            buyer=self.buyer,
            subtotal=Decimal('10000.00'),
            shipping_fee=Decimal('1500.00'),
            total=Decimal('11500.00'),
            payment_status=Order.PaymentStatus.PAID,
            payment_reference='ORD-PAID-1',
            status=Order.Status.PAYMENT_CONFIRMED,
            escrow_status=Order.EscrowStatus.HELD,
        )
        OrderItem.objects.create(
            order=self.paid_order,
            vendor=self.vendor,
            product=self.product,
            product_name=self.product.name,
            quantity=2,
            unit_price=Decimal('5000.00'),
            total_price=Decimal('10000.00'),
        )
        append_tracking_update(
            self.paid_order.id, Order.Status.PAYMENT_CONFIRMED, 'Payment received and held in escrow'
        )

        self.pending_order = Order.objects.create(
            buyer=self.buyer,
            subtotal=Decimal('5000.00'),
            shipping_fee=Decimal('0.00'),
            total=Decimal('5000.00'),
        )
        Order.objects.create(
            buyer=self.other_buyer,
            subtotal=Decimal('5000.00'),
            shipping_fee=Decimal('0.00'),
            total=Decimal('5000.00'),
        )

        self.client.force_login(self.buyer)

    def test_list_only_own_orders(self):
        response = self.client.get(reverse('orders:order-list'))

        self.assertEqual(response.status_code, 200)
        ids = {row['id'] for row in response.data['results']}
        self.assertEqual(ids, {str(self.paid_order.id), str(self.pending_order.id)})

    def test_list_filters_by_escrow_status(self):
        response = self.client.get(reverse('orders:order-list'), {'escrow_status': 'held'})

        results = response.data['results']
        self.assertEqual(len(results), 1)
        self.assertEqual(results[0]['id'], str(self.paid_order.id))
        self.assertEqual(results[0]['item_count'], 1)

    def test_detail_includes_items_and_tracking(self):
        response = self.client.get(reverse('orders:order-detail', args=[self.paid_order.id]))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['payment_reference'], 'ORD-PAID-1')
        self.assertEqual(response.data['items'][0]['vendor_name'], 'Abuja Fabrics')
        self.assertEqual(len(response.data['tracking_updates']), 1)
        self.assertEqual(response.data['tracking_updates'][0]['status'], Order.Status.PAYMENT_CONFIRMED)

    def test_detail_of_other_buyers_order_is_not_found(self):
        other_order = Order.objects.get(buyer=self.other_buyer)

        response = self.client.get(reverse('orders:order-detail', args=[other_order.id]))

        self.assertEqual(response.status_code, 404)

    def test_confirm_delivery_endpoint(self):
        response = self.client.post(reverse('orders:order-confirm-delivery', args=[self.paid_order.id]))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.data['status'], Order.Status.COMPLETED)
        self.assertEqual(response.data['escrow_status'], Order.EscrowStatus.RELEASED)
        self.assertEqual(len(response.data['tracking_updates']), 2)

    def test_confirm_delivery_without_escrow_conflicts(self):
        response = self.client.post(reverse('orders:order-confirm-delivery', args=[self.pending_order.id]))

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.data['error'], 'Conflict')

    def test_confirm_delivery_unknown_order(self):
        other_order = Order.objects.get(buyer=self.other_buyer)

        response = self.client.post(reverse('orders:order-confirm-delivery', args=[other_order.id]))

        self.assertEqual(response.status_code, 404)

    def test_requires_authentication(self):
        self.client.logout()

        response = self.client.get(reverse('orders:order-list'))

        self.assertIn(response.status_code, (401, 403))
