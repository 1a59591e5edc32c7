"""
Tests for payment confirmation and escrow settlement.

Test Cases:
1. Settlement applies exactly once per order (sequential and concurrent)
2. Stock deducted once, floored at zero
3. Settled reference is never overwritten
4. Webhook is an idempotent sink (replays acknowledged, no state change)
5. Unsuccessful transactions never touch the ledger
6. Webhook-then-verify scenario converges on one post-state
7. Gateway client error mapping
8. Verification refuses transactions made for another order
9. Featured-listing payments
"""
import hashlib
import hmac
import json
import threading
import uuid
from datetime import timedelta
from decimal import Decimal
from unittest.mock import MagicMock, patch

import httpx
import redis
from django.contrib.auth import get_user_model
from django.db import DatabaseError, connection
from django.test import TestCase, TransactionTestCase, override_settings
from django.urls import reverse
from django.utils import timezone

from core import rate_limiting
from inventory.models import Vendor, Product
from orders.models import Order, OrderItem, OrderTrackingUpdate
from payments.events import ChargeSucceeded, IgnoredEvent, parse_event, signature_matches
from payments.exceptions import GatewayUnavailable, TransactionNotFound
from payments.gateway import (
    InitializedTransaction,
    PaystackClient,
    VerifiedTransaction,
    to_major_units,
    to_minor_units,
)
from payments.models import PaymentAttempt
from payments.settlement import SettlementOutcome, settle
from payments.tasks import reconcile_pending_payments

User = get_user_model()

WEBHOOK_SECRET = 'sk_test_webhook_secret'


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha512).hexdigest()


def charge_success_body(reference, order_id) -> bytes:
    return json.dumps({
        'event': 'charge.success',
        'data': {
            'reference': reference,
            'amount': 6500000,
            'status': 'success',
            'paid_at': '2026-10-19T10:00:00.000Z',
            'metadata': {'order_id': str(order_id) if order_id else None},
        },
    }).encode()


def verified(reference, status='success', amount_minor=6500000, metadata=None, order_id=None):
    if metadata is None:
        metadata = {'order_id': str(order_id)} if order_id else {}
    return VerifiedTransaction(
        status=status,
        amount_minor=amount_minor,
        reference=reference,
        paid_at=timezone.now() if status == 'success' else None,
        metadata=metadata,
    )


class MarketplaceFixtureMixin:
    """Order of 2 units (unit price 32,000 + 1,000 shipping = 65,000) against stock 10."""

    def create_marketplace(self, stock=10, quantity=2):
        self.buyer = User.objects.create_user('buyer', 'buyer@example.com', 'password')
        vendor_user = User.objects.create_user('vendor', 'vendor@example.com', 'password')
        self.vendor = Vendor.objects.create(user=vendor_user, store_name='Lagos Gadget Hub')
        self.product = Product.objects.create(
            vendor=self.vendor,
            name='Wireless Headphones',
            price=Decimal('32000.00'),
            stock_quantity=stock,
        )
        self.order = Order.objects.create(
            buyer=self.buyer,
            email='buyer@example.com',
            subtotal=Decimal('64000.00'),
            shipping_fee=Decimal('1000.00'),
            total=Decimal('65000.00'),
        )
        OrderItem.objects.create(
            order=self.order,
            vendor=self.vendor,
            product=self.product,
            product_name=self.product.name,
            quantity=quantity,
            unit_price=Decimal('32000.00'),
            total_price=Decimal('32000.00') * quantity,
        )


class MoneyConversionTestCase(TestCase):

    def test_major_to_minor_units(self):
        self.assertEqual(to_minor_units(Decimal('65000.00')), 6500000)
        self.assertEqual(to_minor_units(Decimal('10.005')), 1001)

    def test_minor_to_major_units(self):
        self.assertEqual(to_major_units(6500000), Decimal('65000.00'))
        self.assertEqual(to_major_units(1), Decimal('0.01'))


class SettlementTestCase(MarketplaceFixtureMixin, TestCase):
    """Test cases for the settlement conditional update."""

    def setUp(self):
        self.create_marketplace()

    def test_settle_applies_transition(self):
        """
        Given: A pending order
        When: Settling with a successful transaction
        Then: Order is paid, escrow held, one tracking entry, stock deducted
        """
        outcome = settle(self.order.id, 'ORD-O1-123', 'success')

        self.assertEqual(outcome, SettlementOutcome.APPLIED)

        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.PAID)
        self.assertEqual(self.order.status, Order.Status.PAYMENT_CONFIRMED)
        self.assertEqual(self.order.escrow_status, Order.EscrowStatus.HELD)
        self.assertEqual(self.order.payment_reference, 'ORD-O1-123')
        self.assertIsNotNone(self.order.paid_at)

        updates = list(self.order.tracking_updates.all())
        self.assertEqual(len(updates), 1)
        self.assertEqual(updates[0].status, Order.Status.PAYMENT_CONFIRMED)

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 8)

    def test_repeated_settlement_applies_once(self):
        """
        Test: N calls yield exactly one APPLIED, the rest ALREADY_SETTLED.
        """
        outcomes = [settle(self.order.id, f'REF-{i}', 'success') for i in range(5)]

        self.assertEqual(outcomes.count(SettlementOutcome.APPLIED), 1)
        self.assertEqual(outcomes.count(SettlementOutcome.ALREADY_SETTLED), 4)
        self.assertEqual(OrderTrackingUpdate.objects.filter(order=self.order).count(), 1)

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 8)

    def test_reference_is_write_once(self):
        """
        Test: A later settlement with a different reference does not overwrite.
        """
        settle(self.order.id, 'R1', 'success')
        outcome = settle(self.order.id, 'R2', 'success')

        self.assertEqual(outcome, SettlementOutcome.ALREADY_SETTLED)
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_reference, 'R1')

    def test_unsuccessful_transaction_is_rejected(self):
        """
        Test: A failed transaction never mutates the ledger.
        """
        for status in ('failed', 'abandoned', 'pending'):
            self.assertEqual(
                settle(self.order.id, 'ORD-O1-123', status),
                SettlementOutcome.REJECTED
            )

        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.PENDING)
        self.assertIsNone(self.order.payment_reference)
        self.assertEqual(self.order.escrow_status, Order.EscrowStatus.NONE)
        self.assertFalse(self.order.tracking_updates.exists())

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 10)

    def test_unknown_order_is_rejected(self):
        self.assertEqual(settle(uuid.uuid4(), 'REF', 'success'), SettlementOutcome.REJECTED)
        self.assertEqual(settle('not-a-uuid', 'REF', 'success'), SettlementOutcome.REJECTED)

    def test_reference_already_used_by_another_order_is_rejected(self):
        other = Order.objects.create(
            buyer=self.buyer,
            subtotal=Decimal('100.00'),
            shipping_fee=Decimal('0.00'),
            total=Decimal('100.00'),
        )
        settle(self.order.id, 'SHARED', 'success')

        outcome = settle(other.id, 'SHARED', 'success')

        self.assertEqual(outcome, SettlementOutcome.REJECTED)
        other.refresh_from_db()
        self.assertEqual(other.payment_status, Order.PaymentStatus.PENDING)

    def test_notifications_queued_only_for_applied(self):
        with patch('notifications.tasks.dispatch_payment_notifications.delay') as mock_delay:
            with self.captureOnCommitCallbacks(execute=True):
                settle(self.order.id, 'R1', 'success')
            with self.captureOnCommitCallbacks(execute=True) as callbacks:
                settle(self.order.id, 'R1', 'success')

        mock_delay.assert_called_once_with(str(self.order.id))
        self.assertEqual(len(callbacks), 0)

    def test_notification_queue_failure_does_not_fail_settlement(self):
        with patch('notifications.tasks.dispatch_payment_notifications.delay',
                   side_effect=ConnectionError('broker down')):
            with self.captureOnCommitCallbacks(execute=True):
                outcome = settle(self.order.id, 'R1', 'success')

        self.assertEqual(outcome, SettlementOutcome.APPLIED)
        self.order.refresh_from_db()
        self.assertTrue(self.order.is_paid)

    def test_stock_floors_at_zero(self):
        self.product.stock_quantity = 1
        self.product.save()

        settle(self.order.id, 'R1', 'success')

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 0)

    def test_item_read_failure_does_not_fail_settlement(self):
        with patch.object(OrderItem.objects, 'filter', side_effect=DatabaseError('read timeout')):
            with self.assertLogs('inventory.services', level='ERROR') as logs:
                outcome = settle(self.order.id, 'R1', 'success')

        self.assertEqual(outcome, SettlementOutcome.APPLIED)
        self.assertIn('could not read order items', logs.output[0])
        self.order.refresh_from_db()
        self.assertTrue(self.order.is_paid)
        self.assertEqual(self.order.escrow_status, Order.EscrowStatus.HELD)


class ConcurrentSettlementTestCase(MarketplaceFixtureMixin, TransactionTestCase):
    """
    Both entry points racing for the same order.
    Uses TransactionTestCase for proper multi-threading support.
    """

    def setUp(self):
        self.create_marketplace(stock=10, quantity=2)

    @patch('notifications.tasks.dispatch_payment_notifications.delay')
    def test_concurrent_settlement_applies_once(self, mock_delay):
        """
        Given: 10 units in stock, order for 2
        When: 6 concurrent settle calls with different references
        Then: Exactly one APPLIED, stock 8, one tracking entry
        """
        outcomes = []
        errors = []
        barrier = threading.Barrier(6)
        lock = threading.Lock()

        def attempt(i):
            try:
                barrier.wait()
                outcome = settle(self.order.id, f'RACE-{i}', 'success')
                with lock:
                    outcomes.append(outcome)
            except Exception as e:
                with lock:
                    errors.append(e)
            finally:
                connection.close()

        threads = [threading.Thread(target=attempt, args=(i,)) for i in range(6)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        self.assertEqual(errors, [])
        self.assertEqual(outcomes.count(SettlementOutcome.APPLIED), 1)
        self.assertEqual(outcomes.count(SettlementOutcome.ALREADY_SETTLED), 5)

        self.order.refresh_from_db()
        self.product.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.PAID)
        self.assertTrue(self.order.payment_reference.startswith('RACE-'))
        self.assertEqual(self.product.stock_quantity, 8)
        self.assertEqual(OrderTrackingUpdate.objects.filter(order=self.order).count(), 1)
        mock_delay.assert_called_once_with(str(self.order.id))


class WebhookEventTestCase(TestCase):

    def test_parse_charge_success(self):
        order_id = uuid.uuid4()
        event = parse_event(json.loads(charge_success_body('REF-1', order_id)))

        self.assertIsInstance(event, ChargeSucceeded)
        self.assertEqual(event.reference, 'REF-1')
        self.assertEqual(event.order_id, order_id)
        self.assertEqual(event.amount_minor, 6500000)

    def test_invalid_order_id_is_treated_as_missing(self):
        payload = json.loads(charge_success_body('REF-1', None))
        payload['data']['metadata']['order_id'] = 'O1'

        event = parse_event(payload)

        self.assertIsInstance(event, ChargeSucceeded)
        self.assertIsNone(event.order_id)

    def test_other_events_are_ignored(self):
        self.assertEqual(
            parse_event({'event': 'transfer.success', 'data': {}}),
            IgnoredEvent(event_type='transfer.success')
        )
        self.assertIsInstance(parse_event({'event': 'charge.success', 'data': {}}), IgnoredEvent)
        self.assertIsInstance(parse_event(['not', 'an', 'object']), IgnoredEvent)

    def test_signature_matches(self):
        body = b'{"event":"charge.success"}'
        self.assertTrue(signature_matches(body, sign(body), WEBHOOK_SECRET))
        self.assertTrue(signature_matches(body, sign(body).upper(), WEBHOOK_SECRET))
        self.assertFalse(signature_matches(body, sign(body, 'other'), WEBHOOK_SECRET))
        self.assertFalse(signature_matches(body, 'ünicode', WEBHOOK_SECRET))


@override_settings(PAYSTACK_SECRET_KEY=WEBHOOK_SECRET, PAYSTACK_REQUIRE_WEBHOOK_SIGNATURE=False)
class WebhookViewTestCase(MarketplaceFixtureMixin, TestCase):
    """Test cases for the gateway push endpoint."""

    def setUp(self):
        self.create_marketplace()
        self.url = reverse('payments:payment-webhook')

    def post_webhook(self, body, signature='sign'):
        extra = {}
        if signature == 'sign':
            extra['HTTP_X_PAYSTACK_SIGNATURE'] = sign(body)
        elif signature:
            extra['HTTP_X_PAYSTACK_SIGNATURE'] = signature
        return self.client.post(self.url, data=body, content_type='application/json', **extra)

    def test_charge_success_settles_order(self):
        response = self.post_webhook(charge_success_body('ORD-O1-123', self.order.id))

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b'OK')

        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.PAID)
        self.assertEqual(self.order.escrow_status, Order.EscrowStatus.HELD)
        self.assertEqual(self.order.payment_reference, 'ORD-O1-123')

    def test_replayed_webhook_is_idempotent(self):
        """
        Test: Five deliveries of the same event, one transition, all 200.
        """
        body = charge_success_body('ORD-O1-123', self.order.id)

        responses = [self.post_webhook(body) for _ in range(5)]

        self.assertEqual([r.status_code for r in responses], [200] * 5)
        self.assertEqual(self.order.tracking_updates.count(), 1)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 8)

    def test_bad_signature_rejected_without_ledger_access(self):
        body = charge_success_body('ORD-O1-123', self.order.id)

        with patch('payments.views.settle') as mock_settle:
            response = self.post_webhook(body, signature=sign(body, 'wrong-secret'))

        self.assertEqual(response.status_code, 401)
        mock_settle.assert_not_called()
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_status, Order.PaymentStatus.PENDING)

    def test_missing_signature_tolerated_by_default(self):
        response = self.post_webhook(charge_success_body('ORD-O1-123', self.order.id), signature=None)

        self.assertEqual(response.status_code, 200)
        self.order.refresh_from_db()
        self.assertTrue(self.order.is_paid)

    @override_settings(PAYSTACK_REQUIRE_WEBHOOK_SIGNATURE=True)
    def test_missing_signature_rejected_when_required(self):
        response = self.post_webhook(charge_success_body('ORD-O1-123', self.order.id), signature=None)

        self.assertEqual(response.status_code, 401)
        self.order.refresh_from_db()
        self.assertFalse(self.order.is_paid)

    def test_missing_order_id_acknowledged_without_action(self):
        response = self.post_webhook(charge_success_body('ORD-O1-123', None))

        self.assertEqual(response.status_code, 200)
        self.order.refresh_from_db()
        self.assertFalse(self.order.is_paid)

    def test_unrecognized_event_acknowledged(self):
        body = json.dumps({'event': 'subscription.create', 'data': {}}).encode()

        response = self.post_webhook(body)

        self.assertEqual(response.status_code, 200)

    def test_malformed_body_returns_server_error(self):
        response = self.post_webhook(b'{not json')

        self.assertEqual(response.status_code, 500)

    def test_settlement_failure_returns_server_error(self):
        body = charge_success_body('ORD-O1-123', self.order.id)

        with patch('payments.views.settle', side_effect=RuntimeError('database down')):
            response = self.post_webhook(body)

        self.assertEqual(response.status_code, 500)

    @override_settings(PAYSTACK_SECRET_KEY='')
    def test_missing_secret_returns_server_error(self):
        response = self.post_webhook(charge_success_body('ORD-O1-123', self.order.id), signature=None)

        self.assertEqual(response.status_code, 500)

    def test_options_returns_cors_headers(self):
        response = self.client.options(self.url)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.content, b'')
        self.assertEqual(response['Access-Control-Allow-Origin'], '*')
        self.assertIn('x-paystack-signature', response['Access-Control-Allow-Headers'])


@override_settings(PAYSTACK_SECRET_KEY=WEBHOOK_SECRET, RATE_LIMIT_ENABLED=False)
class VerifyPaymentViewTestCase(MarketplaceFixtureMixin, TestCase):
    """Test cases for the buyer-side verification endpoint."""

    def setUp(self):
        self.create_marketplace()
        self.url = reverse('payments:payment-verify')
        patcher = patch('payments.services.get_gateway_client')
        self.gateway = patcher.start().return_value
        self.addCleanup(patcher.stop)

    def post_verify(self, payload):
        return self.client.post(self.url, data=payload, content_type='application/json')

    def test_verify_settles_order(self):
        self.gateway.verify.return_value = verified('ORD-O1-123', order_id=self.order.id)

        response = self.post_verify({'reference': 'ORD-O1-123', 'orderId': str(self.order.id)})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['status'], 'success')
        self.assertEqual(body['amount'], 65000.0)
        self.assertEqual(body['reference'], 'ORD-O1-123')
        self.assertIsNotNone(body['paidAt'])

        self.order.refresh_from_db()
        self.assertTrue(self.order.is_paid)
        self.assertEqual(
            self.order.tracking_updates.get().message,
            'Payment verified and held in escrow'
        )

    @override_settings(PAYSTACK_REQUIRE_WEBHOOK_SIGNATURE=False)
    def test_webhook_then_verify_scenario(self):
        """
        Given: Order O1 (65,000), one item qty 2, stock 10
        When: Webhook settles it, then the browser verifies the same reference
        Then: Verify reports success, ledger and stock unchanged by verify
        """
        body = charge_success_body('ORD-O1-123', self.order.id)
        webhook_response = self.client.post(
            reverse('payments:payment-webhook'),
            data=body,
            content_type='application/json',
            HTTP_X_PAYSTACK_SIGNATURE=sign(body),
        )
        self.assertEqual(webhook_response.status_code, 200)

        self.order.refresh_from_db()
        paid_at = self.order.paid_at
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 8)

        self.gateway.verify.return_value = verified('ORD-O1-123', order_id=self.order.id)
        response = self.post_verify({'reference': 'ORD-O1-123', 'orderId': str(self.order.id)})

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['success'])
        self.assertEqual(response.json()['amount'], 65000.0)

        self.order.refresh_from_db()
        self.product.refresh_from_db()
        self.assertEqual(self.order.paid_at, paid_at)
        self.assertEqual(self.order.tracking_updates.count(), 1)
        self.assertEqual(self.product.stock_quantity, 8)

        # Duplicate webhook after all of the above
        replay = self.client.post(
            reverse('payments:payment-webhook'),
            data=body,
            content_type='application/json',
            HTTP_X_PAYSTACK_SIGNATURE=sign(body),
        )
        self.assertEqual(replay.status_code, 200)
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 8)
        self.assertEqual(self.order.tracking_updates.count(), 1)

    def test_failed_transaction_reported_without_settlement(self):
        self.gateway.verify.return_value = verified('ORD-O1-123', status='failed')

        response = self.post_verify({'reference': 'ORD-O1-123', 'orderId': str(self.order.id)})

        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.data['success'])
        self.assertEqual(response.data['status'], 'failed')
        self.order.refresh_from_db()
        self.assertFalse(self.order.is_paid)

    def test_reference_only_verification(self):
        self.gateway.verify.return_value = verified('FEAT-1', amount_minor=150000)

        response = self.post_verify({'reference': 'FEAT-1'})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['amount'], 1500.0)
        self.order.refresh_from_db()
        self.assertFalse(self.order.is_paid)

    def test_transaction_for_another_order_refused(self):
        """
        Given: A cheap order paid with reference ORD-CHEAP-1 (100.00)
        When: Verify is called with that reference and the 65,000 order's id
        Then: 409, the expensive order stays unpaid, the cheap order still settles
        """
        cheap_order = Order.objects.create(
            buyer=self.buyer,
            subtotal=Decimal('100.00'),
            shipping_fee=Decimal('0.00'),
            total=Decimal('100.00'),
        )
        self.gateway.verify.return_value = verified(
            'ORD-CHEAP-1', amount_minor=10000, order_id=cheap_order.id
        )

        response = self.post_verify({'reference': 'ORD-CHEAP-1', 'orderId': str(self.order.id)})

        self.assertEqual(response.status_code, 409)
        self.assertFalse(response.json()['success'])

        self.order.refresh_from_db()
        self.product.refresh_from_db()
        self.assertFalse(self.order.is_paid)
        self.assertEqual(self.order.escrow_status, Order.EscrowStatus.NONE)
        self.assertEqual(self.product.stock_quantity, 10)

        self.assertEqual(settle(cheap_order.id, 'ORD-CHEAP-1', 'success'), SettlementOutcome.APPLIED)

    def test_transaction_without_order_metadata_refused(self):
        self.gateway.verify.return_value = verified('ORD-O1-123')

        response = self.post_verify({'reference': 'ORD-O1-123', 'orderId': str(self.order.id)})

        self.assertEqual(response.status_code, 409)
        self.order.refresh_from_db()
        self.assertFalse(self.order.is_paid)

    def test_underpaid_transaction_refused(self):
        self.gateway.verify.return_value = verified(
            'ORD-O1-123', amount_minor=100, order_id=self.order.id
        )

        response = self.post_verify({'reference': 'ORD-O1-123', 'orderId': str(self.order.id)})

        self.assertEqual(response.status_code, 409)
        self.order.refresh_from_db()
        self.assertFalse(self.order.is_paid)

    def test_unknown_order_returns_not_found(self):
        missing = uuid.uuid4()
        self.gateway.verify.return_value = verified('ORD-X-1', order_id=missing)

        response = self.post_verify({'reference': 'ORD-X-1', 'orderId': str(missing)})

        self.assertEqual(response.status_code, 404)

    def test_stock_read_failure_still_confirms_payment(self):
        """
        Given: Reading the order items fails after the ledger commit
        When: Verify settles the order
        Then: 200 with success, order paid, failure logged
        """
        self.gateway.verify.return_value = verified('ORD-O1-123', order_id=self.order.id)

        with patch.object(OrderItem.objects, 'filter', side_effect=DatabaseError('read timeout')):
            with self.assertLogs('inventory.services', level='ERROR'):
                response = self.post_verify({'reference': 'ORD-O1-123', 'orderId': str(self.order.id)})

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['success'])
        self.order.refresh_from_db()
        self.assertTrue(self.order.is_paid)

    def test_gateway_unavailable_returns_failure_without_mutation(self):
        self.gateway.verify.side_effect = GatewayUnavailable('Payment gateway timed out')

        response = self.post_verify({'reference': 'ORD-O1-123', 'orderId': str(self.order.id)})

        self.assertEqual(response.status_code, 502)
        self.assertFalse(response.data['success'])
        self.assertIn('timed out', response.data['error'])
        self.order.refresh_from_db()
        self.assertFalse(self.order.is_paid)

    def test_unknown_reference_returns_not_found(self):
        self.gateway.verify.side_effect = TransactionNotFound('NOPE')

        response = self.post_verify({'reference': 'NOPE'})

        self.assertEqual(response.status_code, 404)
        self.assertFalse(response.data['success'])

    def test_missing_reference_is_validation_error(self):
        response = self.post_verify({'orderId': str(self.order.id)})

        self.assertEqual(response.status_code, 400)
        self.assertFalse(response.data['success'])
        self.gateway.verify.assert_not_called()

    def test_reference_with_path_characters_rejected(self):
        response = self.post_verify({'reference': '../../transfer'})

        self.assertEqual(response.status_code, 400)
        self.gateway.verify.assert_not_called()


@override_settings(PAYSTACK_SECRET_KEY=WEBHOOK_SECRET, RATE_LIMIT_ENABLED=False)
class InitializePaymentViewTestCase(MarketplaceFixtureMixin, TestCase):
    """Test cases for opening a checkout session."""

    def setUp(self):
        self.create_marketplace()
        self.url = reverse('payments:payment-initialize')
        patcher = patch('payments.services.get_gateway_client')
        self.gateway = patcher.start().return_value
        self.addCleanup(patcher.stop)
        self.gateway.initialize.side_effect = lambda **kwargs: InitializedTransaction(
            authorization_url='https://checkout.paystack.com/abc123',
            access_code='abc123',
            reference=kwargs['reference'],
        )

    def post_initialize(self, payload):
        return self.client.post(self.url, data=payload, content_type='application/json')

    def test_initialize_opens_session_in_minor_units(self):
        response = self.post_initialize({
            'orderId': str(self.order.id),
            'email': 'buyer@example.com',
            'callbackUrl': 'https://shop.example.com/orders/1',
        })

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.data['success'])
        self.assertEqual(response.data['authorizationUrl'], 'https://checkout.paystack.com/abc123')
        self.assertTrue(response.data['reference'].startswith(f'ORD-{self.order.id}-'))

        kwargs = self.gateway.initialize.call_args.kwargs
        self.assertEqual(kwargs['amount_minor'], 6500000)
        self.assertEqual(kwargs['metadata']['order_id'], str(self.order.id))
        self.assertEqual(kwargs['callback_url'], 'https://shop.example.com/orders/1')

        attempt = PaymentAttempt.objects.get(order=self.order)
        self.assertEqual(attempt.reference, response.data['reference'])
        self.assertEqual(attempt.amount_minor, 6500000)

        # Settlement guard still open: reference is only written by settlement
        self.order.refresh_from_db()
        self.assertIsNone(self.order.payment_reference)

    def test_initialize_defaults_callback_to_origin(self):
        self.client.post(
            self.url,
            data={'orderId': str(self.order.id), 'email': 'buyer@example.com'},
            content_type='application/json',
            HTTP_ORIGIN='https://shop.example.com',
        )

        kwargs = self.gateway.initialize.call_args.kwargs
        self.assertEqual(kwargs['callback_url'], f'https://shop.example.com/orders/{self.order.id}')

    def test_initialize_rejects_paid_order(self):
        settle(self.order.id, 'R1', 'success')

        response = self.post_initialize({'orderId': str(self.order.id), 'email': 'buyer@example.com'})

        self.assertEqual(response.status_code, 409)
        self.assertFalse(response.data['success'])
        self.assertIn('already paid', response.data['error'])
        self.gateway.initialize.assert_not_called()

    def test_initialize_unknown_order(self):
        response = self.post_initialize({'orderId': str(uuid.uuid4()), 'email': 'buyer@example.com'})

        self.assertEqual(response.status_code, 404)
        self.gateway.initialize.assert_not_called()

    def test_initialize_gateway_failure(self):
        self.gateway.initialize.side_effect = GatewayUnavailable('Failed to initialize payment')

        response = self.post_initialize({'orderId': str(self.order.id), 'email': 'buyer@example.com'})

        self.assertEqual(response.status_code, 502)
        self.assertFalse(PaymentAttempt.objects.exists())

    def test_initialize_requires_email(self):
        response = self.post_initialize({'orderId': str(self.order.id)})

        self.assertEqual(response.status_code, 400)


class RateLimitTestCase(MarketplaceFixtureMixin, TestCase):

    def setUp(self):
        self.create_marketplace()

    @override_settings(RATE_LIMIT_ENABLED=True)
    @patch('core.rate_limiting.get_redis_client')
    def test_verify_rate_limited(self, mock_get_client):
        redis_client = MagicMock()
        redis_client.incr.return_value = 31
        redis_client.ttl.return_value = 42
        mock_get_client.return_value = redis_client

        response = self.client.post(
            reverse('payments:payment-verify'),
            data={'reference': 'ORD-O1-123'},
            content_type='application/json',
        )

        self.assertEqual(response.status_code, 429)
        self.assertEqual(response['Retry-After'], '42')
        redis_client.incr.assert_called_once_with('rate_limit:payment-verify:127.0.0.1')
        self.assertEqual(response['Access-Control-Allow-Origin'], '*')

    @override_settings(RATE_LIMIT_ENABLED=True, PAYSTACK_SECRET_KEY=WEBHOOK_SECRET)
    @patch('core.rate_limiting.get_redis_client')
    def test_webhook_not_rate_limited(self, mock_get_client):
        body = json.dumps({'event': 'transfer.success', 'data': {}}).encode()

        response = self.client.post(
            reverse('payments:payment-webhook'),
            data=body,
            content_type='application/json',
            HTTP_X_PAYSTACK_SIGNATURE=sign(body),
        )

        self.assertEqual(response.status_code, 200)
        mock_get_client.assert_not_called()


class RedisClientBackoffTestCase(TestCase):

    def setUp(self):
        rate_limiting._redis_client = None
        rate_limiting._redis_retry_at = 0.0
        self.addCleanup(setattr, rate_limiting, '_redis_client', None)
        self.addCleanup(setattr, rate_limiting, '_redis_retry_at', 0.0)

    @patch('core.rate_limiting.redis.Redis.from_url')
    def test_failed_connection_not_retried_within_backoff(self, mock_from_url):
        mock_from_url.return_value.ping.side_effect = redis.ConnectionError('refused')

        self.assertIsNone(rate_limiting.get_redis_client())
        self.assertIsNone(rate_limiting.get_redis_client())
        self.assertIsNone(rate_limiting.get_redis_client())

        self.assertEqual(mock_from_url.call_count, 1)

    @patch('core.rate_limiting.redis.Redis.from_url')
    def test_reconnects_after_backoff(self, mock_from_url):
        mock_from_url.return_value.ping.side_effect = [redis.ConnectionError('refused'), True]

        self.assertIsNone(rate_limiting.get_redis_client())
        rate_limiting._redis_retry_at = 0.0

        self.assertIs(rate_limiting.get_redis_client(), mock_from_url.return_value)
        self.assertEqual(mock_from_url.call_count, 2)


class PaystackClientTestCase(TestCase):
    """Gateway client against a mocked transport."""

    def make_client(self, handler):
        return PaystackClient(
            secret_key='sk_test',
            base_url='https://api.paystack.test',
            timeout=1,
            transport=httpx.MockTransport(handler),
        )

    def test_verify_success(self):
        def handler(request):
            self.assertEqual(request.url.path, '/transaction/verify/ORD-O1-123')
            self.assertEqual(request.headers['Authorization'], 'Bearer sk_test')
            return httpx.Response(200, json={
                'status': True,
                'message': 'Verification successful',
                'data': {
                    'status': 'success',
                    'amount': 6500000,
                    'reference': 'ORD-O1-123',
                    'paid_at': '2026-10-19T10:00:00.000Z',
                    'metadata': {'order_id': 'abc'},
                },
            })

        transaction = self.make_client(handler).verify('ORD-O1-123')

        self.assertTrue(transaction.is_successful)
        self.assertEqual(transaction.amount, Decimal('65000.00'))
        self.assertEqual(transaction.paid_at.year, 2026)
        self.assertEqual(transaction.metadata, {'order_id': 'abc'})

    def test_verify_not_found(self):
        def handler(request):
            return httpx.Response(400, json={'status': False, 'message': 'Transaction reference not found'})

        with self.assertRaises(TransactionNotFound):
            self.make_client(handler).verify('NOPE')

    def test_verify_server_error(self):
        def handler(request):
            return httpx.Response(503, text='upstream unavailable')

        with self.assertRaises(GatewayUnavailable):
            self.make_client(handler).verify('ORD-O1-123')

    def test_verify_timeout(self):
        def handler(request):
            raise httpx.ConnectTimeout('timed out', request=request)

        with self.assertRaises(GatewayUnavailable):
            self.make_client(handler).verify('ORD-O1-123')

    def test_verify_malformed_body(self):
        def handler(request):
            return httpx.Response(200, json={'status': True, 'data': {'reference': 'X'}})

        with self.assertRaises(GatewayUnavailable):
            self.make_client(handler).verify('X')

    def test_initialize_sends_minor_units_and_metadata(self):
        captured = {}

        def handler(request):
            captured.update(json.loads(request.content))
            return httpx.Response(200, json={
                'status': True,
                'message': 'Authorization URL created',
                'data': {
                    'authorization_url': 'https://checkout.paystack.com/xyz',
                    'access_code': 'xyz',
                    'reference': 'ORD-O1-123',
                },
            })

        session = self.make_client(handler).initialize(
            email='buyer@example.com',
            amount_minor=6500000,
            reference='ORD-O1-123',
            metadata={'order_id': 'O1'},
        )

        self.assertEqual(session.reference, 'ORD-O1-123')
        self.assertEqual(captured['amount'], 6500000)
        self.assertEqual(captured['metadata'], {'order_id': 'O1'})
        self.assertNotIn('callback_url', captured)

    def test_initialize_rejected_by_gateway(self):
        def handler(request):
            return httpx.Response(200, json={'status': False, 'message': 'Invalid key', 'data': {}})

        with self.assertRaises(GatewayUnavailable):
            self.make_client(handler).initialize('buyer@example.com', 100, 'R')

    @override_settings(PAYSTACK_SECRET_KEY='')
    def test_missing_secret_key(self):
        with self.assertRaises(GatewayUnavailable):
            PaystackClient()


@override_settings(PAYMENT_RECONCILE_AFTER_MINUTES=10, PAYMENT_RECONCILE_MAX_AGE_HOURS=24)
class ReconcilePendingPaymentsTestCase(MarketplaceFixtureMixin, TestCase):

    def setUp(self):
        self.create_marketplace()
        self.attempt = PaymentAttempt.objects.create(
            order=self.order,
            reference='ORD-O1-123',
            email='buyer@example.com',
            amount_minor=6500000,
            authorization_url='https://checkout.paystack.com/abc',
        )

    def age_attempt(self, **delta):
        PaymentAttempt.objects.filter(pk=self.attempt.pk).update(created_at=timezone.now() - timedelta(**delta))

    @patch('payments.gateway.get_gateway_client')
    def test_settles_lost_payment(self, mock_get_client):
        self.age_attempt(minutes=30)
        mock_get_client.return_value.verify.return_value = verified('ORD-O1-123')

        stats = reconcile_pending_payments()

        self.assertEqual(stats, {'checked': 1, 'settled': 1, 'errors': 0})
        self.order.refresh_from_db()
        self.assertEqual(self.order.payment_reference, 'ORD-O1-123')
        self.product.refresh_from_db()
        self.assertEqual(self.product.stock_quantity, 8)

    @patch('payments.gateway.get_gateway_client')
    def test_skips_recent_and_expired_attempts(self, mock_get_client):
        reconcile_pending_payments()
        self.age_attempt(hours=30)
        reconcile_pending_payments()

        mock_get_client.return_value.verify.assert_not_called()

    @patch('payments.gateway.get_gateway_client')
    def test_gateway_errors_counted(self, mock_get_client):
        self.age_attempt(minutes=30)
        mock_get_client.return_value.verify.side_effect = GatewayUnavailable('down')

        stats = reconcile_pending_payments()

        self.assertEqual(stats['errors'], 1)
        self.order.refresh_from_db()
        self.assertFalse(self.order.is_paid)


@override_settings(
    PAYSTACK_SECRET_KEY=WEBHOOK_SECRET,
    RATE_LIMIT_ENABLED=False,
    FEATURED_LISTING_PRICE=Decimal('1000.00'),
    FEATURED_LISTING_PROMO_CODE='K2WFAAD',
)
class FeaturedListingPaymentTestCase(MarketplaceFixtureMixin, TestCase):
    """Test cases for paying to feature a product."""

    def setUp(self):
        self.create_marketplace()
        self.initialize_url = reverse('payments:featured-initialize')
        self.verify_url = reverse('payments:featured-verify')
        patcher = patch('payments.services.get_gateway_client')
        self.gateway = patcher.start().return_value
        self.addCleanup(patcher.stop)
        self.gateway.initialize.side_effect = lambda **kwargs: InitializedTransaction(
            authorization_url='https://checkout.paystack.com/feat',
            access_code='feat',
            reference=kwargs['reference'],
        )

    def post(self, url, payload):
        return self.client.post(url, data=payload, content_type='application/json')

    def featured_transaction(self, status='success', amount_minor=100000, metadata=None):
        if metadata is None:
            metadata = {'type': 'featured_listing', 'product_id': str(self.product.id)}
        return verified('FEAT-1-1718000000000', status=status, amount_minor=amount_minor, metadata=metadata)

    def test_initialize_charges_flat_fee_to_vendor_email(self):
        response = self.post(self.initialize_url, {'productId': self.product.id})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body['success'])
        self.assertEqual(body['authorization_url'], 'https://checkout.paystack.com/feat')
        self.assertTrue(body['reference'].startswith(f'FEAT-{self.product.id}-'))

        kwargs = self.gateway.initialize.call_args.kwargs
        self.assertEqual(kwargs['email'], 'vendor@example.com')
        self.assertEqual(kwargs['amount_minor'], 100000)
        self.assertEqual(kwargs['metadata']['type'], 'featured_listing')
        self.assertEqual(kwargs['metadata']['product_id'], str(self.product.id))

        self.product.refresh_from_db()
        self.assertFalse(self.product.featured)

    def test_promo_code_features_without_payment(self):
        response = self.post(self.initialize_url, {'productId': self.product.id, 'promoCode': 'k2wfaad'})

        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()['promo_applied'])
        self.gateway.initialize.assert_not_called()
        self.product.refresh_from_db()
        self.assertTrue(self.product.featured)

    def test_wrong_promo_code_falls_back_to_payment(self):
        response = self.post(self.initialize_url, {'productId': self.product.id, 'promoCode': 'NOPE'})

        self.assertEqual(response.status_code, 200)
        self.gateway.initialize.assert_called_once()
        self.product.refresh_from_db()
        self.assertFalse(self.product.featured)

    def test_already_featured_product_refused(self):
        Product.objects.filter(id=self.product.id).update(featured=True)

        response = self.post(self.initialize_url, {'productId': self.product.id})

        self.assertEqual(response.status_code, 409)
        self.gateway.initialize.assert_not_called()

    def test_unknown_product(self):
        response = self.post(self.initialize_url, {'productId': 999999})

        self.assertEqual(response.status_code, 404)

    def test_verify_features_product(self):
        self.gateway.verify.return_value = self.featured_transaction()

        response = self.post(self.verify_url, {'reference': 'FEAT-1-1718000000000'})

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertTrue(body['verified'])
        self.assertEqual(body['product_id'], self.product.id)
        self.product.refresh_from_db()
        self.assertTrue(self.product.featured)

        # Verifying again is harmless
        second = self.post(self.verify_url, {'reference': 'FEAT-1-1718000000000'})
        self.assertEqual(second.status_code, 200)

    def test_verify_unsuccessful_payment(self):
        self.gateway.verify.return_value = self.featured_transaction(status='abandoned')

        response = self.post(self.verify_url, {'reference': 'FEAT-1-1718000000000'})

        self.assertEqual(response.status_code, 200)
        self.assertFalse(response.json()['verified'])
        self.product.refresh_from_db()
        self.assertFalse(self.product.featured)

    def test_verify_rejects_order_payment(self):
        self.gateway.verify.return_value = verified('ORD-O1-123', order_id=self.order.id)

        response = self.post(self.verify_url, {'reference': 'ORD-O1-123'})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'Invalid payment metadata')
        self.order.refresh_from_db()
        self.assertFalse(self.order.is_paid)

    def test_verify_rejects_missing_product_id(self):
        self.gateway.verify.return_value = self.featured_transaction(metadata={'type': 'featured_listing'})

        response = self.post(self.verify_url, {'reference': 'FEAT-1-1718000000000'})

        self.assertEqual(response.status_code, 400)

    def test_verify_rejects_underpayment(self):
        self.gateway.verify.return_value = self.featured_transaction(amount_minor=100)

        response = self.post(self.verify_url, {'reference': 'FEAT-1-1718000000000'})

        self.assertEqual(response.status_code, 400)
        self.product.refresh_from_db()
        self.assertFalse(self.product.featured)

    def test_verify_product_gone(self):
        self.gateway.verify.return_value = self.featured_transaction(
            metadata={'type': 'featured_listing', 'product_id': '999999'}
        )

        response = self.post(self.verify_url, {'reference': 'FEAT-1-1718000000000'})

        self.assertEqual(response.status_code, 404)
