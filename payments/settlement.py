"""
Escrow settlement - moves an order from awaiting payment to escrow held.

Both the gateway webhook and the buyer's verification call land here, in
any order and any number of times. Exactly one caller may observe APPLIED
for an order. The guard is one conditional UPDATE on the order row:

    UPDATE orders_order
       SET payment_status = 'paid', payment_reference = <ref>,
           status = 'payment_confirmed', escrow_status = 'held', ...
     WHERE id = <order> AND payment_status = 'pending'
           AND payment_reference IS NULL

One affected row means this call won; zero means somebody else already
settled the order. Stock deduction and notifications run only for the
winner. There is no lock and no dedup table.

The first reference to win owns the order; a later call carrying a
different reference for a paid order is ALREADY_SETTLED, not an error.
"""
import enum
import logging
import uuid
from functools import partial

from django.db import IntegrityError, transaction
from django.utils import timezone

from inventory.services import apply_order_stock
from orders.models import Order
from orders.services import append_tracking_update
from .gateway import TRANSACTION_SUCCESS

logger = logging.getLogger(__name__)


class SettlementOutcome(str, enum.Enum):
    APPLIED = 'applied'
    ALREADY_SETTLED = 'already_settled'
    REJECTED = 'rejected'

    @property
    def is_success(self) -> bool:
        return self is not SettlementOutcome.REJECTED


def _coerce_order_id(order_id):
    try:
        return order_id if isinstance(order_id, uuid.UUID) else uuid.UUID(str(order_id))
    except (TypeError, ValueError, AttributeError):
        return None


def _queue_notifications(order_id):
    try:
        from notifications.tasks import dispatch_payment_notifications
        dispatch_payment_notifications.delay(str(order_id))
        logger.info(f"Queued payment notifications for order {order_id}")
    except Exception as e:
        # Notifications never undo a settlement
        logger.error(f"Failed to queue payment notifications for order {order_id}: {e}")


def settle(order_id, reference: str, gateway_status: str,
           message: str = 'Payment received and held in escrow') -> SettlementOutcome:
    """
    Apply "payment confirmed -> escrow held" at most once per order.

    Args:
        order_id: Order the payment belongs to
        reference: Gateway reference of the confirming transaction
        gateway_status: Transaction status reported by the gateway
        message: Text of the tracking entry appended on success

    Returns:
        APPLIED if this call performed the transition,
        ALREADY_SETTLED if the order was already paid,
        REJECTED if the transaction is not successful or the order is unknown
    """
    if gateway_status != TRANSACTION_SUCCESS:
        logger.info(
            f"Order {order_id}: transaction {reference} status is '{gateway_status}', not settling"
        )
        return SettlementOutcome.REJECTED

    order_pk = _coerce_order_id(order_id)
    if order_pk is None or not reference:
        logger.warning(f"Refusing to settle order {order_id!r} with reference {reference!r}")
        return SettlementOutcome.REJECTED

    now = timezone.now()

    try:
        with transaction.atomic():
            updated = Order.objects.filter(
                id=order_pk,
                payment_status=Order.PaymentStatus.PENDING,
                payment_reference__isnull=True,
            ).update(
                payment_status=Order.PaymentStatus.PAID,
                payment_reference=reference,
                status=Order.Status.PAYMENT_CONFIRMED,
                escrow_status=Order.EscrowStatus.HELD,
                paid_at=now,
                updated_at=now,
            )
            if updated:
                append_tracking_update(order_pk, Order.Status.PAYMENT_CONFIRMED, message, timestamp=now)
                transaction.on_commit(partial(_queue_notifications, order_pk))
    except IntegrityError:
        # payment_reference is unique: this reference already settled another order
        logger.error(f"Reference {reference} already settled a different order, not settling {order_pk}")
        return SettlementOutcome.REJECTED

    if not updated:
        if not Order.objects.filter(id=order_pk).exists():
            logger.warning(f"Order {order_pk} not found, transaction {reference} not settled")
            return SettlementOutcome.REJECTED
        logger.info(f"Order {order_pk} already settled, ignoring transaction {reference}")
        return SettlementOutcome.ALREADY_SETTLED

    logger.info(f"Order {order_pk} settled by {reference}, escrow held")

    apply_order_stock(order_pk)

    return SettlementOutcome.APPLIED
