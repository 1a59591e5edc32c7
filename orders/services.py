"""
Order Service Layer - Post-payment transitions on the order ledger.

Every transition here is a single conditional UPDATE whose WHERE clause
encodes the precondition; the affected row count decides the outcome.
The tracking entry is inserted in the same transaction as the update.
"""
import logging

from django.db import transaction
from django.utils import timezone

from .models import Order, OrderTrackingUpdate

logger = logging.getLogger(__name__)


class OrderTransitionError(Exception):
    """Raised when an order is not in a state that allows the transition."""
    pass


def append_tracking_update(order_id, status: str, message: str, timestamp=None) -> OrderTrackingUpdate:
    """Append one entry to an order's tracking history."""
    return OrderTrackingUpdate.objects.create(
        order_id=order_id,
        status=status,
        message=message,
        timestamp=timestamp or timezone.now(),
    )


def confirm_delivery(order_id, buyer) -> Order:
    """
    Buyer confirms receipt: escrow HELD -> RELEASED, status -> COMPLETED.

    Args:
        order_id: Order to confirm
        buyer: User that must own the order

    Returns:
        The refreshed Order

    Raises:
        Order.DoesNotExist: If the buyer has no such order
        OrderTransitionError: If escrow is not currently held
    """
    now = timezone.now()

    with transaction.atomic():
        updated = Order.objects.filter(
            id=order_id,
            buyer=buyer,
            escrow_status=Order.EscrowStatus.HELD,
        ).exclude(
            status=Order.Status.CANCELLED,
        ).update(
            status=Order.Status.COMPLETED,
            escrow_status=Order.EscrowStatus.RELEASED,
            confirmed_at=now,
            updated_at=now,
        )
        if updated:
            append_tracking_update(
                order_id,
                Order.Status.COMPLETED,
                'Delivery confirmed, escrow released to vendor',
                timestamp=now,
            )

    order = Order.objects.get(id=order_id, buyer=buyer)

    if not updated:
        logger.warning(
            f"Order {order_id}: delivery confirmation refused "
            f"(status={order.status}, escrow={order.escrow_status})"
        )
        raise OrderTransitionError(
            f"Order {order_id} has no escrow held (escrow status: {order.escrow_status})"
        )

    logger.info(f"Order {order_id}: delivery confirmed, escrow released")
    return order
