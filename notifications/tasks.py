"""
Celery tasks for user-facing notifications.

Tasks:
    - dispatch_payment_notifications: Fan-out after an order's payment settles
"""
import logging
from decimal import Decimal

from celery import shared_task
from django.contrib.auth import get_user_model
from django.db import transaction

logger = logging.getLogger(__name__)


def format_amount(amount: Decimal) -> str:
    return f"₦{amount:,.2f}"


def build_payment_notifications(order):
    """
    Build (unsaved) notifications for a freshly paid order:
    one for the buyer, one per vendor on the order, one per staff user.
    """
    from notifications.models import Notification

    order_id = str(order.id)
    notifications = [
        Notification(
            user_id=order.buyer_id,
            title='Payment Confirmed!',
            message=(
                f"Your payment of {format_amount(order.total)} has been received. "
                "Your order is being processed."
            ),
            type=Notification.Type.SUCCESS,
            category=Notification.Category.PAYMENT,
            action_url=f'/orders/{order_id}',
            metadata={'order_id': order_id, 'amount': str(order.total)},
        )
    ]

    vendor_orders = {}
    for item in order.items.select_related('vendor').order_by('id'):
        entry = vendor_orders.setdefault(item.vendor_id, {'user_id': item.vendor.user_id, 'names': [], 'total': Decimal('0.00')})
        entry['names'].append(item.product_name)
        entry['total'] += item.total_price

    for vendor_order in vendor_orders.values():
        names = vendor_order['names']
        item_names = ', '.join(names[:2])
        more = f" +{len(names) - 2} more" if len(names) > 2 else ''
        notifications.append(Notification(
            user_id=vendor_order['user_id'],
            title='New Order Received!',
            message=(
                f"You have a new order for {item_names}{more}. "
                f"Total: {format_amount(vendor_order['total'])}"
            ),
            type=Notification.Type.ORDER,
            category=Notification.Category.ORDER,
            action_url='/vendor/orders',
            metadata={'order_id': order_id, 'total': str(vendor_order['total'])},
        ))

    staff_ids = get_user_model().objects.filter(is_staff=True, is_active=True).values_list('id', flat=True)
    for staff_id in staff_ids:
        notifications.append(Notification(
            user_id=staff_id,
            title='New Paid Order',
            message=f"Order #{order.short_id} has been paid. Amount: {format_amount(order.total)}",
            type=Notification.Type.PAYMENT,
            category=Notification.Category.PAYMENT,
            action_url='/admin/orders',
            metadata={'order_id': order_id, 'amount': str(order.total)},
        ))

    return notifications


@shared_task(
    bind=True,
    max_retries=3,
    default_retry_delay=60,
    autoretry_for=(Exception,),
    retry_backoff=True
)
def dispatch_payment_notifications(self, order_id):
    """
    Notify buyer, vendors and staff that an order's payment settled.

    Queued once, by the settlement call that performed the transition.
    All rows are written in one transaction so a retry never leaves a
    partial batch behind.

    Args:
        order_id: ID of the settled order

    Returns:
        Dict with dispatch details
    """
    from notifications.models import Notification
    from orders.models import Order

    try:
        order = Order.objects.get(id=order_id)
    except Order.DoesNotExist:
        logger.error(f"Order {order_id} not found for payment notifications")
        return {'status': 'error', 'message': f'Order {order_id} not found'}

    if not order.is_paid:
        logger.warning(
            f"Order {order_id} is not paid (payment status: {order.payment_status}), "
            "skipping notifications"
        )
        return {'status': 'skipped', 'message': f'Order {order_id} is not paid'}

    notifications = build_payment_notifications(order)
    with transaction.atomic():
        Notification.objects.bulk_create(notifications)

    logger.info(f"Sent {len(notifications)} payment notification(s) for order {order_id}")

    return {
        'status': 'success',
        'order_id': str(order.id),
        'sent': len(notifications),
    }
