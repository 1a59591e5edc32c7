"""
Celery tasks for payment processing.

Tasks:
    - reconcile_pending_payments: Periodic re-verification of unpaid checkouts
"""
import logging
from datetime import timedelta

from celery import shared_task
from django.conf import settings
from django.db.models import Max
from django.utils import timezone

logger = logging.getLogger(__name__)


@shared_task
def reconcile_pending_payments():
    """
    Settle orders whose webhook and browser callback were both lost.

    Looks at orders still pending payment whose latest checkout session
    is older than PAYMENT_RECONCILE_AFTER_MINUTES but younger than
    PAYMENT_RECONCILE_MAX_AGE_HOURS, and verifies that session with the
    gateway. Overlapping with the webhook or the buyer is harmless:
    settlement's conditional update decides who wins.
    """
    from orders.models import Order
    from payments.exceptions import GatewayError
    from payments.gateway import get_gateway_client
    from payments.models import PaymentAttempt
    from payments.settlement import SettlementOutcome, settle

    now = timezone.now()
    newest = now - timedelta(minutes=settings.PAYMENT_RECONCILE_AFTER_MINUTES)
    oldest = now - timedelta(hours=settings.PAYMENT_RECONCILE_MAX_AGE_HOURS)

    latest_attempts = (
        PaymentAttempt.objects
        .filter(order__payment_status=Order.PaymentStatus.PENDING)
        .values('order_id')
        .annotate(latest=Max('created_at'))
        .filter(latest__lt=newest, latest__gte=oldest)
    )

    stats = {'checked': 0, 'settled': 0, 'errors': 0}
    if not latest_attempts:
        return stats

    client = get_gateway_client()

    for row in latest_attempts:
        attempt = PaymentAttempt.objects.filter(
            order_id=row['order_id'], created_at=row['latest']
        ).first()
        if attempt is None:
            continue

        stats['checked'] += 1
        try:
            transaction = client.verify(attempt.reference)
        except GatewayError as e:
            logger.warning(f"Reconciliation could not verify {attempt.reference}: {e}")
            stats['errors'] += 1
            continue

        if not transaction.is_successful:
            continue

        outcome = settle(
            attempt.order_id,
            transaction.reference,
            transaction.status,
            message='Payment confirmed by reconciliation and held in escrow',
        )
        if outcome is SettlementOutcome.APPLIED:
            stats['settled'] += 1

    if stats['settled']:
        logger.warning(f"Reconciliation settled {stats['settled']} order(s) missed by callbacks")
    logger.info(f"Payment reconciliation finished: {stats}")

    return stats
