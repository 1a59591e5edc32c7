"""
Payment Service Layer - Checkout session and buyer-side verification.

initialize_payment:
1. Load order, refuse if already paid or cancelled
2. Open a gateway session for the order total (minor units)
3. Record the session as a PaymentAttempt

verify_payment:
1. Ask the gateway for the transaction's status
2. If an order is given and the transaction succeeded, check the
   transaction was opened for that order and amount, then settle it
3. Report the gateway's view regardless of the settlement outcome

Featured listings reuse the same gateway: a flat fee paid by the vendor,
verified by reference alone, flips Product.featured.
"""
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.utils import timezone

from .exceptions import (
    AlreadyFeatured,
    AlreadyPaid,
    InvalidPaymentMetadata,
    OrderNotFound,
    OrderNotPayable,
    PaymentError,
    ProductNotFound,
    TransactionMismatch,
)
from .gateway import (
    InitializedTransaction,
    PaystackClient,
    VerifiedTransaction,
    get_gateway_client,
    to_minor_units,
)
from .models import PaymentAttempt
from .settlement import SettlementOutcome, settle
from inventory.models import Product
from orders.models import Order

logger = logging.getLogger(__name__)

FEATURED_LISTING = 'featured_listing'


@dataclass(frozen=True)
class VerificationResult:
    transaction: VerifiedTransaction
    outcome: Optional[SettlementOutcome] = None


@dataclass(frozen=True)
class FeaturedVerification:
    transaction: VerifiedTransaction
    product_id: Optional[int] = None

    @property
    def featured(self) -> bool:
        return self.product_id is not None


def build_reference(order_id) -> str:
    return f"ORD-{order_id}-{int(time.time() * 1000)}"


def _get_order(order_id) -> Order:
    try:
        return Order.objects.get(id=order_id)
    except (Order.DoesNotExist, ValidationError, ValueError):
        raise OrderNotFound(order_id)


def initialize_payment(order_id, email: str, callback_url: Optional[str] = None,
                       client: Optional[PaystackClient] = None) -> PaymentAttempt:
    """
    Open a hosted checkout session for an order.

    Raises:
        OrderNotFound: Unknown order
        AlreadyPaid: Order payment_status is already paid
        OrderNotPayable: Order was cancelled
        GatewayUnavailable: Gateway call failed
    """
    order = _get_order(order_id)

    if order.is_paid:
        raise AlreadyPaid(order.id)
    if order.status == Order.Status.CANCELLED:
        raise OrderNotPayable(f"Order {order.id} is cancelled")

    client = client or get_gateway_client()
    amount_minor = to_minor_units(order.total)
    reference = build_reference(order.id)

    logger.info(f"Initializing payment for order {order.id}: {amount_minor} minor units")

    session = client.initialize(
        email=email,
        amount_minor=amount_minor,
        reference=reference,
        callback_url=callback_url,
        metadata={
            'order_id': str(order.id),
            'custom_fields': [
                {
                    'display_name': 'Order ID',
                    'variable_name': 'order_id',
                    'value': str(order.id),
                }
            ],
        },
    )

    attempt = PaymentAttempt.objects.create(
        order=order,
        reference=session.reference,
        email=email,
        amount_minor=amount_minor,
        authorization_url=session.authorization_url,
        access_code=session.access_code,
    )

    logger.info(f"Payment initialized for order {order.id}: {attempt.reference}")
    return attempt


def check_transaction_matches_order(transaction: VerifiedTransaction, order: Order) -> None:
    """
    Raise TransactionMismatch unless the transaction was opened for this
    order (metadata order_id) and for its full total.
    """
    raw_order_id = transaction.metadata.get('order_id')
    try:
        metadata_order_id = uuid.UUID(str(raw_order_id)) if raw_order_id else None
    except ValueError:
        metadata_order_id = None

    if metadata_order_id != order.id:
        logger.error(
            f"Transaction {transaction.reference} belongs to order {raw_order_id!r}, "
            f"refusing to apply it to order {order.id}"
        )
        raise TransactionMismatch(
            f"Transaction {transaction.reference} was not made for order {order.id}"
        )

    expected_minor = to_minor_units(order.total)
    if transaction.amount_minor != expected_minor:
        logger.error(
            f"Transaction {transaction.reference} amount {transaction.amount_minor} "
            f"does not match order {order.id} total {expected_minor}"
        )
        raise TransactionMismatch(
            f"Transaction {transaction.reference} amount does not match order {order.id} total"
        )


def verify_payment(reference: str, order_id=None,
                   client: Optional[PaystackClient] = None) -> VerificationResult:
    """
    Verify a transaction with the gateway and settle the order on success.

    A no-op settlement (already settled by the webhook) is still a
    successful verification.

    Raises:
        TransactionNotFound: Gateway has no such reference
        GatewayUnavailable: Gateway call failed; nothing was written
        OrderNotFound: orderId given but unknown
        TransactionMismatch: Transaction was made for another order or amount
    """
    client = client or get_gateway_client()

    logger.info(f"Verifying payment {reference}")
    transaction = client.verify(reference)
    logger.info(f"Payment {reference} verification result: {transaction.status}")

    outcome = None
    if order_id is not None and transaction.is_successful:
        order = _get_order(order_id)
        check_transaction_matches_order(transaction, order)
        outcome = settle(
            order.id,
            transaction.reference,
            transaction.status,
            message='Payment verified and held in escrow',
        )
        logger.info(f"Order {order.id}: settlement via verification -> {outcome.value}")

    return VerificationResult(transaction=transaction, outcome=outcome)


def feature_product(product_id) -> None:
    """Mark a product as featured. Repeating it is harmless."""
    updated = Product.objects.filter(id=product_id).update(featured=True, updated_at=timezone.now())
    if not updated:
        raise ProductNotFound(product_id)
    logger.info(f"Product {product_id} is now featured")


def initialize_featured_payment(product_id, email: Optional[str] = None,
                                callback_url: Optional[str] = None,
                                promo_code: Optional[str] = None,
                                client: Optional[PaystackClient] = None) -> Optional[InitializedTransaction]:
    """
    Open a checkout session for featuring a product.

    Returns None when a valid promo code featured the product without
    payment. Email defaults to the vendor's account email.

    Raises:
        ProductNotFound, AlreadyFeatured, PaymentError (no email), GatewayUnavailable
    """
    try:
        product = Product.objects.select_related('vendor__user').get(id=product_id)
    except (Product.DoesNotExist, ValidationError, ValueError):
        raise ProductNotFound(product_id)

    if product.featured:
        raise AlreadyFeatured(product.id)

    valid_promo = settings.FEATURED_LISTING_PROMO_CODE
    if promo_code and valid_promo and promo_code.strip().upper() == valid_promo.upper():
        logger.info(f"Promo code applied, featuring product {product.id} without payment")
        feature_product(product.id)
        return None

    email = email or product.vendor.user.email
    if not email:
        raise PaymentError('Email is required for payment')

    client = client or get_gateway_client()
    reference = f"FEAT-{product.id}-{int(time.time() * 1000)}"

    session = client.initialize(
        email=email,
        amount_minor=to_minor_units(settings.FEATURED_LISTING_PRICE),
        reference=reference,
        callback_url=callback_url,
        metadata={
            'product_id': str(product.id),
            'type': FEATURED_LISTING,
            'custom_fields': [
                {'display_name': 'Product ID', 'variable_name': 'product_id', 'value': str(product.id)},
                {'display_name': 'Type', 'variable_name': 'type', 'value': FEATURED_LISTING},
            ],
        },
    )

    logger.info(f"Featured payment initialized for product {product.id}: {session.reference}")
    return session


def verify_featured_payment(reference: str,
                            client: Optional[PaystackClient] = None) -> FeaturedVerification:
    """
    Verify a featured-listing payment by reference and feature the product.

    An unsuccessful transaction is reported, not raised.

    Raises:
        InvalidPaymentMetadata: Not a featured-listing payment, or paid short
        ProductNotFound: Product in the metadata no longer exists
        TransactionNotFound, GatewayUnavailable
    """
    client = client or get_gateway_client()

    transaction = client.verify(reference)
    if not transaction.is_successful:
        logger.warning(f"Featured payment {reference} not successful: {transaction.status}")
        return FeaturedVerification(transaction=transaction)

    metadata = transaction.metadata
    if metadata.get('type') != FEATURED_LISTING or not metadata.get('product_id'):
        logger.error(f"Featured payment {reference} has invalid metadata: {metadata}")
        raise InvalidPaymentMetadata('Invalid payment metadata')

    try:
        product_id = int(metadata['product_id'])
    except (TypeError, ValueError):
        raise InvalidPaymentMetadata('Invalid payment metadata')

    if transaction.amount_minor < to_minor_units(settings.FEATURED_LISTING_PRICE):
        logger.error(f"Featured payment {reference} underpaid: {transaction.amount_minor}")
        raise InvalidPaymentMetadata('Payment amount is below the featured listing price')

    feature_product(product_id)
    return FeaturedVerification(transaction=transaction, product_id=product_id)
