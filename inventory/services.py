"""
Inventory Service Layer - Stock decrement after payment settlement.

Each order item is adjusted with its own conditional UPDATE:
1. Product stock -= quantity, floored at zero
2. Variant stock -= quantity, floored at zero (only when the item has a variant)

There is no transaction around the whole item list. A failure on one item
is logged and the remaining items are still adjusted, so a crash part way
through leaves some items decremented and others not. Nothing here raises
DatabaseError back into settlement.
"""
import logging

from django.db import DatabaseError, transaction
from django.db.models import F, Value
from django.db.models.functions import Greatest
from django.utils import timezone

from orders.models import OrderItem
from .models import Product, ProductVariant

logger = logging.getLogger(__name__)


def _decrement(model, pk, quantity: int) -> int:
    """Floor-at-zero decrement of a single stock row. Returns rows affected."""
    return model.objects.filter(pk=pk).update(
        stock_quantity=Greatest(F('stock_quantity') - quantity, Value(0)),
        updated_at=timezone.now(),
    )


def apply_order_stock(order_id) -> None:
    """
    Decrement product and variant stock for every item of a settled order.

    Must only be called by settlement when it observed the order's
    pending -> paid transition; that is what keeps this to one run per order.

    Args:
        order_id: ID of the order whose items are deducted
    """
    try:
        items = list(
            OrderItem.objects.filter(order_id=order_id)
            .values('id', 'product_id', 'variant_id', 'quantity')
            .order_by('id')
        )
    except DatabaseError as e:
        # Settlement has already committed; stock bookkeeping never fails it
        logger.error(f"Order {order_id}: could not read order items, stock not deducted: {e}")
        return

    if not items:
        logger.warning(f"Order {order_id} has no items, nothing to deduct")
        return

    for item in items:
        product_id = item['product_id']
        variant_id = item['variant_id']
        quantity = item['quantity']

        try:
            with transaction.atomic():
                if _decrement(Product, product_id, quantity):
                    logger.info(
                        f"Order {order_id}: deducted {quantity} from product {product_id}"
                    )
                else:
                    logger.warning(
                        f"Order {order_id}: product {product_id} not found, stock not deducted"
                    )

                if variant_id is not None:
                    if _decrement(ProductVariant, variant_id, quantity):
                        logger.info(
                            f"Order {order_id}: deducted {quantity} from variant {variant_id}"
                        )
                    else:
                        logger.warning(
                            f"Order {order_id}: variant {variant_id} not found, stock not deducted"
                        )
        except DatabaseError as e:
            logger.error(
                f"Order {order_id}: failed to deduct stock for item {item['id']}: {e}"
            )
            continue
