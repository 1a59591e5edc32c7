"""
Order Models - Order ledger with payment, escrow and tracking state.

Order Status Flow:
    PENDING_PAYMENT -> PAYMENT_CONFIRMED (payment settled, escrow held)
    PAYMENT_CONFIRMED -> SHIPPED -> COMPLETED (delivery confirmed, escrow released)
    PENDING_PAYMENT -> CANCELLED

Payment state only moves PENDING -> PAID, and payment_reference is
written exactly once, by settlement.
"""
import uuid
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class Order(models.Model):
    """
    Order entity, the system of record for a buyer's purchase.

    Status:
        - PENDING_PAYMENT: Created at checkout, awaiting payment
        - PAYMENT_CONFIRMED: Payment settled, funds held in escrow
        - SHIPPED: Handed to delivery
        - COMPLETED: Buyer confirmed delivery, escrow released
        - CANCELLED: Terminal, no payment captured
    """

    class Status(models.TextChoices):
        PENDING_PAYMENT = 'pending_payment', 'Pending Payment'
        PAYMENT_CONFIRMED = 'payment_confirmed', 'Payment Confirmed'
        SHIPPED = 'shipped', 'Shipped'
        COMPLETED = 'completed', 'Completed'
        CANCELLED = 'cancelled', 'Cancelled'

    class PaymentStatus(models.TextChoices):
        PENDING = 'pending', 'Pending'
        PAID = 'paid', 'Paid'

    class EscrowStatus(models.TextChoices):
        NONE = 'none', 'None'
        HELD = 'held', 'Held'
        RELEASED = 'released', 'Released'
        REFUNDED = 'refunded', 'Refunded'

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name='orders',
        help_text="Account that placed the order"
    )
    email = models.EmailField(
        blank=True,
        default='',
        help_text="Contact email used for the payment session"
    )
    shipping_address = models.JSONField(
        default=dict,
        blank=True,
        help_text="Delivery address captured at checkout"
    )
    subtotal = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
    )
    shipping_fee = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
    )
    total = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal('0.00'),
        validators=[MinValueValidator(Decimal('0.00'))],
        help_text="subtotal + shipping_fee, in major currency units"
    )
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING_PAYMENT,
        db_index=True,
    )
    payment_status = models.CharField(
        max_length=10,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
        db_index=True,
    )
    payment_reference = models.CharField(
        max_length=128,
        null=True,
        blank=True,
        unique=True,
        help_text="Gateway reference that settled this order (write-once)"
    )
    escrow_status = models.CharField(
        max_length=10,
        choices=EscrowStatus.choices,
        default=EscrowStatus.NONE,
        db_index=True,
    )
    notes = models.TextField(blank=True, default='')
    paid_at = models.DateTimeField(null=True, blank=True)
    confirmed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the buyer confirmed delivery"
    )
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Order'
        verbose_name_plural = 'Orders'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['buyer', 'status'], name='order_buyer_status_idx'),
            models.Index(fields=['payment_status', 'created_at'], name='order_payment_created_idx'),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(total=models.F('subtotal') + models.F('shipping_fee')),
                name='order_total_matches_components'
            ),
        ]

    def __str__(self):
        return f"Order {self.id} ({self.status}, {self.payment_status})"

    @property
    def is_paid(self) -> bool:
        return self.payment_status == self.PaymentStatus.PAID

    @property
    def short_id(self) -> str:
        return str(self.id)[:8]


class OrderItem(models.Model):
    """
    OrderItem entity, a price snapshot taken at checkout.

    Product and variant are soft references: the catalogue row may be
    removed later and the snapshot must survive it.
    """
    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='items',
        help_text="Parent order"
    )
    vendor = models.ForeignKey(
        'inventory.Vendor',
        on_delete=models.PROTECT,
        related_name='order_items',
        help_text="Vendor fulfilling this item"
    )
    product = models.ForeignKey(
        'inventory.Product',
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        related_name='order_items',
    )
    variant = models.ForeignKey(
        'inventory.ProductVariant',
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        null=True,
        blank=True,
        related_name='order_items',
    )
    product_name = models.CharField(max_length=200)
    variant_name = models.CharField(max_length=100, blank=True, default='')
    quantity = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Quantity ordered"
    )
    unit_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Price per unit at time of order"
    )
    total_price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="quantity * unit_price at time of order"
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = 'Order Item'
        verbose_name_plural = 'Order Items'
        ordering = ['id']

    def __str__(self):
        return f"{self.quantity}x {self.product_name} @ {self.unit_price}"


class OrderTrackingUpdate(models.Model):
    """
    Append-only tracking history of an order. Rows are inserted, never edited.
    """
    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='tracking_updates',
    )
    status = models.CharField(max_length=20, choices=Order.Status.choices)
    message = models.CharField(max_length=255)
    timestamp = models.DateTimeField(db_index=True)

    class Meta:
        verbose_name = 'Tracking Update'
        verbose_name_plural = 'Tracking Updates'
        ordering = ['timestamp', 'id']

    def __str__(self):
        return f"{self.order_id}: {self.status} @ {self.timestamp:%Y-%m-%d %H:%M:%S}"
