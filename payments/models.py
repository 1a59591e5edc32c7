"""
Payment Models - Hosted checkout sessions opened for an order.

A PaymentAttempt is recorded for every successful gateway initialize call.
The order's own payment_reference stays NULL until settlement; an order
may accumulate several attempts if the buyer restarts checkout.
"""
from django.db import models

from orders.models import Order


class PaymentAttempt(models.Model):
    order = models.ForeignKey(
        Order,
        on_delete=models.CASCADE,
        related_name='payment_attempts',
    )
    reference = models.CharField(
        max_length=128,
        unique=True,
        help_text="Gateway reference for this checkout session"
    )
    email = models.EmailField()
    amount_minor = models.PositiveBigIntegerField(
        help_text="Amount requested, in minor currency units"
    )
    authorization_url = models.URLField(max_length=500)
    access_code = models.CharField(max_length=100, blank=True, default='')
    created_at = models.DateTimeField(auto_now_add=True, db_index=True)

    class Meta:
        verbose_name = 'Payment Attempt'
        verbose_name_plural = 'Payment Attempts'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['order', 'created_at'], name='attempt_order_created_idx'),
        ]

    def __str__(self):
        return f"{self.reference} ({self.amount_minor})"
