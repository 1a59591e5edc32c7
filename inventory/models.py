"""
Inventory Models - Stock-bearing entities owned by marketplace vendors.

Models:
    - Vendor: Independent seller storefront, linked to a user account
    - Product: Item listed by a vendor, carries its own stock counter
    - ProductVariant: Size/colour option of a product with a separate stock counter
"""
from decimal import Decimal

from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import models


class Vendor(models.Model):
    """
    Vendor entity representing an independent storefront.
    """
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='vendor',
        help_text="Account that owns this storefront"
    )
    store_name = models.CharField(
        max_length=200,
        db_index=True,
        help_text="Public storefront name"
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether vendor can receive orders"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Vendor'
        verbose_name_plural = 'Vendors'
        ordering = ['store_name']

    def __str__(self):
        return self.store_name


class Product(models.Model):
    """
    Product entity representing items a vendor sells.

    stock_quantity is decremented by payment settlement and otherwise
    only touched by vendor-facing catalogue management.
    """
    vendor = models.ForeignKey(
        Vendor,
        on_delete=models.CASCADE,
        related_name='products',
        help_text="Vendor selling this product"
    )
    name = models.CharField(
        max_length=200,
        db_index=True,
        help_text="Product name for display and search"
    )
    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))],
        help_text="Product price in major currency units"
    )
    stock_quantity = models.PositiveIntegerField(
        default=0,
        help_text="Units available for sale"
    )
    is_active = models.BooleanField(
        default=True,
        db_index=True,
        help_text="Whether product is listed"
    )
    featured = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Promoted listing, paid for by the vendor"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Product'
        verbose_name_plural = 'Products'
        ordering = ['name']
        indexes = [
            models.Index(fields=['vendor', 'is_active'], name='product_vendor_active_idx'),
        ]

    def __str__(self):
        return f"{self.name} ({self.stock_quantity} in stock)"

    @property
    def is_out_of_stock(self) -> bool:
        return self.stock_quantity == 0


class ProductVariant(models.Model):
    """
    Variant of a product. Its stock is tracked independently of the
    product-level figure; neither is derived from the other.
    """
    product = models.ForeignKey(
        Product,
        on_delete=models.CASCADE,
        related_name='variants',
        help_text="Parent product"
    )
    name = models.CharField(
        max_length=100,
        help_text="Variant label, e.g. 'XL / Blue'"
    )
    price = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Overrides the product price when set"
    )
    stock_quantity = models.PositiveIntegerField(
        default=0,
        help_text="Units of this variant available for sale"
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'Product Variant'
        verbose_name_plural = 'Product Variants'
        ordering = ['product', 'name']
        constraints = [
            models.UniqueConstraint(
                fields=['product', 'name'],
                name='unique_product_variant_name'
            )
        ]

    def __str__(self):
        return f"{self.product.name} - {self.name}"
