"""
Django Admin configuration for inventory models.
"""
from django.contrib import admin
from .models import Vendor, Product, ProductVariant


class ProductVariantInline(admin.TabularInline):
    model = ProductVariant
    extra = 0
    fields = ['name', 'price', 'stock_quantity']


@admin.register(Vendor)
class VendorAdmin(admin.ModelAdmin):
    list_display = ['id', 'store_name', 'user', 'is_active', 'product_count', 'created_at']
    list_filter = ['is_active', 'created_at']
    search_fields = ['store_name', 'user__email']
    ordering = ['store_name']
    raw_id_fields = ['user']

    def product_count(self, obj):
        return obj.products.count()
    product_count.short_description = 'Products'


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'vendor', 'price', 'stock_quantity', 'is_out_of_stock', 'featured', 'is_active']
    list_filter = ['is_active', 'featured', 'vendor', 'created_at']
    search_fields = ['name', 'vendor__store_name']
    ordering = ['name']
    raw_id_fields = ['vendor']
    inlines = [ProductVariantInline]

    def is_out_of_stock(self, obj):
        return obj.is_out_of_stock
    is_out_of_stock.boolean = True
    is_out_of_stock.short_description = 'Out of Stock'
