"""
Django Admin configuration for payment models.
"""
from django.contrib import admin
from .models import PaymentAttempt


@admin.register(PaymentAttempt)
class PaymentAttemptAdmin(admin.ModelAdmin):
    list_display = ['id', 'reference', 'order', 'email', 'amount_minor', 'created_at']
    list_filter = ['created_at']
    search_fields = ['reference', 'email', 'order__id']
    ordering = ['-created_at']
    raw_id_fields = ['order']
    readonly_fields = ['order', 'reference', 'email', 'amount_minor', 'authorization_url', 'access_code', 'created_at']
