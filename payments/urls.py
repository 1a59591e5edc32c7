"""
URL routing for payment API endpoints.
"""
from django.urls import path
from . import views

app_name = 'payments'

urlpatterns = [
    path('payments/initialize/', views.InitializePaymentView.as_view(), name='payment-initialize'),
    path('payments/verify/', views.VerifyPaymentView.as_view(), name='payment-verify'),
    path('payments/webhook/', views.PaystackWebhookView.as_view(), name='payment-webhook'),
    path('payments/featured/initialize/', views.InitializeFeaturedPaymentView.as_view(), name='featured-initialize'),
    path('payments/featured/verify/', views.VerifyFeaturedPaymentView.as_view(), name='featured-verify'),
]
