"""
Payment API Views.

Implements:
- POST /payments/initialize/ - Open a hosted checkout session for an order
- POST /payments/verify/ - Buyer-side verification after redirect back
- POST /payments/webhook/ - Gateway push notifications
- POST /payments/featured/initialize/ - Pay to feature a product
- POST /payments/featured/verify/ - Verify a featured-listing payment

The two settlement entry points (verify, webhook) share no state; both
defer to settlement's conditional update.
"""
import json
import logging

from django.conf import settings
from django.http import HttpResponse
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from core.cors import CorsMixin
from core.rate_limiting import RateLimitMixin
from .events import ChargeSucceeded, parse_event, signature_matches
from .exceptions import PaymentError
from .gateway import TRANSACTION_SUCCESS
from .serializers import (
    InitializeFeaturedPaymentSerializer,
    InitializePaymentSerializer,
    VerifyFeaturedPaymentSerializer,
    VerifyPaymentSerializer,
)
from .services import (
    initialize_featured_payment,
    initialize_payment,
    verify_featured_payment,
    verify_payment,
)
from .settlement import settle

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = 'HTTP_X_PAYSTACK_SIGNATURE'


def _failure(message, status_code):
    return Response({'success': False, 'error': message}, status=status_code)


class InitializePaymentView(CorsMixin, RateLimitMixin, APIView):
    """
    POST: Open a gateway checkout session.

    Request Body:
    {"orderId": "...", "email": "...", "callbackUrl": "..."}

    Returns:
        - 200: {success, authorizationUrl, accessCode, reference}
        - 400: Validation error
        - 404: Order not found
        - 409: Order already paid or cancelled
        - 502: Gateway unavailable
    """
    authentication_classes = []
    permission_classes = [AllowAny]
    rate_limit_max_requests = 10
    rate_limit_window_seconds = 60
    rate_limit_scope = 'payment-initialize'

    def post(self, request):
        serializer = InitializePaymentSerializer(data=request.data)
        if not serializer.is_valid():
            return _failure(serializer.errors, status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        callback_url = data.get('callback_url') or None
        if not callback_url and request.headers.get('Origin'):
            callback_url = f"{request.headers['Origin']}/orders/{data['order_id']}"

        try:
            attempt = initialize_payment(data['order_id'], data['email'], callback_url)
        except PaymentError as e:
            logger.warning(f"Payment initialization failed for order {data['order_id']}: {e}")
            return _failure(str(e), e.status_code)
        except Exception as e:
            logger.exception(f"Unexpected error initializing payment: {e}")
            return _failure('An unexpected error occurred', status.HTTP_500_INTERNAL_SERVER_ERROR)

        return Response({
            'success': True,
            'authorizationUrl': attempt.authorization_url,
            'accessCode': attempt.access_code,
            'reference': attempt.reference,
        })


class VerifyPaymentView(CorsMixin, RateLimitMixin, APIView):
    """
    POST: Verify a transaction and settle the order on success.

    Request Body:
    {"reference": "...", "orderId": "..."}   # orderId optional

    The response mirrors the gateway (amount in major units), whether
    this call settled the order or found it already settled. A transaction
    made for a different order or amount is refused with 409.
    """
    authentication_classes = []
    permission_classes = [AllowAny]
    rate_limit_max_requests = 30
    rate_limit_window_seconds = 60
    rate_limit_scope = 'payment-verify'

    def post(self, request):
        serializer = VerifyPaymentSerializer(data=request.data)
        if not serializer.is_valid():
            return _failure(serializer.errors, status.HTTP_400_BAD_REQUEST)

        reference = serializer.validated_data['reference']
        order_id = serializer.validated_data.get('order_id')

        try:
            result = verify_payment(reference, order_id)
        except PaymentError as e:
            logger.warning(f"Payment verification failed for {reference}: {e}")
            return _failure(str(e), e.status_code)
        except Exception as e:
            logger.exception(f"Unexpected error verifying payment {reference}: {e}")
            return _failure('An unexpected error occurred', status.HTTP_500_INTERNAL_SERVER_ERROR)

        transaction = result.transaction
        return Response({
            'success': transaction.is_successful,
            'status': transaction.status,
            'amount': transaction.amount,
            'reference': transaction.reference,
            'paidAt': transaction.paid_at.isoformat() if transaction.paid_at else None,
        })


class InitializeFeaturedPaymentView(CorsMixin, RateLimitMixin, APIView):
    """
    POST: Pay the flat fee to feature a product, or redeem a promo code.

    Returns:
        - 200: {success, authorization_url, access_code, reference}
               or {success, promo_applied, message} when a promo code featured it
        - 404: Product not found
        - 409: Product already featured
        - 502: Gateway unavailable
    """
    authentication_classes = []
    permission_classes = [AllowAny]
    rate_limit_max_requests = 10
    rate_limit_window_seconds = 60
    rate_limit_scope = 'featured-initialize'

    def post(self, request):
        serializer = InitializeFeaturedPaymentSerializer(data=request.data)
        if not serializer.is_valid():
            return _failure(serializer.errors, status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        callback_url = data.get('callback_url') or None
        if not callback_url and request.headers.get('Origin'):
            callback_url = f"{request.headers['Origin']}/vendor/products"

        try:
            session = initialize_featured_payment(
                data['product_id'],
                email=data.get('email') or None,
                callback_url=callback_url,
                promo_code=data.get('promo_code') or None,
            )
        except PaymentError as e:
            logger.warning(f"Featured payment failed for product {data['product_id']}: {e}")
            return _failure(str(e), e.status_code)
        except Exception as e:
            logger.exception(f"Unexpected error initializing featured payment: {e}")
            return _failure('An unexpected error occurred', status.HTTP_500_INTERNAL_SERVER_ERROR)

        if session is None:
            return Response({
                'success': True,
                'promo_applied': True,
                'message': 'Product featured successfully using promo code',
            })

        return Response({
            'success': True,
            'authorization_url': session.authorization_url,
            'access_code': session.access_code,
            'reference': session.reference,
        })


class VerifyFeaturedPaymentView(CorsMixin, RateLimitMixin, APIView):
    """
    POST: Verify a featured-listing payment by reference.

    Returns:
        - 200: {success, verified, product_id, message}
        - 400: Not a featured-listing payment
        - 404: Unknown reference or product
        - 502: Gateway unavailable
    """
    authentication_classes = []
    permission_classes = [AllowAny]
    rate_limit_max_requests = 30
    rate_limit_window_seconds = 60
    rate_limit_scope = 'featured-verify'

    def post(self, request):
        serializer = VerifyFeaturedPaymentSerializer(data=request.data)
        if not serializer.is_valid():
            return _failure(serializer.errors, status.HTTP_400_BAD_REQUEST)

        reference = serializer.validated_data['reference']

        try:
            result = verify_featured_payment(reference)
        except PaymentError as e:
            logger.warning(f"Featured payment verification failed for {reference}: {e}")
            return _failure(str(e), e.status_code)
        except Exception as e:
            logger.exception(f"Unexpected error verifying featured payment {reference}: {e}")
            return _failure('An unexpected error occurred', status.HTTP_500_INTERNAL_SERVER_ERROR)

        if not result.featured:
            return Response({'success': False, 'verified': False, 'message': 'Payment not successful'})

        return Response({
            'success': True,
            'verified': True,
            'product_id': result.product_id,
            'message': 'Product is now featured',
        })


class PaystackWebhookView(CorsMixin, APIView):
    """
    POST: Gateway event sink.

    Received -> Authenticated -> Parsed -> Settled | Ignored

    Returns:
        - 200: Handled, already settled, or intentionally ignored
        - 401: Signature present but wrong (or missing when required)
        - 500: Anything else; the gateway will redeliver
    """
    authentication_classes = []
    permission_classes = [AllowAny]

    def _text(self, body, status_code):
        return HttpResponse(body, status=status_code, content_type='text/plain')

    def post(self, request):
        try:
            secret = settings.PAYSTACK_SECRET_KEY
            if not secret:
                raise RuntimeError('Paystack secret key not configured')

            body = request.body
            signature = request.META.get(SIGNATURE_HEADER)

            if signature:
                if not signature_matches(body, signature, secret):
                    logger.error('Invalid webhook signature')
                    return self._text('Invalid signature', status.HTTP_401_UNAUTHORIZED)
            elif settings.PAYSTACK_REQUIRE_WEBHOOK_SIGNATURE:
                logger.error('Webhook rejected: missing signature')
                return self._text('Missing signature', status.HTTP_401_UNAUTHORIZED)
            else:
                logger.warning('Webhook received without signature, accepting')

            event = parse_event(json.loads(body))

            if isinstance(event, ChargeSucceeded):
                if event.order_id is None:
                    logger.error(f"No usable order ID in webhook metadata for {event.reference}")
                    return self._text('OK', status.HTTP_200_OK)

                logger.info(f"Processing successful payment for order {event.order_id}")
                outcome = settle(event.order_id, event.reference, TRANSACTION_SUCCESS)
                logger.info(f"Order {event.order_id}: settlement via webhook -> {outcome.value}")
            else:
                logger.info(f"Ignoring webhook event '{event.event_type}'")

            return self._text('OK', status.HTTP_200_OK)

        except Exception as e:
            logger.exception(f"Webhook error: {e}")
            return self._text('Webhook error', status.HTTP_500_INTERNAL_SERVER_ERROR)
