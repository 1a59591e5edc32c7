"""
Order API Views.

Implements:
- GET /orders/ - Buyer's orders
- GET /orders/{id}/ - Order detail with items and tracking history
- POST /orders/{id}/confirm-delivery/ - Release escrow after delivery
"""
import logging

from rest_framework import generics, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import Order
from .serializers import OrderSerializer, OrderListSerializer
from .services import confirm_delivery, OrderTransitionError

logger = logging.getLogger(__name__)


class OrderListView(generics.ListAPIView):
    """
    GET: List the requesting buyer's orders.

    Query Parameters:
        - payment_status: Filter by payment status (pending, paid)
        - escrow_status: Filter by escrow status (none, held, released, refunded)
    """
    serializer_class = OrderListSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        queryset = Order.objects.filter(buyer=self.request.user).prefetch_related('items')

        payment_status = self.request.query_params.get('payment_status', '').lower()
        if payment_status in Order.PaymentStatus.values:
            queryset = queryset.filter(payment_status=payment_status)

        escrow_status = self.request.query_params.get('escrow_status', '').lower()
        if escrow_status in Order.EscrowStatus.values:
            queryset = queryset.filter(escrow_status=escrow_status)

        return queryset.order_by('-created_at')


class OrderDetailView(generics.RetrieveAPIView):
    """
    GET: Retrieve one of the buyer's orders with items and tracking updates.
    """
    serializer_class = OrderSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        return Order.objects.filter(buyer=self.request.user).prefetch_related(
            'items__vendor', 'tracking_updates'
        )


class ConfirmDeliveryView(APIView):
    """
    POST: Buyer confirms delivery; escrow is released to the vendors.

    Returns:
        - 200: Order completed
        - 404: No such order for this buyer
        - 409: Escrow not held (unpaid, already released, cancelled)
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        try:
            order = confirm_delivery(pk, request.user)
        except Order.DoesNotExist:
            return Response(
                {'error': 'Not Found', 'detail': f'Order {pk} not found'},
                status=status.HTTP_404_NOT_FOUND
            )
        except OrderTransitionError as e:
            return Response(
                {'error': 'Conflict', 'detail': str(e)},
                status=status.HTTP_409_CONFLICT
            )

        order = Order.objects.prefetch_related('items__vendor', 'tracking_updates').get(id=order.id)
        return Response(OrderSerializer(order).data)
