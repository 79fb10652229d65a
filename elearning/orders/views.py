"""
Checkout & Order API

Endpoints (mounted under /api/billing/):
- POST /checkout/              turn the user's cart into an order and start payment
- GET  /orders/                the user's orders
- GET  /orders/<id>/           one order (owner only)
- POST /orders/<id>/pay/       new checkout session for an unpaid order
"""

from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from ..cart.services import get_or_create_cart
from .serializers import CheckoutHandleSerializer, CheckoutRequestSerializer, OrderSerializer
from .services import CheckoutService


class CheckoutView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = CheckoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = get_or_create_cart(user=request.user)
        data = serializer.validated_data
        handle = CheckoutService().checkout(
            cart, data.get("customer_email") or None, coupon_code=data.get("coupon_code") or None
        )
        return Response(CheckoutHandleSerializer(handle).data, status=status.HTTP_201_CREATED)


class OrderListView(generics.ListAPIView):
    serializer_class = OrderSerializer
    permission_classes = [permissions.IsAuthenticated]

    def get_queryset(self):
        return CheckoutService().get_user_orders(self.request.user)


class OrderDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk: int):
        order = CheckoutService().get_order_for_user(request.user, pk)
        return Response(OrderSerializer(order).data)


class RetryPaymentView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, pk: int):
        handle = CheckoutService().retry_payment(request.user, pk)
        return Response(CheckoutHandleSerializer(handle).data)
