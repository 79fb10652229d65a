"""
Coupon API

Endpoints (mounted under /api/billing/coupons/):
- POST   /validate/        discount a code would give on the user's cart
- GET    /                 all coupons (admin)
- POST   /                 create a coupon (admin)
- DELETE /<id>/            delete an unused coupon (admin)
- POST   /<id>/toggle/     enable or disable a coupon (admin)
"""

from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from ..cart.services import get_or_create_cart
from ..exceptions import EmptyCart
from ..pricing import effective_price
from .serializers import (
    CouponCreateSerializer,
    CouponQuoteSerializer,
    CouponSerializer,
    CouponValidateRequestSerializer,
)
from .services import CouponService


class ValidateCouponView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = CouponValidateRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = get_or_create_cart(user=request.user)
        prices = [(item.course, effective_price(item.course)) for item in cart.items.select_related("course")]
        if not prices:
            raise EmptyCart()
        quote = CouponService().quote(serializer.validated_data["code"], prices, user=request.user)
        return Response(CouponQuoteSerializer(quote).data)


class CouponListCreateView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def get(self, request):
        is_active = request.query_params.get("is_active")
        if is_active is not None:
            is_active = is_active.lower() in ("1", "true", "yes")
        coupons = CouponService().list_coupons(is_active=is_active)
        return Response(CouponSerializer(coupons, many=True).data)

    def post(self, request):
        serializer = CouponCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        coupon = CouponService().create_coupon(created_by=request.user, **serializer.validated_data)
        return Response(CouponSerializer(coupon).data, status=status.HTTP_201_CREATED)


class CouponDetailView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def delete(self, request, pk: int):
        CouponService().delete_coupon(pk)
        return Response(status=status.HTTP_204_NO_CONTENT)


class ToggleCouponView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def post(self, request, pk: int):
        coupon = CouponService().toggle_active(pk)
        return Response(CouponSerializer(coupon).data)
