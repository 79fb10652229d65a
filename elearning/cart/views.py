"""
Cart API

Anonymous visitors identify their cart with the ``X-Cart-Session`` header;
authenticated users always work on their own cart.

Endpoints (mounted under /api/billing/cart/):
- GET    /              cart summary
- DELETE /              clear the cart
- POST   /items/        add a course {"course_id": 1}
- DELETE /items/<id>/   remove a course
- POST   /merge/        merge a guest cart into the user's cart {"session_key": "..."}
"""

from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from . import services
from .serializers import AddCartItemSerializer, CartSummarySerializer, MergeCartSerializer

CART_SESSION_HEADER = "HTTP_X_CART_SESSION"


def _cart_for(request):
    return services.get_or_create_cart(
        user=request.user, session_key=request.META.get(CART_SESSION_HEADER)
    )


def _summary_response(cart, status_code=status.HTTP_200_OK):
    return Response(CartSummarySerializer(services.summary(cart)).data, status=status_code)


class CartView(APIView):
    permission_classes = [permissions.AllowAny]

    def get(self, request):
        return _summary_response(_cart_for(request))

    def delete(self, request):
        cart = _cart_for(request)
        services.clear(cart)
        return _summary_response(cart)


class CartItemView(APIView):
    permission_classes = [permissions.AllowAny]

    def post(self, request):
        serializer = AddCartItemSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = _cart_for(request)
        services.add_course(cart, serializer.validated_data["course_id"])
        return _summary_response(cart, status.HTTP_201_CREATED)

    def delete(self, request, course_id: int):
        cart = _cart_for(request)
        services.remove_course(cart, course_id)
        return _summary_response(cart)


class MergeCartView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = MergeCartSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        cart = services.merge_guest_cart(serializer.validated_data["session_key"], request.user)
        return _summary_response(cart)
