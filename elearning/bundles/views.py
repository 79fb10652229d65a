"""
Bundle API

Endpoints (mounted under /api/billing/bundles/):
- GET  /                  bundles currently on sale (public)
- POST /                  create a bundle (admin)
- GET  /mine/             bundles the user has bought
- GET  /<slug>/           one bundle (public)
- POST /<id>/purchase/    buy a bundle and start payment
"""

from django.shortcuts import get_object_or_404
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from ..orders.serializers import CheckoutHandleSerializer
from .models import Bundle
from .serializers import (
    BundleCreateSerializer,
    BundlePurchaseRequestSerializer,
    BundlePurchaseSerializer,
    BundleSerializer,
)
from .services import BundleService


class BundleListView(APIView):
    def get_permissions(self):
        if self.request.method == "GET":
            return [permissions.AllowAny()]
        return [permissions.IsAdminUser()]

    def get(self, request):
        bundles = BundleService().list_active_bundles()
        return Response(BundleSerializer(bundles, many=True).data)

    def post(self, request):
        serializer = BundleCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        bundle = BundleService().create_bundle(created_by=request.user, **serializer.validated_data)
        return Response(BundleSerializer(bundle).data, status=status.HTTP_201_CREATED)


class BundleDetailView(APIView):
    permission_classes = [permissions.AllowAny]

    def get(self, request, slug: str):
        bundle = get_object_or_404(Bundle, slug=slug)
        return Response(BundleSerializer(bundle).data)


class MyBundlesView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        purchases = BundleService().get_user_bundles(request.user)
        return Response(BundlePurchaseSerializer(purchases, many=True).data)


class PurchaseBundleView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, pk: int):
        serializer = BundlePurchaseRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        handle = BundleService().purchase_bundle(
            request.user, pk, serializer.validated_data.get("customer_email") or None
        )
        return Response(CheckoutHandleSerializer(handle).data, status=status.HTTP_201_CREATED)
