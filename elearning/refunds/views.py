"""
Refund API

Endpoints (mounted under /api/billing/refunds/):
- GET  /                    the user's refunds
- POST /                    request a refund {"order_id": 1, "reason": "other"}
- GET  /admin/?status=...   all refunds (admin)
- POST /<id>/approve/       approve a pending refund (admin)
- POST /<id>/reject/        reject a pending refund (admin)
- POST /<id>/process/       return the funds through the provider (admin)
"""

from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import RefundDecisionSerializer, RefundRequestSerializer, RefundSerializer
from .services import RefundService


class RefundListCreateView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        refunds = RefundService().get_user_refunds(request.user)
        return Response(RefundSerializer(refunds, many=True).data)

    def post(self, request):
        serializer = RefundRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        refund = RefundService().request_refund(
            request.user,
            serializer.validated_data["order_id"],
            serializer.validated_data["reason"],
            serializer.validated_data["description"],
        )
        return Response(RefundSerializer(refund).data, status=status.HTTP_201_CREATED)


class AdminRefundListView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def get(self, request):
        refunds = RefundService().list_refunds(status=request.query_params.get("status"))
        return Response(RefundSerializer(refunds, many=True).data)


class _RefundDecisionView(APIView):
    permission_classes = [permissions.IsAdminUser]
    action = None

    def post(self, request, pk: int):
        serializer = RefundDecisionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        method = getattr(RefundService(), self.action)
        refund = method(pk, request.user, serializer.validated_data["notes"])
        return Response(RefundSerializer(refund).data)


class ApproveRefundView(_RefundDecisionView):
    action = "approve"


class RejectRefundView(_RefundDecisionView):
    action = "reject"


class ProcessRefundView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def post(self, request, pk: int):
        refund = RefundService().process(pk)
        return Response(RefundSerializer(refund).data)
