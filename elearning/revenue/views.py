"""
Instructor Revenue API

Endpoints (mounted under /api/billing/):
- GET  /earnings/?status=...        the instructor's earnings
- GET  /earnings/stats/             aggregated earnings and payouts
- GET  /payouts/                    the instructor's payouts
- POST /payouts/                    request a payout {"amount": "75.00"}
- POST /payouts/<id>/confirm/       reconcile an executed payout (admin)
- POST /payouts/<id>/fail/          mark a payout failed (admin)
"""

from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from .serializers import (
    InstructorEarningSerializer,
    InstructorStatsSerializer,
    PayoutConfirmSerializer,
    PayoutRequestSerializer,
    PayoutSerializer,
)
from .services import RevenueService


class EarningListView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        earnings = RevenueService().get_earnings(request.user, status=request.query_params.get("status"))
        return Response(InstructorEarningSerializer(earnings, many=True).data)


class InstructorStatsView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        stats = RevenueService().get_instructor_stats(request.user)
        return Response(InstructorStatsSerializer(stats).data)


class PayoutListCreateView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        return Response(PayoutSerializer(RevenueService().get_payouts(request.user), many=True).data)

    def post(self, request):
        serializer = PayoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payout = RevenueService().request_payout(
            request.user, serializer.validated_data["amount"], serializer.validated_data["method"]
        )
        return Response(PayoutSerializer(payout).data, status=status.HTTP_201_CREATED)


class ConfirmPayoutView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def post(self, request, pk: int):
        serializer = PayoutConfirmSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        payout = RevenueService().confirm_payout(pk, serializer.validated_data["transaction_id"])
        return Response(PayoutSerializer(payout).data)


class FailPayoutView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def post(self, request, pk: int):
        return Response(PayoutSerializer(RevenueService().fail_payout(pk)).data)
