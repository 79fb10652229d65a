"""
Subscription API

Endpoints (mounted under /api/billing/subscriptions/):
- GET   /plans/               active plans (public)
- POST  /plans/               create a plan (admin)
- PATCH /plans/<slug>/        update a plan (admin)
- GET   /me/                  the user's current subscription
- POST  /                     subscribe {"plan_slug": "pro", "interval": "monthly"}
- POST  /checkout/            provider checkout session for a plan
- POST  /cancel/              cancel at period end
- POST  /resume/              undo a scheduled cancellation
- POST  /change-plan/         swap plan immediately {"plan_slug": "team"}
"""

from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from ..exceptions import NoActiveSubscription
from .serializers import (
    ChangePlanSerializer,
    SubscribeSerializer,
    SubscriptionPlanSerializer,
    SubscriptionSerializer,
)
from .services import SubscriptionService


class PlanListView(APIView):
    def get_permissions(self):
        if self.request.method == "GET":
            return [permissions.AllowAny()]
        return [permissions.IsAdminUser()]

    def get(self, request):
        plans = SubscriptionService().list_active_plans()
        return Response(SubscriptionPlanSerializer(plans, many=True).data)

    def post(self, request):
        serializer = SubscriptionPlanSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        plan = SubscriptionService().create_plan(**serializer.validated_data)
        return Response(SubscriptionPlanSerializer(plan).data, status=status.HTTP_201_CREATED)


class PlanDetailView(APIView):
    permission_classes = [permissions.IsAdminUser]

    def patch(self, request, slug: str):
        service = SubscriptionService()
        serializer = SubscriptionPlanSerializer(service.get_plan(slug), data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        fields = {k: v for k, v in serializer.validated_data.items() if k != "slug"}
        plan = service.update_plan(slug, **fields)
        return Response(SubscriptionPlanSerializer(plan).data)


class MySubscriptionView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        subscription = SubscriptionService().get_user_subscription(request.user)
        if subscription is None:
            raise NoActiveSubscription()
        return Response(SubscriptionSerializer(subscription).data)


class SubscribeView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = SubscribeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        subscription = SubscriptionService().subscribe(
            request.user, serializer.validated_data["plan_slug"], serializer.validated_data["interval"]
        )
        return Response(SubscriptionSerializer(subscription).data, status=status.HTTP_201_CREATED)


class SubscriptionCheckoutView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = SubscribeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        session = SubscriptionService().start_checkout(
            request.user,
            serializer.validated_data["plan_slug"],
            serializer.validated_data["interval"],
            serializer.validated_data.get("customer_email") or None,
        )
        return Response({"checkout_url": session.url, "session_id": session.id}, status=status.HTTP_201_CREATED)


class CancelSubscriptionView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        subscription = SubscriptionService().cancel(request.user)
        return Response(SubscriptionSerializer(subscription).data)


class ResumeSubscriptionView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        subscription = SubscriptionService().resume(request.user)
        return Response(SubscriptionSerializer(subscription).data)


class ChangePlanView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = ChangePlanSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        subscription = SubscriptionService().change_plan(request.user, serializer.validated_data["plan_slug"])
        return Response(SubscriptionSerializer(subscription).data)
