from rest_framework import serializers

from .models import Subscription, SubscriptionPlan


class SubscriptionPlanSerializer(serializers.ModelSerializer):
    class Meta:
        model = SubscriptionPlan
        fields = [
            "id",
            "name",
            "slug",
            "description",
            "price_monthly",
            "price_yearly",
            "features",
            "max_courses",
            "is_active",
        ]
        read_only_fields = ["id"]
        extra_kwargs = {"slug": {"required": False}}


class SubscriptionSerializer(serializers.ModelSerializer):
    plan = SubscriptionPlanSerializer(read_only=True)

    class Meta:
        model = Subscription
        fields = [
            "id",
            "plan",
            "status",
            "interval",
            "current_period_start",
            "current_period_end",
            "cancel_at_period_end",
            "canceled_at",
            "trial_end",
        ]
        read_only_fields = fields


class SubscribeSerializer(serializers.Serializer):
    plan_slug = serializers.SlugField()
    interval = serializers.ChoiceField(choices=Subscription.Interval.choices, default=Subscription.Interval.MONTHLY)
    customer_email = serializers.EmailField(required=False, allow_blank=True)


class ChangePlanSerializer(serializers.Serializer):
    plan_slug = serializers.SlugField()
