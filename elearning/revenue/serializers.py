from rest_framework import serializers

from .models import InstructorEarning, Payout


class InstructorEarningSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source="order_item.order.order_number", read_only=True)
    course_title = serializers.CharField(source="order_item.course.title", read_only=True)

    class Meta:
        model = InstructorEarning
        fields = [
            "id",
            "order_number",
            "course_title",
            "amount",
            "platform_fee",
            "status",
            "paid_at",
            "reversed_at",
            "created_at",
        ]
        read_only_fields = fields


class PayoutSerializer(serializers.ModelSerializer):
    class Meta:
        model = Payout
        fields = ["id", "amount", "currency", "status", "method", "transaction_id", "processed_at", "created_at"]
        read_only_fields = fields


class PayoutRequestSerializer(serializers.Serializer):
    amount = serializers.DecimalField(max_digits=10, decimal_places=2)
    method = serializers.CharField(required=False, allow_blank=True, default="")


class PayoutConfirmSerializer(serializers.Serializer):
    transaction_id = serializers.CharField(required=False, allow_blank=True, default="")


class InstructorStatsSerializer(serializers.Serializer):
    lifetime_earnings = serializers.DecimalField(max_digits=12, decimal_places=2)
    pending_earnings = serializers.DecimalField(max_digits=12, decimal_places=2)
    available_earnings = serializers.DecimalField(max_digits=12, decimal_places=2)
    paid_earnings = serializers.DecimalField(max_digits=12, decimal_places=2)
    reversed_earnings = serializers.DecimalField(max_digits=12, decimal_places=2)
    withdrawn = serializers.DecimalField(max_digits=12, decimal_places=2)
    payouts_in_flight = serializers.DecimalField(max_digits=12, decimal_places=2)
    available_balance = serializers.DecimalField(max_digits=12, decimal_places=2)
    sales_count = serializers.IntegerField()
