from rest_framework import serializers

from .models import Refund


class RefundSerializer(serializers.ModelSerializer):
    order_number = serializers.CharField(source="order.order_number", read_only=True)

    class Meta:
        model = Refund
        fields = [
            "id",
            "order",
            "order_number",
            "amount",
            "reason",
            "description",
            "status",
            "admin_notes",
            "processed_at",
            "created_at",
        ]
        read_only_fields = fields


class RefundRequestSerializer(serializers.Serializer):
    order_id = serializers.IntegerField(min_value=1)
    reason = serializers.ChoiceField(choices=Refund.Reason.choices)
    description = serializers.CharField(required=False, allow_blank=True, default="")


class RefundDecisionSerializer(serializers.Serializer):
    notes = serializers.CharField(required=False, allow_blank=True, default="")
