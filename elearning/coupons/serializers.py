from rest_framework import serializers

from .models import Coupon


class CouponSerializer(serializers.ModelSerializer):
    course_ids = serializers.PrimaryKeyRelatedField(source="applicable_courses", many=True, read_only=True)

    class Meta:
        model = Coupon
        fields = [
            "id",
            "code",
            "coupon_type",
            "value",
            "min_purchase",
            "max_discount",
            "usage_limit",
            "used_count",
            "per_user_limit",
            "course_ids",
            "starts_at",
            "expires_at",
            "is_active",
            "created_at",
        ]
        read_only_fields = fields


class CouponCreateSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=50)
    coupon_type = serializers.ChoiceField(choices=Coupon.Type.choices)
    value = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, default=0)
    min_purchase = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, default=0)
    max_discount = serializers.DecimalField(
        max_digits=10, decimal_places=2, required=False, allow_null=True, default=None
    )
    usage_limit = serializers.IntegerField(required=False, allow_null=True, min_value=1, default=None)
    per_user_limit = serializers.IntegerField(required=False, min_value=1, default=1)
    course_ids = serializers.ListField(
        child=serializers.IntegerField(min_value=1), required=False, allow_empty=True, default=list
    )
    starts_at = serializers.DateTimeField(required=False, allow_null=True, default=None)
    expires_at = serializers.DateTimeField(required=False, allow_null=True, default=None)
    is_active = serializers.BooleanField(required=False, default=True)


class CouponValidateRequestSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=50)


class CouponQuoteSerializer(serializers.Serializer):
    code = serializers.CharField(source="coupon.code")
    coupon_type = serializers.CharField(source="coupon.coupon_type")
    subtotal = serializers.DecimalField(max_digits=10, decimal_places=2)
    discount = serializers.DecimalField(max_digits=10, decimal_places=2)
    total = serializers.DecimalField(max_digits=10, decimal_places=2)
    eligible_course_ids = serializers.ListField(child=serializers.IntegerField())
