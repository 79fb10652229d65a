from rest_framework import serializers

from ..pricing import savings
from .models import Bundle, BundlePurchase


class BundleCourseSerializer(serializers.Serializer):
    id = serializers.IntegerField()
    title = serializers.CharField()
    slug = serializers.CharField()


class BundleSerializer(serializers.ModelSerializer):
    courses = serializers.SerializerMethodField()
    savings = serializers.SerializerMethodField()

    class Meta:
        model = Bundle
        fields = [
            "id",
            "title",
            "slug",
            "description",
            "original_price",
            "bundle_price",
            "discount_percent",
            "savings",
            "is_active",
            "start_date",
            "end_date",
            "max_purchases",
            "purchase_count",
            "courses",
        ]
        read_only_fields = fields

    def get_courses(self, obj):
        return BundleCourseSerializer(obj.ordered_courses(), many=True).data

    def get_savings(self, obj):
        return str(savings(obj))


class BundleCreateSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True, default="")
    course_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=True)
    discount_percent = serializers.DecimalField(max_digits=5, decimal_places=2)
    is_active = serializers.BooleanField(required=False, default=True)
    start_date = serializers.DateTimeField(required=False, allow_null=True, default=None)
    end_date = serializers.DateTimeField(required=False, allow_null=True, default=None)
    max_purchases = serializers.IntegerField(required=False, allow_null=True, min_value=1, default=None)


class BundlePurchaseSerializer(serializers.ModelSerializer):
    bundle = BundleSerializer(read_only=True)
    order_number = serializers.CharField(source="order.order_number", read_only=True)

    class Meta:
        model = BundlePurchase
        fields = ["id", "bundle", "order_number", "price", "created_at"]
        read_only_fields = fields


class BundlePurchaseRequestSerializer(serializers.Serializer):
    customer_email = serializers.EmailField(required=False, allow_blank=True)
