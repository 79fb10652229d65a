from rest_framework import serializers

from .models import Order, OrderItem


class OrderItemSerializer(serializers.ModelSerializer):
    course_title = serializers.CharField(source="course.title", read_only=True)

    class Meta:
        model = OrderItem
        fields = ["id", "course", "course_title", "price"]


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    coupon_code = serializers.CharField(source="coupon.code", read_only=True, default=None)

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "status",
            "subtotal",
            "discount",
            "total",
            "currency",
            "bundle",
            "coupon_code",
            "items",
            "paid_at",
            "refunded_at",
            "created_at",
        ]
        read_only_fields = fields


class CheckoutRequestSerializer(serializers.Serializer):
    customer_email = serializers.EmailField(required=False, allow_blank=True)
    coupon_code = serializers.CharField(required=False, allow_blank=True, max_length=50)


class CheckoutHandleSerializer(serializers.Serializer):
    order = OrderSerializer()
    checkout_url = serializers.CharField(allow_null=True)
    session_id = serializers.CharField(allow_null=True)
    requires_payment = serializers.BooleanField()
