from rest_framework import serializers


class CartLineSerializer(serializers.Serializer):
    course_id = serializers.IntegerField()
    title = serializers.CharField()
    price = serializers.DecimalField(max_digits=10, decimal_places=2)
    original_price = serializers.DecimalField(max_digits=10, decimal_places=2)


class CartSummarySerializer(serializers.Serializer):
    cart_id = serializers.IntegerField()
    items = CartLineSerializer(many=True)
    item_count = serializers.IntegerField()
    subtotal = serializers.DecimalField(max_digits=10, decimal_places=2)


class AddCartItemSerializer(serializers.Serializer):
    course_id = serializers.IntegerField(min_value=1)


class MergeCartSerializer(serializers.Serializer):
    session_key = serializers.CharField(max_length=64)
