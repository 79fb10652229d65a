"""
Shopping Cart Models

Carts are ephemeral purchase candidates owned either by an authenticated
user or by an anonymous session key. Each course appears at most once per
cart.

Author: DSP Development Team
Version: 1.0.0
"""

from django.db import models
from django.conf import settings
from django.utils.translation import gettext_lazy as _

User = settings.AUTH_USER_MODEL

__all__ = ["Cart", "CartItem"]


class Cart(models.Model):
    user = models.OneToOneField(
        User, on_delete=models.CASCADE, null=True, blank=True, related_name="cart"
    )
    session_key = models.CharField(max_length=64, unique=True, null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = _("Cart")
        verbose_name_plural = _("Carts")
        db_table = "elearning_cart"

    def __str__(self) -> str:
        owner = f"user={self.user_id}" if self.user_id else f"session={self.session_key}"
        return f"Cart({owner})"


class CartItem(models.Model):
    cart = models.ForeignKey(Cart, on_delete=models.CASCADE, related_name="items")
    course = models.ForeignKey("elearning.Course", on_delete=models.CASCADE, related_name="+")
    added_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Cart Item")
        verbose_name_plural = _("Cart Items")
        ordering = ["added_at", "id"]
        db_table = "elearning_cart_item"
        constraints = [
            models.UniqueConstraint(fields=["cart", "course"], name="uniq_cart_item_course"),
        ]

    def __str__(self) -> str:
        return f"{self.course_id} in cart {self.cart_id}"
