"""
E-Learning Billing URL Configuration

Each functional area (cart, orders, subscriptions, refunds, revenue, bundles,
coupons) has its own URL namespace below /api/billing/.

URL Structure:
- /api/billing/cart/: Shopping cart (guest and authenticated)
- /api/billing/checkout/, /api/billing/orders/: Checkout and order history
- /api/billing/subscriptions/: Plans and the user's subscription
- /api/billing/refunds/: Refund requests and administration
- /api/billing/earnings/, /api/billing/payouts/: Instructor revenue
- /api/billing/bundles/: Course bundles
- /api/billing/coupons/: Discount coupons

Author: DSP Development Team
Version: 1.0.0
"""

from typing import List
from django.urls import path, include, URLPattern

from .cart import views as cart_views
from .orders import views as order_views
from .subscriptions import views as subscription_views
from .refunds import views as refund_views
from .revenue import views as revenue_views
from .bundles import views as bundle_views
from .coupons import views as coupon_views

app_name = 'elearning'

# --- Cart ---

cart_urlpatterns: List[URLPattern] = [
    path('', cart_views.CartView.as_view(), name='cart'),
    path('items/', cart_views.CartItemView.as_view(), name='cart-item-add'),
    path('items/<int:course_id>/', cart_views.CartItemView.as_view(), name='cart-item-remove'),
    path('merge/', cart_views.MergeCartView.as_view(), name='cart-merge'),
]

# --- Orders ---

orders_urlpatterns: List[URLPattern] = [
    path('', order_views.OrderListView.as_view(), name='order-list'),
    path('<int:pk>/', order_views.OrderDetailView.as_view(), name='order-detail'),
    path('<int:pk>/pay/', order_views.RetryPaymentView.as_view(), name='order-retry-payment'),
]

# --- Subscriptions ---

subscriptions_urlpatterns: List[URLPattern] = [
    path('', subscription_views.SubscribeView.as_view(), name='subscribe'),
    path('plans/', subscription_views.PlanListView.as_view(), name='plan-list'),
    path('plans/<slug:slug>/', subscription_views.PlanDetailView.as_view(), name='plan-detail'),
    path('me/', subscription_views.MySubscriptionView.as_view(), name='my-subscription'),
    path('checkout/', subscription_views.SubscriptionCheckoutView.as_view(), name='subscription-checkout'),
    path('cancel/', subscription_views.CancelSubscriptionView.as_view(), name='subscription-cancel'),
    path('resume/', subscription_views.ResumeSubscriptionView.as_view(), name='subscription-resume'),
    path('change-plan/', subscription_views.ChangePlanView.as_view(), name='subscription-change-plan'),
]

# --- Refunds ---

refunds_urlpatterns: List[URLPattern] = [
    path('', refund_views.RefundListCreateView.as_view(), name='refund-list'),
    # Administration (requires staff privileges)
    path('admin/', refund_views.AdminRefundListView.as_view(), name='refund-admin-list'),
    path('<int:pk>/approve/', refund_views.ApproveRefundView.as_view(), name='refund-approve'),
    path('<int:pk>/reject/', refund_views.RejectRefundView.as_view(), name='refund-reject'),
    path('<int:pk>/process/', refund_views.ProcessRefundView.as_view(), name='refund-process'),
]

# --- Instructor Revenue ---

earnings_urlpatterns: List[URLPattern] = [
    path('', revenue_views.EarningListView.as_view(), name='earning-list'),
    path('stats/', revenue_views.InstructorStatsView.as_view(), name='earning-stats'),
]

payouts_urlpatterns: List[URLPattern] = [
    path('', revenue_views.PayoutListCreateView.as_view(), name='payout-list'),
    path('<int:pk>/confirm/', revenue_views.ConfirmPayoutView.as_view(), name='payout-confirm'),
    path('<int:pk>/fail/', revenue_views.FailPayoutView.as_view(), name='payout-fail'),
]

# --- Bundles ---

bundles_urlpatterns: List[URLPattern] = [
    path('', bundle_views.BundleListView.as_view(), name='bundle-list'),
    path('mine/', bundle_views.MyBundlesView.as_view(), name='my-bundles'),
    path('<int:pk>/purchase/', bundle_views.PurchaseBundleView.as_view(), name='bundle-purchase'),
    path('<slug:slug>/', bundle_views.BundleDetailView.as_view(), name='bundle-detail'),
]

# --- Coupons ---

coupons_urlpatterns: List[URLPattern] = [
    path('validate/', coupon_views.ValidateCouponView.as_view(), name='coupon-validate'),
    # Administration (requires staff privileges)
    path('', coupon_views.CouponListCreateView.as_view(), name='coupon-list'),
    path('<int:pk>/', coupon_views.CouponDetailView.as_view(), name='coupon-detail'),
    path('<int:pk>/toggle/', coupon_views.ToggleCouponView.as_view(), name='coupon-toggle'),
]

# --- Main URL Configuration ---

urlpatterns: List[URLPattern] = [
    path('checkout/', order_views.CheckoutView.as_view(), name='checkout'),
    path('cart/', include((cart_urlpatterns, 'cart'))),
    path('orders/', include((orders_urlpatterns, 'orders'))),
    path('subscriptions/', include((subscriptions_urlpatterns, 'subscriptions'))),
    path('refunds/', include((refunds_urlpatterns, 'refunds'))),
    path('earnings/', include((earnings_urlpatterns, 'earnings'))),
    path('payouts/', include((payouts_urlpatterns, 'payouts'))),
    path('bundles/', include((bundles_urlpatterns, 'bundles'))),
    path('coupons/', include((coupons_urlpatterns, 'coupons'))),
]
