"""
E-Learning Billing Models Registry

This module serves as the central models registry for the E-Learning billing
application. It imports and exposes all models from the logical submodules to
ensure they are properly registered with Django's ORM system under the single
``elearning`` app label.

Architecture:
- courses/: Catalog view of courses and enrollments (entitlements)
- cart/: Guest and user shopping carts
- orders/: Orders and order items produced by checkout
- subscriptions/: Subscription plans and user subscriptions
- refunds/: Refund requests and decisions
- revenue/: Instructor earnings and payouts
- bundles/: Course bundles and the bundle purchase log
- coupons/: Discount coupons applied at checkout

Author: DSP Development Team
Version: 1.0.0
"""

# Catalog & entitlements
from .courses.models import *

# Cart
from .cart.models import *

# Orders
from .orders.models import *

# Subscriptions
from .subscriptions.models import *

# Refunds
from .refunds.models import *

# Instructor revenue
from .revenue.models import *

# Bundles
from .bundles.models import *

# Coupons
from .coupons.models import *
