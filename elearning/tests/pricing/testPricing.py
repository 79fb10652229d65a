"""
Pricing engine tests: effective prices, bundle prices, fee split and the
allocation of a bundle price over its courses and coupon discounts.
"""

from decimal import Decimal
from types import SimpleNamespace

from django.test import SimpleTestCase

from elearning.exceptions import InvalidInputError
from elearning.pricing import (
    allocate,
    bundle_price,
    coupon_discount,
    discounted_price,
    effective_price,
    quantize,
    savings,
    split_platform_fee,
    to_minor_units,
)


def course(price, discount_price=None):
    return SimpleNamespace(
        price=Decimal(price), discount_price=Decimal(discount_price) if discount_price is not None else None
    )


class EffectivePriceTests(SimpleTestCase):
    def testDiscountPriceWins(self):
        self.assertEqual(effective_price(course("49.99", "29.99")), Decimal("29.99"))

    def testListPriceWithoutDiscount(self):
        self.assertEqual(effective_price(course("49.99")), Decimal("49.99"))

    def testZeroDiscountIsIgnored(self):
        self.assertEqual(effective_price(course("20.00", "0")), Decimal("20.00"))


class BundlePriceTests(SimpleTestCase):
    def testTwentyPercentOffThreeCourses(self):
        original, discounted = bundle_price([course("50"), course("40"), course("30")], 20)
        self.assertEqual(original, Decimal("120.00"))
        self.assertEqual(discounted, Decimal("96.00"))

    def testBundleUsesEffectivePrices(self):
        original, discounted = bundle_price([course("49.99", "29.99"), course("10")], 0)
        self.assertEqual(original, Decimal("39.99"))
        self.assertEqual(discounted, Decimal("39.99"))

    def testEmptyBundleIsRejected(self):
        with self.assertRaises(InvalidInputError):
            bundle_price([], 10)

    def testDiscountOutsideRangeIsRejected(self):
        with self.assertRaises(InvalidInputError):
            discounted_price(Decimal("100"), 150)
        with self.assertRaises(InvalidInputError):
            discounted_price(Decimal("100"), -1)
        with self.assertRaises(InvalidInputError):
            discounted_price(Decimal("100"), "abc")

    def testFullDiscountIsFree(self):
        self.assertEqual(discounted_price(Decimal("80"), 100), Decimal("0.00"))

    def testSavings(self):
        bundle = SimpleNamespace(original_price=Decimal("120.00"), bundle_price=Decimal("96.00"))
        self.assertEqual(savings(bundle), Decimal("24.00"))


class FeeSplitTests(SimpleTestCase):
    def testPartsAddUpToPrice(self):
        fee, share = split_platform_fee(Decimal("29.99"), 30)
        self.assertEqual(fee, Decimal("9.00"))
        self.assertEqual(share, Decimal("20.99"))
        self.assertEqual(fee + share, Decimal("29.99"))

    def testZeroFee(self):
        self.assertEqual(split_platform_fee(Decimal("10"), 0), (Decimal("0.00"), Decimal("10.00")))


class AllocateTests(SimpleTestCase):
    def testProportionalAllocation(self):
        shares = allocate(Decimal("96.00"), [Decimal("50"), Decimal("40"), Decimal("30")])
        self.assertEqual(shares, [Decimal("40.00"), Decimal("32.00"), Decimal("24.00")])

    def testLastLineAbsorbsRounding(self):
        shares = allocate(Decimal("10.00"), [1, 1, 1])
        self.assertEqual(shares, [Decimal("3.33"), Decimal("3.33"), Decimal("3.34")])
        self.assertEqual(sum(shares), Decimal("10.00"))

    def testZeroWeightsSplitEvenly(self):
        self.assertEqual(allocate(Decimal("5"), [0, 0]), [Decimal("2.50"), Decimal("2.50")])

    def testNoWeights(self):
        self.assertEqual(allocate(Decimal("5"), []), [])


class CouponDiscountTests(SimpleTestCase):
    def testPercentage(self):
        self.assertEqual(coupon_discount(Decimal("80.00"), "percentage", Decimal("25")), Decimal("20.00"))

    def testPercentageIsCapped(self):
        self.assertEqual(
            coupon_discount(Decimal("200.00"), "percentage", Decimal("50"), max_discount=Decimal("30.00")),
            Decimal("30.00"),
        )

    def testFixedNeverExceedsSubtotal(self):
        self.assertEqual(coupon_discount(Decimal("80.00"), "fixed", Decimal("15")), Decimal("15.00"))
        self.assertEqual(coupon_discount(Decimal("10.00"), "fixed", Decimal("15")), Decimal("10.00"))

    def testFree(self):
        self.assertEqual(coupon_discount(Decimal("59.90"), "free", Decimal("0")), Decimal("59.90"))

    def testUnknownType(self):
        with self.assertRaises(InvalidInputError):
            coupon_discount(Decimal("10.00"), "bogo", Decimal("1"))

class MoneyHelperTests(SimpleTestCase):
    def testQuantizeRoundsHalfUp(self):
        self.assertEqual(quantize("2.345"), Decimal("2.35"))

    def testMinorUnits(self):
        self.assertEqual(to_minor_units(Decimal("29.99")), 2999)
        self.assertEqual(to_minor_units("0.1"), 10)
