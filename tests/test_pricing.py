"""Tests for the pricing calculator."""

from decimal import Decimal

import pytest

from storefront.models import CartLine, DeliverySelection
from storefront.pricing import (
    PricingPolicy,
    calculate_delivery_fee,
    calculate_pricing,
    calculate_subtotal,
    calculate_vat,
    is_rush_region,
    partition_lines,
)


def selection(province="Hà Nội", rush=False):
    return DeliverySelection(province=province, rush_requested=rush)


class TestSubtotalAndVat:
    def test_subtotal(self, book, lp):
        assert calculate_subtotal([CartLine(book, 2), CartLine(lp, 1)]) == 1100000

    def test_subtotal_empty(self):
        assert calculate_subtotal([]) == 0

    def test_vat_is_ten_percent(self, policy):
        assert calculate_vat(200000, policy) == 20000

    def test_vat_rounds_half_up(self, policy):
        assert calculate_vat(5, policy) == 1
        assert calculate_vat(4, policy) == 0

    def test_vat_rate_is_configurable(self):
        assert calculate_vat(200000, PricingPolicy(vat_rate=Decimal("0.08"))) == 16000


class TestRushRegion:
    def test_exact_match(self, policy):
        assert is_rush_region("Hà Nội", policy)

    def test_whitespace_and_case_insensitive(self, policy):
        assert is_rush_region("  hà   nội ", policy)

    @pytest.mark.parametrize("province", ["Hồ Chí Minh", "", None])
    def test_other_regions(self, policy, province):
        assert not is_rush_region(province, policy)


class TestDeliveryFee:
    def test_empty_cart_has_no_fee(self, policy):
        assert calculate_delivery_fee([], True, policy) == 0

    def test_regular_without_rush(self, policy, book):
        assert calculate_delivery_fee([CartLine(book, 1)], False, policy) == 30000

    def test_rush_only(self, policy, book):
        assert calculate_delivery_fee([CartLine(book, 1)], True, policy) == 50000

    def test_mixed_cart_pays_both_parcels(self, policy, book, lp):
        lines = [CartLine(book, 1), CartLine(lp, 1)]

        assert calculate_delivery_fee(lines, True, policy) == 80000

    def test_rush_requested_without_eligible_lines(self, policy, lp):
        assert calculate_delivery_fee([CartLine(lp, 1)], True, policy) == 30000

    def test_partition_skips_empty_lines(self, book, lp):
        rush, regular = partition_lines([CartLine(book, 0), CartLine(lp, 2)])

        assert rush == []
        assert [line.product_id for line in regular] == [lp.id]


class TestCalculatePricing:
    def test_end_to_end_rush_book(self, policy, book):
        pricing = calculate_pricing([CartLine(book, 2)], selection(rush=True), policy)

        assert pricing.subtotal == 200000
        assert pricing.vat == 20000
        assert pricing.delivery_fee == 50000
        assert pricing.total == 270000
        assert pricing.rush_applied is True

    def test_rush_ignored_outside_region(self, policy, book):
        pricing = calculate_pricing(
            [CartLine(book, 2)], selection(province="Đà Nẵng", rush=True), policy
        )

        assert pricing.delivery_fee == 30000
        assert pricing.rush_applied is False
        assert pricing.total == 250000

    def test_rush_not_applied_without_eligible_lines(self, policy, lp):
        pricing = calculate_pricing([CartLine(lp, 1)], selection(rush=True), policy)

        assert pricing.rush_applied is False
        assert pricing.delivery_fee == 30000

    def test_empty_cart(self, policy):
        pricing = calculate_pricing([], selection(), policy)

        assert pricing.total == 0

    def test_total_is_sum_of_parts(self, policy, book, lp):
        pricing = calculate_pricing(
            [CartLine(book, 3), CartLine(lp, 1)], selection(rush=True), policy
        )

        assert pricing.total == pricing.subtotal + pricing.vat + pricing.delivery_fee
        assert pricing.to_dict()["total"] == pricing.total

    def test_policy_from_settings(self, monkeypatch):
        monkeypatch.setenv("STOREFRONT_RUSH_FEE", "70000")
        monkeypatch.setenv("STOREFRONT_RUSH_PROVINCE", "Hải Phòng")

        policy = PricingPolicy.from_settings()

        assert policy.rush_fee == 70000
        assert policy.rush_province == "Hải Phòng"
        assert policy.regular_fee == 30000
