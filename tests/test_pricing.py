"""
Unit tests for the pricing policy.

Tests default rates, rule lookups, rate labels and immutability.
"""

import pytest

from cf_cost_estimator.core.pricing import (
    DEFAULT_PRICING,
    PRODUCT_NAMES,
    PricingPolicy,
    PricingRule,
    ProductPricing,
)


class TestPricingRule:
    """Test PricingRule validation and helpers."""

    @pytest.mark.parametrize("rule,label", [
        (PricingRule(1_000_000, 4.5, 1_000_000, "requests"), "$4.50/1M requests"),
        (PricingRule(10, 0.015, 1, "GB-month"), "$0.015/GB-month"),
        (PricingRule(0, 1, 100_000, "requests"), "$1.00/100K requests"),
        (PricingRule(10_000, 0.011, 1_000, "neurons", per_day=True), "$0.011/1K neurons"),
        (PricingRule(0, 0.001, 1_000_000, "rows"), "$0.001/1M rows"),
        (PricingRule(0, 2, 50, "calls"), "$2.00/50 calls"),
    ])
    def test_rate_label(self, rule, label):
        assert rule.rate_label == label

    def test_monthly_limit_fixed(self):
        assert PricingRule(5, 1, 1, "GB-month").monthly_limit(31) == 5

    def test_monthly_limit_per_day(self):
        rule = PricingRule(10_000, 0.011, 1_000, "neurons", per_day=True)
        assert rule.monthly_limit(28) == 280_000
        assert rule.monthly_limit(31) == 310_000

    def test_overage_uses_unit_size(self):
        rule = PricingRule(0, 1.00, 1_000, "images")
        assert rule.overage(200_000, 0) == pytest.approx(200.0)
        assert rule.overage(200_000, 150_000) == pytest.approx(50.0)

    def test_negative_free_limit_raises_error(self):
        with pytest.raises(ValueError, match="free_limit cannot be negative"):
            PricingRule(-1, 1, 1, "x")

    def test_negative_rate_raises_error(self):
        with pytest.raises(ValueError, match="rate cannot be negative"):
            PricingRule(1, -1, 1, "x")

    def test_zero_unit_size_raises_error(self):
        with pytest.raises(ValueError, match="unit_size must be > 0"):
            PricingRule(1, 1, 0, "x")


class TestPricingPolicy:
    """Test pricing policy lookups."""

    def test_every_product_priced(self):
        for product in PRODUCT_NAMES:
            assert DEFAULT_PRICING.get_pricing(product).rules

    def test_default_rates(self):
        """Verify the Workers Paid plan tables."""
        assert DEFAULT_PRICING.base_fee == 5.0
        r2 = DEFAULT_PRICING.get_pricing("r2")
        assert r2.rule("class_a_operations").free_limit == 1_000_000
        assert r2.rule("class_a_operations").rate == 4.50
        assert r2.rule("class_b_operations").free_limit == 10_000_000
        assert r2.rule("class_b_operations").rate == 0.36
        assert r2.rule("storage").free_limit == 10
        assert r2.rule("storage").rate == 0.015
        kv = DEFAULT_PRICING.get_pricing("kv")
        assert kv.rule("reads").free_limit == 10_000_000
        assert kv.rule("reads").rate == 0.50
        assert DEFAULT_PRICING.get_pricing("ai").rule("neurons").per_day

    def test_unsupported_product_raises_error(self):
        with pytest.raises(ValueError, match="Unsupported product: pages"):
            DEFAULT_PRICING.get_pricing("pages")

    def test_unknown_dimension_raises_error(self):
        with pytest.raises(ValueError, match="Unknown pricing dimension: egress"):
            DEFAULT_PRICING.get_pricing("r2").rule("egress")

    def test_negative_base_fee_raises_error(self):
        with pytest.raises(ValueError, match="base_fee cannot be negative"):
            PricingPolicy(base_fee=-1)

    def test_with_rule_returns_new_policy(self):
        """Verify overrides never mutate the original policy."""
        updated = DEFAULT_PRICING.with_rule("r2", "storage", free_limit=20)
        assert updated.get_pricing("r2").rule("storage").free_limit == 20
        assert updated.get_pricing("r2").rule("storage").rate == 0.015
        assert DEFAULT_PRICING.get_pricing("r2").rule("storage").free_limit == 10

    def test_with_base_fee(self):
        assert DEFAULT_PRICING.with_base_fee(0).base_fee == 0
        assert DEFAULT_PRICING.with_base_fee(None) is DEFAULT_PRICING

    def test_tables_are_read_only(self):
        with pytest.raises(TypeError):
            DEFAULT_PRICING.products["r2"] = ProductPricing({})
        with pytest.raises(TypeError):
            DEFAULT_PRICING.get_pricing("r2").rules["storage"] = PricingRule(0, 0, 1, "GB")
        with pytest.raises(AttributeError):
            DEFAULT_PRICING.base_fee = 0
