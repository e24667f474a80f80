"""Pricing engine tests."""
from datetime import date
from decimal import Decimal

import pytest

from business.pricing import (
    MissingTypePolicy, PricingEngine, final_price, quote_price,
)
from database.entities import Order, OrderStatus
from database.errors import PricingError, ValidationError


class TestPriceFormulas:
    """Test the pure quote / final price formulas."""

    @pytest.mark.parametrize("base,units,expected", [
        ("800", 1, "800"),
        ("800", 3, "2400"),
        ("1234.50", 2, "2469.00"),
    ])
    def test_quote(self, base, units, expected):
        assert quote_price(Decimal(base), units) == Decimal(expected)

    def test_quote_rejects_zero_units(self):
        with pytest.raises(ValidationError):
            quote_price(Decimal("800"), 0)

    def test_final_price_with_and_without_model(self):
        assert final_price(Decimal("1000"), Decimal("150"), 2, True) == Decimal("2150")
        assert final_price(Decimal("1000"), Decimal("150"), 2, False) == Decimal("2000")
        assert final_price(Decimal("1000"), None, 2, True) == Decimal("2000")


class TestPricingEngine:
    """Test catalogue-backed pricing."""

    def test_quote_from_catalogue(self, pricing, lab):
        assert pricing.quote(lab.crown.id, 3) == Decimal("3000")

    def test_finalize_breakdown(self, pricing, lab):
        breakdown = pricing.finalize(lab.denture.id, 1, has_model=True)
        assert breakdown.base_price == Decimal("2000")
        assert breakdown.model_fee == Decimal("300")
        assert breakdown.final_price == Decimal("2300")

    def test_missing_type_zero_price_policy(self, pricing):
        assert pricing.quote("ghost", 2) == Decimal("0")
        assert pricing.finalize("ghost", 1, True).final_price == Decimal("0")

    def test_missing_type_raise_policy(self, lab):
        strict = PricingEngine(lab.store, MissingTypePolicy.RAISE)
        with pytest.raises(PricingError):
            strict.quote("ghost", 1)


class TestReceivableAndDiscount:
    """Test effective receivable and discount validation."""

    def order(self, **fields):
        return Order(id="o1", status=OrderStatus.DELIVERED, total_price=Decimal("2000"),
                     arrival_date=date(2024, 1, 1), **fields)

    def test_billable_prefers_final_price(self, pricing):
        assert pricing.billable_amount(self.order()) == Decimal("2000")
        assert pricing.billable_amount(self.order(final_price=Decimal("1150"))) == Decimal("1150")

    def test_discount_never_increases_receivable(self, pricing):
        base = pricing.effective_receivable(self.order())
        for amount in ("0", "100", "2000"):
            discounted = self.order(discount_amount=Decimal(amount))
            assert pricing.effective_receivable(discounted) <= base

    def test_receivable_floors_at_zero(self, pricing):
        assert pricing.effective_receivable(
            self.order(discount_amount=Decimal("5000"))) == Decimal("0")

    def test_validate_discount_bounds(self, pricing):
        order = self.order(final_price=Decimal("1150"))
        assert pricing.validate_discount(order, "150") == Decimal("150")
        assert pricing.validate_discount(order, 1150) == Decimal("1150")
        with pytest.raises(ValidationError):
            pricing.validate_discount(order, Decimal("-1"))
        with pytest.raises(ValidationError):
            pricing.validate_discount(order, Decimal("1150.01"))
