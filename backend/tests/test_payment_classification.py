"""Tests for cash-on-delivery classification."""

from decimal import Decimal

import pytest

from carrier_ledger.services.payment_classification import amount_to_collect, is_order_cod


class TestIsOrderCod:
    def test_cash_methods_are_cod(self):
        """Cash payment methods require collection."""
        assert is_order_cod("efectivo", None) is True
        assert is_order_cod("cash") is True
        assert is_order_cod("contra entrega") is True
        assert is_order_cod("contra_entrega") is True
        assert is_order_cod("cod") is True

    def test_missing_method_is_cod(self):
        """No payment method at all defaults to collecting on delivery."""
        assert is_order_cod(None, None) is True
        assert is_order_cod("", None) is True

    def test_card_is_not_cod(self):
        """Non-cash methods are prepaid."""
        assert is_order_cod("tarjeta", None) is False
        assert is_order_cod("transferencia") is False

    def test_prepaid_override_wins(self):
        """A prepaid override beats a cash payment method."""
        assert is_order_cod("efectivo", "transferencia") is False
        assert is_order_cod(None, "qr") is False

    def test_blank_override_is_ignored(self):
        """A whitespace-only override is treated as no override."""
        assert is_order_cod("efectivo", "   ") is True
        assert is_order_cod("efectivo", "") is True

    @pytest.mark.parametrize("method", ["EFECTIVO", "  Cash  ", "Contra Entrega", "COD"])
    def test_case_and_whitespace_insensitive(self, method):
        """Method comparison ignores case and surrounding whitespace."""
        assert is_order_cod(method) is True


class TestAmountToCollect:
    def test_cod_collects_total(self):
        """COD orders collect the full total."""
        assert amount_to_collect("efectivo", None, Decimal("150.00")) == Decimal("150.00")

    def test_prepaid_collects_nothing(self):
        """Prepaid orders collect zero."""
        assert amount_to_collect("efectivo", "transferencia", Decimal("150.00")) == Decimal("0")
        assert amount_to_collect("tarjeta", None, Decimal("99.90")) == Decimal("0")
