"""
Test suite for currency precision and rounding
"""

import pytest
from decimal import Decimal

from lending_core.currency import Currency, Money, round_amount


class TestCurrency:
    """Test currency metadata"""

    def test_precision_and_quantum(self):
        assert Currency.USD.precision == 2
        assert Currency.USD.quantum == Decimal('0.01')
        assert Currency.UGX.precision == 0
        assert Currency.UGX.quantum == Decimal('1')

    def test_from_code(self):
        assert Currency.from_code("kes") == Currency.KES
        with pytest.raises(ValueError):
            Currency.from_code("XYZ")

    def test_round_half_up(self):
        assert round_amount(Decimal('10.005'), Currency.USD) == Decimal('10.01')
        assert round_amount(Decimal('10.004'), Currency.USD) == Decimal('10.00')
        assert round_amount(Decimal('2.5'), Currency.JPY) == Decimal('3')


class TestMoney:
    """Test money display"""

    def test_amount_rounded_on_creation(self):
        assert Money(Decimal('1.005'), Currency.EUR).amount == Decimal('1.01')

    def test_to_string(self):
        assert Money(Decimal('1234567.5'), Currency.USD).to_string() == "USD 1,234,567.50"
        assert Money(Decimal('150000'), Currency.UGX).to_string() == "UGX 150,000"
