"""Tests for money helpers"""
from decimal import Decimal

from storefront.services.money import percent, round_money, to_decimal, to_float


def test_to_decimal_from_float_keeps_literal():
    assert to_decimal(19.99) == Decimal("19.99")


def test_to_decimal_invalid_is_zero():
    assert to_decimal("abc") == Decimal("0")
    assert to_decimal(None) == Decimal("0")


def test_round_money_half_up():
    assert round_money("2.345") == Decimal("2.35")


def test_percent():
    assert percent(Decimal("20.00"), 10) == Decimal("2.0000")


def test_to_float():
    assert to_float(Decimal("9.99")) == 9.99
