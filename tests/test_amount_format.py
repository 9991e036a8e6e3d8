from decimal import Decimal

import pytest

from wallet_stream.amount_format import (
    format_sol_amount,
    format_token_amount,
    lamports_to_sol,
    parse_human_amount,
    parse_sol_amount,
    resolve_precision,
)


@pytest.mark.parametrize("raw, precision, expected", [
    ("2500000000000", 9, "2.50K tokens"),
    ("1500000000", 9, "1.5 tokens"),
    ("3000000", 6, "3 tokens"),
    ("1234500000", 6, "1.23K tokens"),
    ("12500000", 6, "12.5 tokens"),
    ("2750000000000000", 6, "2.75B tokens"),
    ("12340000000000", 6, "12.34M tokens"),
    ("500000", 9, "0.000500 tokens"),
    ("1500.25", 9, "1.50K tokens"),
    ("abc", 9, "N/A"),
    (None, 9, "N/A"),
])
def test_format_token_amount(raw, precision, expected):
    assert format_token_amount(raw, precision) == expected


def test_large_integers_do_not_lose_precision():
    raw = "123456789123456789123456789"
    assert parse_human_amount(raw, 9) == Decimal("123456789123456789.123456789")


def test_amounts_beyond_default_decimal_precision_still_format():
    raw = "1" + "0" * 40
    assert format_token_amount(raw, 0) == "1" + "0" * 31 + ".00B tokens"
    assert format_token_amount(raw, 6) == "1" + "0" * 25 + ".00B tokens"
    assert format_sol_amount(Decimal(raw)) == "1" + "0" * 37 + ".00K SOL"


@pytest.mark.parametrize("hint, expected", [
    (6, 6),
    ("9", 9),
    ("Fungible", 6),
    ("NonFungible", 9),
    (None, 9),
    (-1, 9),
    (True, 9),
])
def test_resolve_precision(hint, expected):
    assert resolve_precision(hint) == expected


def test_human_scaled_values_are_not_rescaled():
    assert parse_human_amount("2.5", 9) == Decimal("2.5")
    assert parse_human_amount(2.5, 9) == Decimal("2.5")
    assert parse_human_amount("1e3", 9) == Decimal("1000")
    assert parse_human_amount("", 9) is None
    assert parse_human_amount("NaN.", 9) is None


@pytest.mark.parametrize("sol, expected", [
    (Decimal("1.5"), "1.500 SOL"),
    (Decimal("2500"), "2.50K SOL"),
    (Decimal("0.0123"), "0.0123 SOL"),
    (Decimal("0.0005"), "0.000500 SOL"),
    ("not-a-number", "N/A SOL"),
])
def test_format_sol_amount(sol, expected):
    assert format_sol_amount(sol) == expected


def test_native_lamports_conversion():
    amount = lamports_to_sol(1_500_000_000)
    assert amount == Decimal("1.5")
    assert format_sol_amount(amount) == "1.500 SOL"


def test_parse_sol_amount():
    assert parse_sol_amount("2.0") == Decimal("2.0")
    assert parse_sol_amount(2.0) == Decimal("2.0")
    assert parse_sol_amount("2000000000") == Decimal(2)
    assert parse_sol_amount("junk") == Decimal(0)
    assert parse_sol_amount(None) == Decimal(0)
