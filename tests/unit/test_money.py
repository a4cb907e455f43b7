"""
Unit tests for money helpers and deterministic hashing.

Verifies:
- round_money is half-up to two places
- to_decimal coercion, including float-backed columns
- currency validation
- canonical JSON is stable across equivalent decimals
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

import pytest

from payroll_kernel.db.types import (
    InvalidCurrencyError,
    MONEY_DECIMAL_PLACES,
    round_money,
    to_decimal,
    validate_currency,
)
from payroll_kernel.utils.hashing import canonicalize_json, hash_payload, to_json_safe
from payroll_modules.execution.models import PayrollRunStatus


class TestRoundMoney:
    """Tests for round_money."""

    def test_default_places(self):
        assert MONEY_DECIMAL_PLACES == 2
        assert round_money(Decimal("2.345")) == Decimal("2.35")

    @pytest.mark.parametrize("value, expected", [
        ("0.005", "0.01"),
        ("-0.005", "-0.01"),
        ("321.428571", "321.43"),
        ("100", "100.00"),
    ])
    def test_half_up(self, value, expected):
        assert str(round_money(Decimal(value))) == expected

    def test_custom_places(self):
        assert round_money(Decimal("1.23456"), decimal_places=4) == Decimal("1.2346")


class TestToDecimal:
    """Tests for to_decimal."""

    def test_none_passes_through(self):
        assert to_decimal(None) is None

    def test_decimal_unchanged(self):
        value = Decimal("12.50")
        assert to_decimal(value) is value

    def test_float_has_no_binary_noise(self):
        assert to_decimal(0.1) == Decimal("0.1")

    def test_int_and_str(self):
        assert to_decimal(3000) == Decimal("3000")
        assert to_decimal("2815.5") == Decimal("2815.5")

    @pytest.mark.parametrize("value", ["abc", True, object()])
    def test_rejects_non_numeric(self, value):
        with pytest.raises(ValueError):
            to_decimal(value)


class TestValidateCurrency:

    def test_normalizes(self):
        assert validate_currency(" egp ") == "EGP"

    @pytest.mark.parametrize("code", ["", "EG", "EGPP", "XXX", None])
    def test_rejects(self, code):
        with pytest.raises(InvalidCurrencyError):
            validate_currency(code)


class TestCanonicalJson:
    """Hashes must not depend on decimal scale or key order."""

    def test_decimal_scale_does_not_change_hash(self):
        assert hash_payload({"amount": Decimal("100")}) == hash_payload({"amount": Decimal("100.00")})

    def test_key_order_does_not_change_hash(self):
        assert hash_payload({"a": 1, "b": 2}) == hash_payload({"b": 2, "a": 1})

    def test_special_types(self):
        payload = {
            "period": date(2026, 2, 1),
            "status": PayrollRunStatus.LOCKED,
            "run_pk": UUID("00000000-0000-4000-b000-000000000001"),
            "net": Decimal("2815.50"),
        }
        assert to_json_safe(payload) == {
            "period": "2026-02-01",
            "status": "locked",
            "run_pk": "00000000-0000-4000-b000-000000000001",
            "net": "2815.5",
        }

    def test_compact_output(self):
        assert canonicalize_json({"b": [1, 2], "a": None}) == '{"a":null,"b":[1,2]}'

    def test_unsupported_type(self):
        with pytest.raises(TypeError):
            canonicalize_json({"value": object()})
