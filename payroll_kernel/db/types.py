"""
Module: payroll_kernel.db.types
Responsibility: Rounding, coercion and currency validation for money
    amounts.  Centralizes precision so that every payslip line and run
    total uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and payroll_modules.  MUST NOT import from any of those layers.

Invariants enforced:
    - round_money() is the ONLY sanctioned rounding function for payroll
      amounts: two decimal places, ROUND_HALF_UP.
    - validate_currency() rejects codes outside ISO_4217_CURRENCIES.
    CRITICAL: No floats for money.  All amounts use Decimal.

Failure modes:
    - InvalidCurrencyError on an unrecognized currency code.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    Preconditions: value is a Decimal.
    Postconditions: Returns value quantized to the specified decimal places
        using the specified rounding mode.

    Example:
        round_money(Decimal("2.345")) -> Decimal("2.35")
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_decimal(value: object) -> Decimal | None:
    """
    Coerce a stored numeric value to Decimal.

    Returns None for None.  Floats are converted through ``str`` so that a
    value read back from a float-backed column (SQLite) does not pick up
    binary noise.

    Raises:
        ValueError: If value is not numeric.
    """
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a numeric amount: {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Not a numeric amount: {value!r}") from exc


# ISO 4217 currency codes accepted for payroll disbursement.
ISO_4217_CURRENCIES: set[str] = {
    "USD", "EUR", "GBP", "JPY", "CHF", "CAD", "AUD", "NZD",
    "AED", "BHD", "CNY", "DKK", "DZD", "EGP", "HKD", "ILS", "INR",
    "IQD", "JOD", "KES", "KWD", "LBP", "LYD", "MAD", "MXN", "NGN",
    "NOK", "OMR", "PKR", "PLN", "QAR", "SAR", "SDG", "SEK", "SGD",
    "SYP", "TND", "TRY", "YER", "ZAR",
}


class InvalidCurrencyError(ValueError):
    """Raised when an invalid ISO 4217 currency code is provided."""

    def __init__(self, currency: str):
        self.currency = currency
        super().__init__(f"Invalid ISO 4217 currency code: '{currency}'")


def validate_currency(currency: str) -> str:
    """
    Validate that a currency code is a valid ISO 4217 code.

    Returns:
        The validated currency code (uppercase, trimmed).

    Raises:
        InvalidCurrencyError: If the currency code is not valid.
    """
    if not currency or not isinstance(currency, str):
        raise InvalidCurrencyError(str(currency))

    normalized = currency.upper().strip()

    if len(normalized) != 3 or normalized not in ISO_4217_CURRENCIES:
        raise InvalidCurrencyError(currency)

    return normalized
