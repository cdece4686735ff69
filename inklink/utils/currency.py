# inklink/utils/currency.py
from decimal import Decimal

# Currencies whose smallest unit is the whole unit (Stripe's zero-decimal list)
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "BIF", "CLP", "DJF", "GNF", "JPY", "KMF", "KRW", "MGA",
        "PYG", "RWF", "UGX", "VND", "VUV", "XAF", "XOF", "XPF",
    }
)


def currency_exponent(currency: str) -> int:
    return 0 if currency.upper() in ZERO_DECIMAL_CURRENCIES else 2


def minor_to_decimal_string(amount: int, currency: str) -> str:
    """
    Render an amount held in minor units as a decimal string in major
    units, e.g. 12345 USD -> "123.45" and 5000 JPY -> "5000".
    """
    exponent = currency_exponent(currency)
    return f"{Decimal(amount).scaleb(-exponent):.{exponent}f}"
