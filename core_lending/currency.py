"""
Currency Module

Money representation with proper Decimal precision and locale-aware display
formatting. NEVER uses float for monetary values.
"""

from decimal import Decimal, ROUND_HALF_UP, InvalidOperation, getcontext
from dataclasses import dataclass
from typing import Any, Dict, Tuple, Union
from enum import Enum
import re

# Set global decimal context for financial precision
getcontext().prec = 28


class Currency(Enum):
    """ISO 4217 Currency Codes with precision and symbol"""
    EUR = ("EUR", 2, "€")
    USD = ("USD", 2, "$")
    GBP = ("GBP", 2, "£")

    def __init__(self, code: str, precision: int, symbol: str):
        self.code = code
        self.precision = precision
        self.symbol = symbol


# locale -> (thousands separator, decimal separator, symbol after amount)
LOCALE_FORMATS: Dict[str, Tuple[str, str, bool]] = {
    "es_ES": (".", ",", True),
    "de_DE": (".", ",", True),
    "fr_FR": (" ", ",", True),
    "en_US": (",", ".", False),
    "en_GB": (",", ".", False),
}


@dataclass(frozen=True)
class Money:
    """
    Immutable money representation with currency and proper precision.
    """
    amount: Decimal
    currency: Currency = Currency.EUR

    def __post_init__(self):
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', to_decimal(self.amount))

        rounded = quantize(self.amount, self.currency)
        object.__setattr__(self, 'amount', rounded)

    def __add__(self, other: 'Money') -> 'Money':
        if self.currency != other.currency:
            raise ValueError(f"Cannot add {self.currency.code} and {other.currency.code}")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        if self.currency != other.currency:
            raise ValueError(f"Cannot subtract {other.currency.code} from {self.currency.code}")
        return Money(self.amount - other.amount, self.currency)

    def __mul__(self, multiplier: Decimal) -> 'Money':
        return Money(self.amount * to_decimal(multiplier), self.currency)

    def __neg__(self) -> 'Money':
        return Money(-self.amount, self.currency)

    def is_zero(self) -> bool:
        """Check if amount is exactly zero"""
        return self.amount == Decimal('0')

    def is_positive(self) -> bool:
        """Check if amount is positive"""
        return self.amount > Decimal('0')

    def to_string(self, locale: str = "es_ES") -> str:
        """Format for display"""
        return format_currency(self.amount, self.currency, locale)


def to_decimal(value: Any) -> Decimal:
    """
    Convert a number-like value to Decimal without going through binary floats.

    Raises:
        ValueError: If the value is not a finite number
    """
    if isinstance(value, bool):
        raise ValueError(f"Cannot convert {value!r} to Decimal")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float, str)):
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"Cannot convert {value!r} to Decimal")
    else:
        raise ValueError(f"Cannot convert {value!r} to Decimal")

    if not result.is_finite():
        raise ValueError(f"Non-finite amount: {value!r}")
    return result


def quantize(value: Decimal, currency: Currency = Currency.EUR) -> Decimal:
    """Round a Decimal to the currency precision"""
    return value.quantize(Decimal('0.1') ** currency.precision, rounding=ROUND_HALF_UP)


def format_currency(amount: Union[Decimal, int, float, str, None],
                    currency: Currency = Currency.EUR,
                    locale: str = "es_ES") -> str:
    """
    Locale-aware currency formatting.

    Invalid or missing amounts render as zero, e.g. ``format_currency(None)``
    gives ``"0,00 €"``.
    """
    try:
        value = to_decimal(amount) if amount is not None else Decimal('0')
    except ValueError:
        value = Decimal('0')

    thousands, decimal_sep, symbol_after = LOCALE_FORMATS.get(locale, LOCALE_FORMATS["en_US"])
    value = quantize(value, currency)
    sign = "-" if value < 0 else ""
    text = f"{abs(value):,.{currency.precision}f}"
    integer_part, _, fraction = text.partition(".")
    integer_part = integer_part.replace(",", thousands)
    number = integer_part + (decimal_sep + fraction if fraction else "")

    if symbol_after:
        return f"{sign}{number} {currency.symbol}"
    return f"{sign}{currency.symbol}{number}"


def decimal_from_string(value: str) -> Decimal:
    """
    Safely convert a user supplied string to Decimal, handling common formats

    Args:
        value: String representation of number ("1.500,50", "1500.50 €")

    Returns:
        Decimal value

    Raises:
        ValueError: If string cannot be converted to valid Decimal
    """
    if not value or not isinstance(value, str):
        raise ValueError("Value must be a non-empty string")

    clean_value = re.sub(r'[^\d.,\-+]', '', value.strip())

    if ',' in clean_value and '.' in clean_value:
        # Whichever separator comes last is the decimal separator
        if clean_value.rfind(',') > clean_value.rfind('.'):
            clean_value = clean_value.replace('.', '').replace(',', '.')
        else:
            clean_value = clean_value.replace(',', '')
    elif ',' in clean_value and clean_value.count(',') == 1:
        parts = clean_value.split(',')
        if len(parts[1]) <= 2:
            clean_value = clean_value.replace(',', '.')
        else:
            clean_value = clean_value.replace(',', '')

    try:
        return to_decimal(clean_value)
    except ValueError:
        raise ValueError(f"Cannot convert '{value}' to Decimal")
