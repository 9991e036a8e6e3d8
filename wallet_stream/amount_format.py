"""
Amount parsing and display formatting.

On-chain base-unit amounts are handled as Python ints and Decimals only;
floats never touch a raw amount.
"""
from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation
from typing import Any, Optional

from .stream_utils import LAMPORTS_PER_SOL

NOT_AVAILABLE = "N/A"

DEFAULT_PRECISION = 9
FUNGIBLE_PRECISION = 6  # pump.fun style tokens

_THOUSAND = Decimal(1_000)
_MILLION = Decimal(1_000_000)
_BILLION = Decimal(1_000_000_000)


def _round(value: Decimal, places: int) -> Decimal:
    # quantize needs room for every integer digit plus the fraction
    context = Context(prec=max(28, value.adjusted() + places + 2))
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP, context=context)


def resolve_precision(hint: Any) -> int:
    """
    Turn a precision hint into a decimal count.

    Accepts an int, a numeric string, or the token-standard label
    "Fungible" (6 decimals). Anything else means 9 decimals.
    """
    if isinstance(hint, bool):
        return DEFAULT_PRECISION
    if isinstance(hint, int):
        return hint if hint >= 0 else DEFAULT_PRECISION
    if isinstance(hint, str):
        text = hint.strip()
        if text == 'Fungible':
            return FUNGIBLE_PRECISION
        if text.isdigit():
            return int(text)
    return DEFAULT_PRECISION


def scale_integer(value: int, precision: int) -> Decimal:
    """value / 10**precision using integer division for the whole part."""
    divisor = 10 ** precision
    whole, remainder = divmod(value, divisor)
    return Decimal(whole) + Decimal(remainder) / Decimal(divisor)


def parse_human_amount(raw: Any, precision: Any = DEFAULT_PRECISION) -> Optional[Decimal]:
    """
    Convert a raw transfer amount to a human-scaled Decimal.

    A value containing a decimal separator (or exponent) is already human
    scaled; anything else is an integer in base units scaled by 10**precision.

    Returns:
        Decimal, or None when the value has no recognizable numeric form
    """
    if raw is None or isinstance(raw, bool):
        return None

    text = str(raw).strip()
    if not text:
        return None

    if '.' in text or 'e' in text.lower():
        try:
            value = Decimal(text)
        except InvalidOperation:
            return None
        return value if value.is_finite() else None

    try:
        integer = int(text)
    except ValueError:
        return None
    return scale_integer(integer, resolve_precision(precision))


def format_amount_with_units(amount: Decimal) -> str:
    """Bucket a human amount: B / M / K with two decimals, else plain."""
    if amount >= _BILLION:
        return f"{_round(amount / _BILLION, 2)}B tokens"
    elif amount >= _MILLION:
        return f"{_round(amount / _MILLION, 2)}M tokens"
    elif amount >= _THOUSAND:
        return f"{_round(amount / _THOUSAND, 2)}K tokens"
    elif amount >= 1:
        text = f"{_round(amount, 6):f}"
        if '.' in text:
            text = text.rstrip('0').rstrip('.')
        return f"{text} tokens"
    else:
        return f"{_round(amount, 6):f} tokens"


def format_token_amount(raw: Any, precision: Any = DEFAULT_PRECISION) -> str:
    """
    Format a raw token amount for display.

    Examples:
        format_token_amount("2500000000000", 9) -> "2.50K tokens"
        format_token_amount("1500000000", 9)    -> "1.5 tokens"
        format_token_amount("abc")              -> "N/A"
    """
    amount = parse_human_amount(raw, precision)
    if amount is None:
        return NOT_AVAILABLE
    return format_amount_with_units(amount)


def lamports_to_sol(lamports: int) -> Decimal:
    return Decimal(lamports) / Decimal(LAMPORTS_PER_SOL)


def parse_sol_amount(raw: Any) -> Decimal:
    """
    SOL value of a wrapped-SOL transfer amount.

    Decimal text is already SOL; integer text is lamports. Unparseable
    values count as zero.
    """
    if raw is None or isinstance(raw, bool):
        return Decimal(0)

    text = str(raw).strip()
    try:
        if '.' in text or 'e' in text.lower():
            value = Decimal(text)
            return value if value.is_finite() else Decimal(0)
        return lamports_to_sol(int(text))
    except (InvalidOperation, ValueError):
        return Decimal(0)


def format_sol_amount(sol: Any) -> str:
    """
    Format a SOL amount (already in SOL, not lamports).

    >= 1000 -> "1.23K SOL", >= 1 -> "1.500 SOL", >= 0.001 -> 4 decimals,
    smaller -> 6 decimals.
    """
    try:
        amount = sol if isinstance(sol, Decimal) else Decimal(str(sol))
    except InvalidOperation:
        return f"{NOT_AVAILABLE} SOL"
    if not amount.is_finite():
        return f"{NOT_AVAILABLE} SOL"

    if amount >= _THOUSAND:
        return f"{_round(amount / _THOUSAND, 2)}K SOL"
    elif amount >= 1:
        return f"{_round(amount, 3)} SOL"
    elif amount >= Decimal('0.001'):
        return f"{_round(amount, 4)} SOL"
    else:
        return f"{_round(amount, 6):f} SOL"
