"""
Value Codec - exact base-unit <-> human decimal conversion.

Every monetary figure passes through here as a string. EVM values routinely
exceed 2**53, so nothing in this module goes through float.
"""

import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union


_DIGITS = re.compile(r"^-?\d+$")
_DECIMAL = re.compile(r"^(-?)(\d*)(?:\.(\d*))?$")

RawValue = Union[str, int, None]


def _parse_decimals(decimals: Union[int, str, None]) -> Optional[int]:
    """Return a non-negative int decimal count, or None when unusable."""
    if isinstance(decimals, bool):
        return None
    if isinstance(decimals, int):
        return decimals if decimals >= 0 else None
    if decimals is None:
        return None
    text = str(decimals).strip()
    if not text.isdigit():
        return None
    return int(text)


def _base_unit_digits(raw: RawValue) -> Optional[str]:
    """Normalize a raw value to a signed decimal integer string."""
    if raw is None:
        return None
    if isinstance(raw, int) and not isinstance(raw, bool):
        return str(raw)

    text = str(raw).strip()
    if not text:
        return None

    if text.lower().startswith(("0x", "-0x")):
        try:
            return str(int(text, 16))
        except ValueError:
            return None

    # Integer portion only; anything after a decimal point is already garbage
    text = text.split(".")[0]
    if not _DIGITS.match(text):
        return None
    return text


def to_decimal_string(raw: RawValue, decimals: Union[int, str, None] = 18) -> str:
    """
    Convert a base-unit amount to a human decimal string.

    Args:
        raw: Base-unit integer as decimal string, hex string ("0x..") or int
        decimals: Number of decimal places of the asset

    Returns:
        Decimal string with trailing fractional zeros stripped, "0" on any
        unusable input. Never raises.
    """
    places = _parse_decimals(decimals)
    if places is None:
        return "0"

    digits = _base_unit_digits(raw)
    if digits is None:
        return "0"

    negative = digits.startswith("-")
    if negative:
        digits = digits[1:]
    digits = digits.lstrip("0")
    if not digits:
        return "0"

    padded = digits.rjust(places + 1, "0")
    split_at = len(padded) - places
    integer_part = padded[:split_at]
    fractional_part = padded[split_at:].rstrip("0")

    result = integer_part
    if fractional_part:
        result += "." + fractional_part
    return "-" + result if negative else result


def to_base_units(value: Union[str, int, None], decimals: Union[int, str, None] = 18) -> str:
    """
    Rescale a human decimal string back to base units.

    Excess fractional digits beyond ``decimals`` are truncated. Returns "0"
    for unusable input.
    """
    places = _parse_decimals(decimals)
    if places is None or value is None:
        return "0"

    match = _DECIMAL.match(str(value).strip())
    if not match:
        return "0"

    sign, integer_part, fractional_part = match.groups()
    integer_part = integer_part or "0"
    fractional_part = (fractional_part or "")[:places].ljust(places, "0")

    digits = (integer_part + fractional_part).lstrip("0")
    if not digits:
        return "0"
    return sign + digits


def hex_to_int(value: Any) -> int:
    """Parse a hex quantity ("0x1a") to int. Raises ValueError when malformed."""
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    text = str(value or "").strip()
    if text in ("", "0x", "0X"):
        return 0
    return int(text, 16)


def hex_to_dec(value: Any) -> str:
    """Fail-soft hex quantity -> decimal string ("0" when malformed)."""
    try:
        return str(hex_to_int(value))
    except (TypeError, ValueError):
        return "0"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse the timestamp shapes providers return.

    Accepts ISO-8601 strings (with or without "Z"), unix seconds as decimal
    strings, or hex quantities from raw node blocks. Returns an aware UTC
    datetime or None.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

    text = str(value).strip()
    try:
        if text.lower().startswith("0x"):
            return datetime.fromtimestamp(int(text, 16), tz=timezone.utc)
        if text.isdigit():
            return datetime.fromtimestamp(int(text), tz=timezone.utc)
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except (ValueError, OverflowError, OSError):
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def usd_value(raw: RawValue, decimals: Union[int, str, None], price: Optional[Decimal]) -> Decimal:
    """USD value of a base-unit amount at a spot price. 0 when unpriced."""
    if not price:
        return Decimal(0)
    try:
        return Decimal(to_decimal_string(raw, decimals)) * Decimal(price)
    except InvalidOperation:
        return Decimal(0)
